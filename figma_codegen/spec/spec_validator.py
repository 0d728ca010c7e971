"""Validation gate for emitted artifacts (pure Python, runs before writing).

Errors reject the whole generation:
- structural mismatch between component and style sheet
- overlay entries without a valid flow-positioned anchor
- duplicate asset file names with differing fingerprints
- a missing artifact kind

Warnings are surfaced but do not block:
- UNRESOLVED token bindings (emitted as flagged literals)
- placeholder assets
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..codegen.emitter import ArtifactKind, GeneratedArtifact
from ..errors import EmissionMismatch
from .layout import Position

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Issue:
    rule: str
    detail: str
    node_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"rule": self.rule, "detail": self.detail}
        if self.node_id is not None:
            result["node_id"] = self.node_id
        return result


@dataclass
class ValidationReport:
    """Errors block generation; warnings are reported alongside artifacts."""

    errors: List[Issue] = field(default_factory=list)
    warnings: List[Issue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def error(self, rule: str, detail: str, node_id: Optional[str] = None) -> None:
        self.errors.append(Issue(rule, detail, node_id))

    def warn(self, rule: str, detail: str, node_id: Optional[str] = None) -> None:
        self.warnings.append(Issue(rule, detail, node_id))

    def merge(self, other: "ValidationReport") -> None:
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)

    def raise_for_errors(self) -> None:
        if self.errors:
            first = self.errors[0]
            raise EmissionMismatch(
                f"Generation rejected ({len(self.errors)} errors): "
                f"[{first.rule}] {first.detail}",
                report=self,
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "errors": [i.to_dict() for i in self.errors],
            "warnings": [i.to_dict() for i in self.warnings],
        }


# ---------------------------------------------------------------------------
# Validation functions
# ---------------------------------------------------------------------------


def validate_structure(
    component: GeneratedArtifact,
    style: GeneratedArtifact,
    report: ValidationReport,
) -> None:
    """Check that style entries and component elements correspond 1:1."""
    node_ids = set(component.node_ids)
    styled = set()
    for entry in style.style_entries:
        styled.add(entry.node_id)
        if entry.node_id not in node_ids:
            report.error(
                "style_node_missing",
                f"style entry .{entry.class_name} references node '{entry.node_id}' "
                f"absent from {component.name}",
                entry.node_id,
            )
    for node_id in component.node_ids:
        if node_id not in styled:
            report.error(
                "component_node_unstyled",
                f"node '{node_id}' in {component.name} has no style entry",
                node_id,
            )


def validate_positioning(
    component: GeneratedArtifact,
    style: GeneratedArtifact,
    report: ValidationReport,
) -> None:
    """Every overlay must anchor to an existing flow-positioned node."""
    node_ids = set(component.node_ids)
    positions = {entry.node_id: entry.position for entry in style.style_entries}
    for entry in style.style_entries:
        if entry.position is not Position.OVERLAY:
            continue
        if not entry.anchor_id:
            report.error(
                "overlay_without_anchor",
                f"overlay node '{entry.node_id}' has no anchor",
                entry.node_id,
            )
        elif entry.anchor_id not in node_ids:
            report.error(
                "overlay_anchor_missing",
                f"overlay node '{entry.node_id}' anchors to unknown node '{entry.anchor_id}'",
                entry.node_id,
            )
        elif positions.get(entry.anchor_id) is not Position.FLOW:
            report.error(
                "overlay_anchor_not_flow",
                f"overlay node '{entry.node_id}' anchors to non-flow node '{entry.anchor_id}'",
                entry.node_id,
            )


def validate_assets(manifest: GeneratedArtifact, report: ValidationReport) -> None:
    fingerprints_by_name: Dict[str, set] = defaultdict(set)
    for record in manifest.assets:
        fingerprints_by_name[record.file_name].add(record.fingerprint)
        if record.placeholder:
            report.warn(
                "placeholder_asset",
                f"{record.file_name} is a placeholder for {', '.join(record.source_refs)}"
                f": {record.error or 'fetch failed'}",
                record.node_ids[0] if record.node_ids else None,
            )
    for name, fingerprints in fingerprints_by_name.items():
        if len(fingerprints) > 1:
            report.error(
                "asset_name_collision",
                f"asset file name '{name}' maps to {len(fingerprints)} different payloads",
            )


def validate_tokens(style: GeneratedArtifact, report: ValidationReport) -> None:
    for entry in style.style_entries:
        for binding in entry.unresolved:
            report.warn(
                "unresolved_token",
                f"{binding.attribute}={binding.raw!r} emitted as a literal",
                entry.node_id,
            )


def validate(artifacts: Sequence[GeneratedArtifact]) -> ValidationReport:
    """Statically check an artifact set before it is written."""
    report = ValidationReport()
    by_kind: Dict[ArtifactKind, GeneratedArtifact] = {}
    for artifact in artifacts:
        if artifact.kind in by_kind:
            report.error("duplicate_artifact", f"more than one {artifact.kind.value} artifact")
        by_kind.setdefault(artifact.kind, artifact)

    for kind in ArtifactKind:
        if kind not in by_kind:
            report.error("missing_artifact", f"no {kind.value} artifact emitted")

    component = by_kind.get(ArtifactKind.COMPONENT)
    style = by_kind.get(ArtifactKind.STYLE)
    manifest = by_kind.get(ArtifactKind.MANIFEST)

    if component is not None and style is not None:
        validate_structure(component, style, report)
        validate_positioning(component, style, report)
    if style is not None:
        validate_tokens(style, report)
    if manifest is not None:
        validate_assets(manifest, report)

    log = logger.warning if report.errors else logger.info
    log(
        "validate: %d errors, %d warnings", len(report.errors), len(report.warnings),
    )
    return report
