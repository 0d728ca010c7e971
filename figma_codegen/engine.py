"""Generation engine — runs the passes over one design tree.

    parse -> [tokens | layout | assets] -> emit -> validate -> write

The token and layout passes are CPU-bound and run in worker threads; the
asset pass is the only I/O pass. All three meet at one gather barrier
before emission. Artifacts and assets are written only after the
validation gate passes, so a fatal error leaves the output directory
untouched.
"""

from __future__ import annotations

import asyncio
import logging
import time
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from . import settings
from .assets.cache import AssetCache, atomic_write_bytes
from .assets.pipeline import AssetPipeline, AssetRecord, AssetWarning
from .codegen.emitter import GeneratedArtifact, emit
from .errors import AssetFetchError, CodegenError, MalformedDocument, UnresolvedToken
from .integrations.figma_client import FigmaClientError
from .integrations.source import DesignSource, DesignSourceError
from .model.document import parse
from .spec.layout import infer_tree
from .spec.spec_validator import ValidationReport, validate
from .spec.token_mapping import TokenBinding, resolve_tree
from .spec.vocabulary import TokenVocabulary

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    """Artifacts plus the report of every non-fatal problem."""
    artifacts: List[GeneratedArtifact]
    report: ValidationReport
    assets: List[AssetRecord] = field(default_factory=list)
    written: List[str] = field(default_factory=list)

    def artifact(self, name: str) -> Optional[GeneratedArtifact]:
        for artifact in self.artifacts:
            if artifact.name == name:
                return artifact
        return None


def _attach(error: CodegenError, report: ValidationReport) -> CodegenError:
    """Record a fatal error on the run's report and hand it to the error."""
    if error.report is None:
        report.error(type(error).__name__, str(error))
        error.report = report
    return error


def _report_unresolved(
    report: ValidationReport, bindings: Iterable[Tuple[str, TokenBinding]]
) -> None:
    for node_id, binding in bindings:
        if not binding.resolved:
            report.warn(
                "unresolved_token",
                f"{binding.attribute}={binding.raw!r} emitted as a literal",
                node_id,
            )


def _report_asset_warnings(report: ValidationReport, asset_warnings: Sequence[AssetWarning]) -> None:
    for warning in asset_warnings:
        report.warn(
            "asset_fetch_failed",
            f"{warning.reference} failed after {warning.attempts} attempts: {warning.detail}",
            warning.node_id,
        )


def write_artifacts(
    artifacts: Sequence[GeneratedArtifact], out_dir: Union[str, Path]
) -> List[str]:
    """Write each artifact atomically under out_dir; returns the paths."""
    target = Path(out_dir)
    written = []
    for artifact in artifacts:
        path = target / artifact.name
        atomic_write_bytes(path, artifact.content.encode("utf-8"))
        written.append(str(path))
    return written


async def generate(
    raw_tree: Mapping[str, Any],
    vocabulary: TokenVocabulary,
    source: DesignSource,
    output_dir: Optional[Union[str, Path]] = None,
    cache: Optional[AssetCache] = None,
    component_name: Optional[str] = None,
) -> GenerationResult:
    """Translate one raw design tree into component, style and manifest.

    Args:
        raw_tree: Raw design tree (nested or flat node-table form).
        vocabulary: Token vocabulary for this run.
        source: DesignSource supplying image payloads.
        output_dir: Where to write artifacts and assets. Nothing is
            written when omitted.
        cache: Explicit asset cache; a fresh one per run when omitted.
        component_name: Overrides the name derived from the root node.

    Raises:
        MalformedDocument, LayoutInvariantViolation, AssetFetchError,
        EmissionMismatch: fatal; carry the report accumulated so far.
    """
    t0 = time.monotonic()
    report = ValidationReport()

    try:
        root = parse(raw_tree)
    except CodegenError as e:
        raise _attach(e, report)

    pipeline = AssetPipeline(
        source,
        max_retries=vocabulary.max_fetch_retries,
        timeout=vocabulary.fetch_timeout,
        cache=cache,
        concurrency=settings.ASSET_FETCH_CONCURRENCY,
        retry_base_delay=settings.ASSET_RETRY_BASE_DELAY,
        retry_max_delay=settings.ASSET_RETRY_MAX_DELAY,
    )

    # Barrier: every pass finishes (or fails) before anything is raised
    token_result, layout_result, asset_result = await asyncio.gather(
        asyncio.to_thread(resolve_tree, root, vocabulary),
        asyncio.to_thread(infer_tree, root, vocabulary),
        pipeline.collect(root),
        return_exceptions=True,
    )
    failure = next(
        (r for r in (token_result, layout_result, asset_result) if isinstance(r, BaseException)),
        None,
    )
    if failure is not None:
        if not isinstance(failure, CodegenError):
            raise failure
        # Keep what the passes that did finish found
        if isinstance(token_result, dict):
            _report_unresolved(report, (
                (node_id, b) for node_id, node_bindings in token_result.items()
                for b in node_bindings.values()
            ))
        if isinstance(layout_result, dict):
            _report_unresolved(report, (
                (node_id, b) for node_id, spec in layout_result.items()
                for b in (spec.gap_before, *spec.padding) if b is not None
            ))
        if isinstance(asset_result, AssetFetchError):
            _report_asset_warnings(report, asset_result.asset_warnings)
        elif not isinstance(asset_result, BaseException):
            _report_asset_warnings(report, asset_result.warnings)
        raise _attach(failure, report)

    _report_asset_warnings(report, asset_result.warnings)

    try:
        artifacts = emit(
            root,
            token_result,
            layout_result,
            asset_result.records,
            vocabulary_version=vocabulary.version,
            viewport_width=vocabulary.viewport_width,
            component_name=component_name,
        )
    except CodegenError as e:
        raise _attach(e, report)

    report.merge(validate(artifacts))
    report.raise_for_errors()

    unresolved = sum(1 for i in report.warnings if i.rule == "unresolved_token")
    if unresolved:
        warnings.warn(
            f"{unresolved} style values have no token within tolerance and were "
            "emitted as literals",
            UnresolvedToken,
            stacklevel=2,
        )

    result = GenerationResult(artifacts=artifacts, report=report, assets=asset_result.records)
    if output_dir is not None:
        out = Path(output_dir)
        result.assets = await asyncio.to_thread(
            pipeline.materialize, asset_result.records, out / settings.ASSETS_DIR_NAME,
        )
        result.written = await asyncio.to_thread(write_artifacts, artifacts, out)

    logger.info(
        f"generate: {root.id}: {len(artifacts)} artifacts, {len(result.assets)} assets, "
        f"{len(report.warnings)} warnings in {time.monotonic() - t0:.2f}s"
    )
    return result


async def generate_from_source(
    reference: str,
    vocabulary: TokenVocabulary,
    source: DesignSource,
    output_dir: Optional[Union[str, Path]] = None,
    cache: Optional[AssetCache] = None,
    component_name: Optional[str] = None,
) -> GenerationResult:
    """Fetch a design tree from source, then generate.

    Source failures on the tree itself surface as MalformedDocument.
    """
    try:
        raw_tree = await source.fetch_design_tree(reference)
    except (DesignSourceError, FigmaClientError, ValueError) as e:
        logger.error("generate_from_source: %s failed: %s", reference, e)
        raise MalformedDocument(f"Could not load design tree '{reference}': {e}") from e

    if not isinstance(raw_tree, dict):
        raise MalformedDocument(f"Design tree '{reference}' is not an object")

    return await generate(
        raw_tree, vocabulary, source,
        output_dir=output_dir, cache=cache, component_name=component_name,
    )


def summarize(result: GenerationResult) -> Dict[str, Any]:
    """JSON-friendly run summary (used by the CLI)."""
    return {
        "artifacts": [a.name for a in result.artifacts],
        "assets": [r.file_name for r in result.assets],
        "written": result.written,
        "report": result.report.to_dict(),
    }
