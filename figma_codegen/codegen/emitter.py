"""Code emitter — render resolved passes into component, style and manifest.

emit() is a pure function of its inputs: the same tree, bindings, layout
specs and asset records always produce byte-identical artifacts. Ordering
comes from the shared traversal; maps are never iterated for output order.

Targets React + TypeScript with a CSS module:
- <Name>.tsx: one JSX element per design node, mirroring the tree
- <Name>.module.css: one rule per node, keyed by node id
- assets.manifest.json: every asset record with its referencing nodes
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .. import settings
from ..assets.pipeline import AssetRecord
from ..errors import EmissionMismatch
from ..model.document import DesignNode, NodeKind, traverse
from ..spec.layout import Alignment, Axis, LayoutSpec, Position, ResponsiveLength
from ..spec.nearest import is_hex_color
from ..spec.token_mapping import TokenBinding

logger = logging.getLogger(__name__)

INDENT = "  "


class ArtifactKind(str, Enum):
    COMPONENT = "component"
    STYLE = "style"
    MANIFEST = "manifest"


@dataclass(frozen=True)
class StyleEntry:
    """One style rule, keyed by the node it styles."""
    node_id: str
    class_name: str
    position: Position
    declarations: Tuple[Tuple[str, str], ...]
    anchor_id: Optional[str] = None
    unresolved: Tuple[TokenBinding, ...] = ()


@dataclass(frozen=True)
class GeneratedArtifact:
    """One emitted file plus the structured view it was rendered from."""
    kind: ArtifactKind
    name: str
    content: str
    node_ids: Tuple[str, ...] = ()
    style_entries: Tuple[StyleEntry, ...] = ()
    assets: Tuple[AssetRecord, ...] = ()


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

_FIGMA_AUTO_NAME_RE = re.compile(
    r"^(Frame|Group|Rectangle|Ellipse|Line|Vector|Component|Instance|Image|"
    r"Union|Subtract|Intersect|Exclude|Mask\s*Group)"
    r"\s*\d{2,}$",
    re.IGNORECASE,
)


def to_component_name(design_name: str) -> str:
    """Convert a design layer name to a PascalCase component name.

    Strips design-tool auto-generated numeric suffixes
    ("Frame 1321317615" -> "Frame") and non-ASCII characters.
    """
    m = _FIGMA_AUTO_NAME_RE.match(design_name.strip())
    if m:
        design_name = m.group(1).strip()

    name = re.sub(r"[^\x00-\x7f]", " ", design_name)
    parts = re.split(r"[^A-Za-z0-9]+", name)
    pascal = "".join(p[:1].upper() + p[1:] for p in parts if p)
    if not pascal:
        return "Component"
    if pascal[0].isdigit():
        pascal = f"Design{pascal}"
    return pascal


def build_class_names(root: DesignNode) -> Dict[str, str]:
    """Assign every node a unique CSS class, in traversal order.

    "16650:539" -> "n-16650-539"; collisions get a numeric suffix.
    """
    names: Dict[str, str] = {}
    used = set()
    for node in traverse(root).nodes():
        base = "n-" + (re.sub(r"[^A-Za-z0-9_-]+", "-", node.id).strip("-") or "node")
        candidate, n = base, 2
        while candidate in used:
            candidate = f"{base}-{n}"
            n += 1
        used.add(candidate)
        names[node.id] = candidate
    return names


# ---------------------------------------------------------------------------
# Value rendering
# ---------------------------------------------------------------------------

_ALIGN_CSS = {
    Alignment.START: "flex-start",
    Alignment.CENTER: "center",
    Alignment.END: "flex-end",
    Alignment.STRETCH: "stretch",
}

_COLOR_ATTRIBUTES = ("fill", "stroke")

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")


def css_string(value: str) -> str:
    """Quote value as a CSS string literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    escaped = _CONTROL_CHARS_RE.sub(lambda m: f"\\{ord(m.group()):x} ", escaped)
    return f'"{escaped}"'


def comment_text(value) -> str:
    """Single-line text that cannot terminate a block or line comment."""
    return " ".join(str(value).split()).replace("*/", "* /")


class _Renderer:
    def __init__(self, viewport_width: float):
        self.viewport_width = viewport_width
        self.unresolved: List[TokenBinding] = []

    def binding(self, binding: TokenBinding) -> Optional[str]:
        """CSS value for a binding; None when an unresolved raw value is
        not a usable literal and only the flag comment is emitted."""
        if binding.resolved:
            if binding.attribute in _COLOR_ATTRIBUTES:
                return f"var(--color-{binding.token})"
            if binding.attribute == "font_family":
                return f"var(--font-{binding.token})"
            return f"var(--{binding.token})"

        self.unresolved.append(binding)
        if binding.attribute in _COLOR_ATTRIBUTES:
            raw = str(binding.raw)
            return raw if is_hex_color(raw) else None
        if binding.attribute == "font_family":
            return css_string(str(binding.raw))
        return ResponsiveLength.from_px(float(binding.raw), self.viewport_width).css()


def _declarations(
    node: DesignNode,
    spec: LayoutSpec,
    parent_spec: Optional[LayoutSpec],
    has_overlay_children: bool,
    bindings: Mapping[str, TokenBinding],
    renderer: _Renderer,
) -> List[Tuple[str, str]]:
    decls: List[Tuple[str, str]] = []

    def add_binding(prop: str, binding: TokenBinding) -> None:
        value = renderer.binding(binding)
        if value is not None:
            decls.append((prop, value))

    # Layout
    if node.children:
        decls.append(("display", "flex"))
        decls.append(("flex-direction", spec.axis.value))
    if has_overlay_children and spec.position is Position.FLOW:
        decls.append(("position", "relative"))

    if spec.position is Position.OVERLAY:
        decls.append(("position", "absolute"))
        decls.append(("left", spec.inset[0].css()))
        decls.append(("top", spec.inset[1].css()))
    elif parent_spec is not None:
        decls.append(("align-self", _ALIGN_CSS[spec.alignment]))
        if spec.gap_before is not None:
            margin = "margin-left" if parent_spec.axis is Axis.ROW else "margin-top"
            add_binding(margin, spec.gap_before)

    decls.append(("width", spec.size[0].css()))
    decls.append(("height", spec.size[1].css()))
    if spec.padding:
        decls.append(("padding", " ".join(renderer.binding(b) for b in spec.padding)))

    # Visual style
    if "fill" in bindings:
        prop = "color" if node.kind is NodeKind.TEXT else "background-color"
        add_binding(prop, bindings["fill"])
    if "stroke" in bindings:
        decls.append(("border-style", "solid"))
        add_binding("border-color", bindings["stroke"])
        if "stroke_width" in bindings:
            add_binding("border-width", bindings["stroke_width"])
    if "corner_radius" in bindings:
        add_binding("border-radius", bindings["corner_radius"])
    if "font_family" in bindings:
        add_binding("font-family", bindings["font_family"])
    if "font_size" in bindings:
        add_binding("font-size", bindings["font_size"])
    if node.style.font_weight is not None:
        decls.append(("font-weight", str(node.style.font_weight)))
    if node.style.opacity is not None and node.style.opacity < 1:
        decls.append(("opacity", f"{node.style.opacity:g}"))
    if node.kind is NodeKind.IMAGE:
        decls.append(("object-fit", "cover"))

    return decls


# ---------------------------------------------------------------------------
# Artifact builders
# ---------------------------------------------------------------------------


def _style_entries(
    root: DesignNode,
    token_bindings: Mapping[str, Mapping[str, TokenBinding]],
    layout_specs: Mapping[str, LayoutSpec],
    class_names: Mapping[str, str],
    viewport_width: float,
) -> List[StyleEntry]:
    entries: List[StyleEntry] = []
    for visit in traverse(root):
        node = visit.node
        spec = layout_specs.get(node.id)
        if spec is None:
            raise EmissionMismatch(f"No layout spec for node '{node.id}'")
        parent_spec = layout_specs.get(visit.parent.id) if visit.parent else None
        has_overlay_children = any(
            layout_specs[c.id].position is Position.OVERLAY
            for c in node.children if c.id in layout_specs
        )
        renderer = _Renderer(viewport_width)
        decls = _declarations(
            node, spec, parent_spec, has_overlay_children,
            token_bindings.get(node.id, {}), renderer,
        )
        entries.append(StyleEntry(
            node_id=node.id,
            class_name=class_names[node.id],
            position=spec.position,
            declarations=tuple(decls),
            anchor_id=spec.anchor_id,
            unresolved=tuple(renderer.unresolved),
        ))
    return entries


def render_style_sheet(
    entries: Sequence[StyleEntry], root_id: str, vocabulary_version: str
) -> str:
    lines = [
        f"/* Generated from design node {comment_text(root_id)} "
        f"(token vocabulary {comment_text(vocabulary_version or 'unversioned')}). Do not edit by hand. */",
    ]
    for entry in entries:
        lines.append("")
        lines.append(f"/* node: {comment_text(entry.node_id)} */")
        lines.append(f".{entry.class_name} {{")
        if entry.position is Position.OVERLAY:
            lines.append(f"{INDENT}/* overlay anchor: {comment_text(entry.anchor_id)} */")
        for binding in entry.unresolved:
            lines.append(f"{INDENT}/* unresolved: {binding.attribute} {comment_text(binding.raw)} */")
        for prop, value in entry.declarations:
            lines.append(f"{INDENT}{prop}: {value};")
        lines.append("}")
    return "\n".join(lines) + "\n"


def _jsx_element(
    node: DesignNode,
    depth: int,
    class_names: Mapping[str, str],
    layout_specs: Mapping[str, LayoutSpec],
    assets_by_node: Mapping[str, AssetRecord],
    out: List[str],
    is_root: bool = False,
) -> None:
    pad = INDENT * depth
    cls = json.dumps(class_names[node.id])
    class_expr = f"styles[{cls}]"
    if is_root:
        class_expr = f"[styles[{cls}], className].filter(Boolean).join(\" \")"
    attrs = (
        f"className={{{class_expr}}} "
        f"data-node-id={{{json.dumps(node.id)}}} "
        f"data-layout=\"{layout_specs[node.id].position.value}\""
    )

    if node.kind is NodeKind.IMAGE:
        record = assets_by_node.get(node.id)
        if record is None:
            raise EmissionMismatch(f"No asset record for image node '{node.id}'")
        src = json.dumps(f"./{settings.ASSETS_DIR_NAME}/{record.file_name}")
        alt = json.dumps(node.name)
        out.append(f"{pad}<img {attrs} src={{{src}}} alt={{{alt}}} />")
        return

    if node.kind is NodeKind.TEXT:
        text = json.dumps(node.text or "", ensure_ascii=False)
        out.append(f"{pad}<span {attrs}>{{{text}}}</span>")
        return

    if not node.children:
        out.append(f"{pad}<div {attrs} />")
        return

    out.append(f"{pad}<div {attrs}>")
    for child in node.children:
        _jsx_element(child, depth + 1, class_names, layout_specs, assets_by_node, out)
    out.append(f"{pad}</div>")


def render_component(
    root: DesignNode,
    component_name: str,
    class_names: Mapping[str, str],
    layout_specs: Mapping[str, LayoutSpec],
    assets_by_node: Mapping[str, AssetRecord],
) -> str:
    style_module = f"./{component_name}{settings.STYLE_FILE_SUFFIX}"
    lines = [
        f"// Generated from design node {comment_text(root.id)}. Do not edit by hand.",
        f"import styles from {json.dumps(style_module)};",
        "",
        f"export interface {component_name}Props {{",
        f"{INDENT}className?: string;",
        "}",
        "",
        f"export function {component_name}({{ className }}: {component_name}Props) {{",
        f"{INDENT}return (",
    ]
    _jsx_element(root, 2, class_names, layout_specs, assets_by_node, lines, is_root=True)
    lines.extend([
        f"{INDENT});",
        "}",
        "",
        f"export default {component_name};",
    ])
    return "\n".join(lines) + "\n"


def render_manifest(
    records: Sequence[AssetRecord], component_name: str, vocabulary_version: str
) -> str:
    manifest = {
        "component": component_name,
        "vocabulary_version": vocabulary_version,
        "assets": [
            {
                "file_name": r.file_name,
                "path": f"{settings.ASSETS_DIR_NAME}/{r.file_name}",
                "fingerprint": r.fingerprint,
                "media_type": r.media_type,
                "node_ids": list(r.node_ids),
                "source_refs": list(r.source_refs),
                "placeholder": r.placeholder,
            }
            for r in records
        ],
    }
    return json.dumps(manifest, ensure_ascii=False, indent=2, sort_keys=True) + "\n"


def emit(
    root: DesignNode,
    token_bindings: Mapping[str, Mapping[str, TokenBinding]],
    layout_specs: Mapping[str, LayoutSpec],
    asset_records: Sequence[AssetRecord],
    *,
    vocabulary_version: str = "",
    viewport_width: float,
    component_name: Optional[str] = None,
) -> List[GeneratedArtifact]:
    """Render the three artifacts for one design tree.

    Returns:
        [component, style, manifest], in that order.
    """
    name = component_name or to_component_name(root.name or root.id)
    class_names = build_class_names(root)
    assets_by_node = {node_id: r for r in asset_records for node_id in r.node_ids}

    entries = _style_entries(root, token_bindings, layout_specs, class_names, viewport_width)
    node_ids = tuple(node.id for node in traverse(root).nodes())

    component = GeneratedArtifact(
        kind=ArtifactKind.COMPONENT,
        name=f"{name}.{settings.COMPONENT_FILE_EXT}",
        content=render_component(root, name, class_names, layout_specs, assets_by_node),
        node_ids=node_ids,
    )
    style = GeneratedArtifact(
        kind=ArtifactKind.STYLE,
        name=f"{name}{settings.STYLE_FILE_SUFFIX}",
        content=render_style_sheet(entries, root.id, vocabulary_version),
        style_entries=tuple(entries),
    )
    manifest = GeneratedArtifact(
        kind=ArtifactKind.MANIFEST,
        name=settings.MANIFEST_FILE_NAME,
        content=render_manifest(asset_records, name, vocabulary_version),
        assets=tuple(asset_records),
    )
    logger.info(
        f"emit: {name}: {len(node_ids)} elements, {len(entries)} style rules, "
        f"{len(asset_records)} assets"
    )
    return [component, style, manifest]
