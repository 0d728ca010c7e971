"""Figma API node JSON → engine raw design tree.

Maps the deterministic parts of a Figma node (bounds, fills, strokes,
corner radius, text style, image fills) onto the raw tree accepted by
figma_codegen.model.document.parse():

    {"id", "name", "kind", "geometry": {x, y, width, height},
     "style": {...}, "text"?, "image"?: {"ref", "required"}, "children": [...]}

Canvas-absolute bounds are normalized to the root frame's origin.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

IMAGE_REF_SCHEME = "figma-image"

# Max depth for tree recursion (safety cap)
_MAX_DEPTH = 40

_VECTOR_TYPES = frozenset({
    "VECTOR", "LINE", "ELLIPSE", "STAR", "RECTANGLE",
    "REGULAR_POLYGON", "BOOLEAN_OPERATION",
})

# Non-visual node types
_SKIPPED_TYPES = frozenset({"SLICE", "STICKY", "CONNECTOR", "WIDGET"})


def figma_color_to_hex(color: Dict) -> str:
    """Convert Figma RGBA float dict {r,g,b} to #RRGGBB."""
    r = round(color.get("r", 0) * 255)
    g = round(color.get("g", 0) * 255)
    b = round(color.get("b", 0) * 255)
    return f"#{r:02X}{g:02X}{b:02X}"


def _visible(paints: List[Dict], paint_type: Optional[str] = None) -> List[Dict]:
    return [
        p for p in paints or []
        if p.get("visible", True) and (paint_type is None or p.get("type") == paint_type)
    ]


def _style(node: Dict) -> Dict[str, Any]:
    style: Dict[str, Any] = {}

    # Last visible solid fill (Figma renders bottom-up, last = topmost)
    solids = _visible(node.get("fills", []), "SOLID")
    if solids:
        style["fill"] = figma_color_to_hex(solids[-1].get("color", {}))

    strokes = _visible(node.get("strokes", []), "SOLID")
    weight = node.get("strokeWeight", 0) or 0
    if strokes and weight > 0:
        style["stroke"] = figma_color_to_hex(strokes[0].get("color", {}))
        style["strokeWidth"] = weight

    radius = node.get("cornerRadius")
    radii = node.get("rectangleCornerRadii")
    if not radius and isinstance(radii, list) and radii:
        radius = max(radii)
    if radius and radius > 0:
        style["cornerRadius"] = radius

    if node.get("type") == "TEXT":
        text_style = node.get("style") or {}
        if not text_style.get("fontFamily"):
            text_style = node.get("typeStyle", text_style)
        if text_style.get("fontFamily"):
            style["fontFamily"] = text_style["fontFamily"]
        if text_style.get("fontSize"):
            style["fontSize"] = text_style["fontSize"]
        if text_style.get("fontWeight"):
            style["fontWeight"] = int(text_style["fontWeight"])

    opacity = node.get("opacity", 1.0)
    if opacity < 1.0:
        style["opacity"] = round(opacity, 4)
    return style


def figma_node_to_raw(
    node: Dict,
    file_key: str,
    origin_x: float,
    origin_y: float,
    depth: int = 0,
) -> Optional[Dict[str, Any]]:
    """Convert one Figma node (and its subtree) to a raw tree node.

    Returns None for invisible, fully transparent, zero-size or non-visual
    nodes; their subtrees are dropped with them.
    """
    node_type = node.get("type", "")
    if node_type in _SKIPPED_TYPES:
        return None
    if not node.get("visible", True) or node.get("opacity", 1.0) == 0:
        return None

    bbox = node.get("absoluteBoundingBox") or {}
    width = bbox.get("width", 0) or 0
    height = bbox.get("height", 0) or 0
    if width <= 0 or height <= 0:
        return None

    x = bbox.get("x", 0) - origin_x
    y = bbox.get("y", 0) - origin_y
    if x < 0 or y < 0:
        logger.debug("figma_node_to_raw: clamping %s bounds (%.1f, %.1f) to root", node.get("id"), x, y)

    image_fills = _visible(node.get("fills", []), "IMAGE")
    children = node.get("children", [])

    if node_type == "TEXT":
        kind = "text"
    elif image_fills and not children:
        kind = "image"
    elif node_type in _VECTOR_TYPES:
        kind = "vector"
    else:
        kind = "frame"

    raw: Dict[str, Any] = {
        "id": node.get("id", ""),
        "name": node.get("name", ""),
        "kind": kind,
        "geometry": {
            "x": round(max(0.0, x), 2),
            "y": round(max(0.0, y), 2),
            "width": round(width, 2),
            "height": round(height, 2),
        },
        "style": _style(node),
        "children": [],
    }

    if kind == "text":
        raw["text"] = node.get("characters", "")
    elif kind == "image":
        image_ref = image_fills[-1].get("imageRef", "")
        raw["image"] = {"ref": f"{IMAGE_REF_SCHEME}://{file_key}/{image_ref}", "required": False}
        raw["style"].pop("fill", None)

    # Vector internals are path data, irrelevant for layout
    if kind == "frame" and depth < _MAX_DEPTH:
        for child in children:
            child_raw = figma_node_to_raw(child, file_key, origin_x, origin_y, depth + 1)
            if child_raw is not None:
                raw["children"].append(child_raw)

    return raw


def figma_document_to_raw(document: Dict, file_key: str) -> Dict[str, Any]:
    """Convert a Figma node document (from /v1/files/:key/nodes) to a raw tree.

    Raises:
        ValueError: the document root is invisible or has no bounds.
    """
    bbox = document.get("absoluteBoundingBox") or {}
    origin_x = bbox.get("x", 0)
    origin_y = bbox.get("y", 0)
    raw = figma_node_to_raw(document, file_key, origin_x, origin_y)
    if raw is None:
        raise ValueError(
            f"Figma node '{document.get('id', '?')}' is not renderable "
            "(hidden, transparent or without bounds)"
        )
    return raw
