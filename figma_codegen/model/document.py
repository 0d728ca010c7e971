"""Design document model — parse raw design trees into immutable DesignNodes.

Accepts two raw shapes:
- nested: each node dict carries its children inline
- flat table: {"root": id, "nodes": {id: node}} with children listed by id

Every downstream pass walks the tree through traverse(), which always yields
nodes depth-first, parents before children, children in source order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set, Tuple

from ..errors import MalformedDocument

logger = logging.getLogger(__name__)


class NodeKind(str, Enum):
    FRAME = "frame"
    TEXT = "text"
    IMAGE = "image"
    VECTOR = "vector"


# Figma node types -> engine kinds
_KIND_ALIASES = {
    "frame": NodeKind.FRAME,
    "group": NodeKind.FRAME,
    "component": NodeKind.FRAME,
    "component_set": NodeKind.FRAME,
    "instance": NodeKind.FRAME,
    "section": NodeKind.FRAME,
    "canvas": NodeKind.FRAME,
    "container": NodeKind.FRAME,
    "text": NodeKind.TEXT,
    "image": NodeKind.IMAGE,
    "vector": NodeKind.VECTOR,
    "shape": NodeKind.VECTOR,
    "rectangle": NodeKind.VECTOR,
    "ellipse": NodeKind.VECTOR,
    "line": NodeKind.VECTOR,
    "star": NodeKind.VECTOR,
    "regular_polygon": NodeKind.VECTOR,
    "boolean_operation": NodeKind.VECTOR,
}

_GEOMETRY_KEYS = ("x", "y", "width", "height")

# raw style key -> NodeStyle field
_STYLE_KEYS = {
    "fill": "fill",
    "stroke": "stroke",
    "strokeWidth": "stroke_width",
    "stroke_width": "stroke_width",
    "cornerRadius": "corner_radius",
    "corner_radius": "corner_radius",
    "fontFamily": "font_family",
    "font_family": "font_family",
    "fontSize": "font_size",
    "font_size": "font_size",
    "fontWeight": "font_weight",
    "font_weight": "font_weight",
    "opacity": "opacity",
}


@dataclass(frozen=True)
class Geometry:
    """Bounding box in design-space units (same space as the parent)."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height


@dataclass(frozen=True)
class NodeStyle:
    fill: Optional[str] = None
    stroke: Optional[str] = None
    stroke_width: Optional[float] = None
    corner_radius: Optional[float] = None
    font_family: Optional[str] = None
    font_size: Optional[float] = None
    font_weight: Optional[int] = None
    opacity: Optional[float] = None

    def items(self) -> List[Tuple[str, Any]]:
        """Set attributes in declaration order."""
        return [
            (name, getattr(self, name))
            for name in self.__dataclass_fields__
            if getattr(self, name) is not None
        ]


@dataclass(frozen=True)
class ImageRef:
    ref: str
    required: bool = False


@dataclass(frozen=True)
class DesignNode:
    """One visual element. Owns its children exclusively."""
    id: str
    kind: NodeKind
    geometry: Geometry
    name: str = ""
    style: NodeStyle = field(default_factory=NodeStyle)
    text: Optional[str] = None
    image: Optional[ImageRef] = None
    children: Tuple["DesignNode", ...] = ()


@dataclass(frozen=True)
class Visit:
    """A node as seen by a traversal, with its structural context."""
    node: DesignNode
    parent: Optional[DesignNode]
    siblings: Tuple[DesignNode, ...]
    depth: int


class Traversal:
    """Lazy, finite, restartable depth-first walk over a DesignNode tree.

    Each iter() starts a fresh walk, so the same Traversal can be consumed
    by several passes and every pass observes the same ordering.
    """

    def __init__(self, root: DesignNode):
        self._root = root

    def __iter__(self) -> Iterator[Visit]:
        stack: List[Visit] = [Visit(self._root, None, (self._root,), 0)]
        while stack:
            visit = stack.pop()
            yield visit
            children = visit.node.children
            for child in reversed(children):
                stack.append(Visit(child, visit.node, children, visit.depth + 1))

    def nodes(self) -> Iterator[DesignNode]:
        for visit in self:
            yield visit.node


def traverse(root: DesignNode) -> Traversal:
    return Traversal(root)


def index_nodes(root: DesignNode) -> Dict[str, DesignNode]:
    """Map node id -> node, insertion-ordered by traversal."""
    return {node.id: node for node in traverse(root).nodes()}


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse(raw_tree: Mapping[str, Any]) -> DesignNode:
    """Parse a raw design tree into a DesignNode root.

    Raises:
        MalformedDocument: missing/negative geometry, unknown kind, a node id used
            more than once anywhere in the tree, cycles, dangling child
            references.
    """
    if not isinstance(raw_tree, Mapping):
        raise MalformedDocument(
            f"Design tree must be an object, got {type(raw_tree).__name__}"
        )

    table: Optional[Mapping[str, Any]] = None
    if "nodes" in raw_tree and "root" in raw_tree:
        table = raw_tree["nodes"]
        if not isinstance(table, Mapping):
            raise MalformedDocument("'nodes' must map node ids to node objects")
        root_raw = table.get(str(raw_tree["root"]))
        if root_raw is None:
            raise MalformedDocument(f"Root node '{raw_tree['root']}' not found in node table")
    else:
        root_raw = raw_tree

    root = _parse_node(
        root_raw, table, ancestors=set(), ancestor_objs=set(), seen=set(), path="",
    )
    logger.info(
        "parse: root=%s, nodes=%d", root.id, sum(1 for _ in traverse(root))
    )
    return root


def _parse_node(
    raw: Any,
    table: Optional[Mapping[str, Any]],
    ancestors: Set[str],
    ancestor_objs: Set[int],
    seen: Set[str],
    path: str,
) -> DesignNode:
    if not isinstance(raw, Mapping):
        raise MalformedDocument(f"Node at '{path or '/'}' is not an object")

    node_id = raw.get("id")
    if node_id is None or str(node_id) == "":
        raise MalformedDocument(f"Node at '{path or '/'}' has no id")
    node_id = str(node_id)
    here = f"{path}/{node_id}"

    if node_id in ancestors or id(raw) in ancestor_objs:
        raise MalformedDocument(f"Cycle detected: '{node_id}' is its own ancestor ({here})")
    if node_id in seen:
        raise MalformedDocument(f"Duplicate node id '{node_id}' at {here}")
    seen.add(node_id)

    kind = _parse_kind(raw, here)
    geometry = _parse_geometry(raw, here)
    style = _parse_style(raw.get("style") or {}, here)

    text = None
    if kind is NodeKind.TEXT:
        text = str(raw.get("text", raw.get("characters", "")) or "")

    image = None
    if kind is NodeKind.IMAGE:
        image = _parse_image(raw, here)

    raw_children = raw.get("children") or []
    if not isinstance(raw_children, list):
        raise MalformedDocument(f"'children' of {here} must be a list")

    ancestors.add(node_id)
    ancestor_objs.add(id(raw))
    try:
        children: List[DesignNode] = []
        for raw_child in raw_children:
            if table is not None and not isinstance(raw_child, Mapping):
                child_ref = str(raw_child)
                if child_ref in ancestors:
                    raise MalformedDocument(
                        f"Cycle detected: '{child_ref}' listed as a child of its descendant {here}"
                    )
                if child_ref not in table:
                    raise MalformedDocument(f"{here} references unknown child '{child_ref}'")
                raw_child = table[child_ref]
            child = _parse_node(raw_child, table, ancestors, ancestor_objs, seen, here)
            children.append(child)
    finally:
        ancestors.discard(node_id)
        ancestor_objs.discard(id(raw))

    return DesignNode(
        id=node_id,
        kind=kind,
        geometry=geometry,
        name=str(raw.get("name", "")),
        style=style,
        text=text,
        image=image,
        children=tuple(children),
    )


def _parse_kind(raw: Mapping[str, Any], here: str) -> NodeKind:
    kind_raw = raw.get("kind", raw.get("type"))
    if kind_raw is None:
        raise MalformedDocument(f"{here} has no kind")
    kind = _KIND_ALIASES.get(str(kind_raw).lower())
    if kind is None:
        raise MalformedDocument(f"{here} has unknown kind '{kind_raw}'")
    return kind


def _parse_geometry(raw: Mapping[str, Any], here: str) -> Geometry:
    box = raw.get("geometry", raw.get("absoluteBoundingBox"))
    if not isinstance(box, Mapping):
        raise MalformedDocument(f"{here} is missing geometry")

    values: Dict[str, float] = {}
    for key in _GEOMETRY_KEYS:
        value = box.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise MalformedDocument(f"{here} geometry.{key} is missing or not a number")
        if value < 0:
            raise MalformedDocument(f"{here} geometry.{key} is negative ({value})")
        values[key] = float(value)
    return Geometry(**values)


def _parse_style(raw_style: Any, here: str) -> NodeStyle:
    if not isinstance(raw_style, Mapping):
        raise MalformedDocument(f"{here} style must be an object")
    fields: Dict[str, Any] = {}
    for key, value in raw_style.items():
        target = _STYLE_KEYS.get(key)
        if target is None or value is None:
            continue
        if target in ("fill", "stroke", "font_family"):
            fields[target] = str(value)
        elif target == "font_weight":
            try:
                fields[target] = int(value)
            except (TypeError, ValueError) as e:
                raise MalformedDocument(f"{here} style.{key} must be an integer") from e
        else:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise MalformedDocument(f"{here} style.{key} must be a number")
            fields[target] = float(value)
    return NodeStyle(**fields)


def _parse_image(raw: Mapping[str, Any], here: str) -> ImageRef:
    image = raw.get("image")
    if isinstance(image, Mapping):
        ref = image.get("ref") or image.get("imageRef")
        required = bool(image.get("required", False))
    else:
        ref = image or raw.get("imageRef")
        required = bool(raw.get("required", False))
    if not ref:
        raise MalformedDocument(f"{here} is an image node without an image reference")
    return ImageRef(ref=str(ref), required=required)
