"""Design document model."""

from .document import (
    DesignNode,
    Geometry,
    ImageRef,
    NodeKind,
    NodeStyle,
    Traversal,
    Visit,
    index_nodes,
    parse,
    traverse,
)

__all__ = [
    "DesignNode",
    "Geometry",
    "ImageRef",
    "NodeKind",
    "NodeStyle",
    "Traversal",
    "Visit",
    "index_nodes",
    "parse",
    "traverse",
]
