"""Design-tree to UI code translation engine.

Subpackages:
- model: Design document model (parse + deterministic traversal)
- spec: Token vocabulary, token resolution, layout inference, validation gate
- assets: Image asset collection, deduplication and caching
- codegen: Component / style sheet / manifest emission
- integrations: Design-source clients (Figma REST API, local files)
"""

__version__ = "0.1.0"
