"""Component, style sheet and asset manifest emission."""

from .emitter import ArtifactKind, GeneratedArtifact, StyleEntry, emit, to_component_name

__all__ = ["ArtifactKind", "GeneratedArtifact", "StyleEntry", "emit", "to_component_name"]
