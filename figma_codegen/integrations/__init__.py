"""Design-source integrations (Figma REST API, local files)."""
