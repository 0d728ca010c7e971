"""Infrastructure configuration — single source of truth for env vars."""

import os
from pathlib import Path

# Figma REST API: Personal Access Token for design file access
FIGMA_TOKEN = os.getenv("FIGMA_TOKEN", "")
FIGMA_API_BASE = os.getenv("FIGMA_API_BASE", "https://api.figma.com")

# Log directory for the CLI file handler
LOG_DIR = Path(os.getenv("LOG_DIR", str(Path.cwd() / "logs")))
