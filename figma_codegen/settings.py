"""Runtime settings — tunable parameters for generation runs.

All values read from environment variables with defaults. Import from here
instead of hardcoding.

Token vocabulary values (thresholds, step scales, retry budget) are NOT here:
they are supplied per run by the vocabulary configuration.
Infrastructure config (Figma token, API base, log dir) stays in config.py.
"""

from __future__ import annotations

import os


def _int(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))


def _float(key: str, default: float) -> float:
    return float(os.getenv(key, str(default)))


def _str(key: str, default: str) -> str:
    return os.getenv(key, default)


# =====================================================================
# Asset Pipeline
# =====================================================================

# Max concurrent image payload fetches
ASSET_FETCH_CONCURRENCY = _int("ASSET_FETCH_CONCURRENCY", 4)

# Exponential backoff base and cap between fetch attempts (seconds)
ASSET_RETRY_BASE_DELAY = _float("ASSET_RETRY_BASE_DELAY", 0.5)
ASSET_RETRY_MAX_DELAY = _float("ASSET_RETRY_MAX_DELAY", 8.0)

# Sub-directory (under the output dir) that receives materialized assets
ASSETS_DIR_NAME = _str("ASSETS_DIR_NAME", "assets")


# =====================================================================
# Code Emitter
# =====================================================================

COMPONENT_FILE_EXT = _str("CODEGEN_COMPONENT_EXT", "tsx")
STYLE_FILE_SUFFIX = _str("CODEGEN_STYLE_SUFFIX", ".module.css")
MANIFEST_FILE_NAME = _str("CODEGEN_MANIFEST_NAME", "assets.manifest.json")


# =====================================================================
# HTTP Clients (Figma API)
# =====================================================================

FIGMA_HTTP_TIMEOUT = _float("FIGMA_HTTP_TIMEOUT", 60.0)
FIGMA_HTTP_MAX_CONNECTIONS = _int("FIGMA_HTTP_MAX_CONNECTIONS", 5)
FIGMA_HTTP_MAX_KEEPALIVE = _int("FIGMA_HTTP_MAX_KEEPALIVE", 3)
