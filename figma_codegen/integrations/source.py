"""Design-source protocol + a local-file implementation.

The engine never talks to a design provider directly; it calls a
DesignSource. FigmaClient implements it over the Figma REST API,
LocalDesignSource over JSON files and an image directory.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union, runtime_checkable

logger = logging.getLogger(__name__)


class DesignSourceError(Exception):
    """Raised when a design source cannot supply a tree or payload."""


@runtime_checkable
class DesignSource(Protocol):
    async def fetch_design_tree(self, reference: str) -> Dict[str, Any]:
        ...

    async def fetch_image_bytes(self, reference: str) -> bytes:
        ...


class LocalDesignSource:
    """Reads design trees from JSON files and images from a directory.

    Image references may be file names relative to image_dir or
    base64 data URIs (data:image/png;base64,...).
    """

    def __init__(
        self,
        base_dir: Union[str, Path] = ".",
        image_dir: Optional[Union[str, Path]] = None,
    ):
        self._base = Path(base_dir)
        self._images = Path(image_dir) if image_dir else self._base

    async def fetch_design_tree(self, reference: str) -> Dict[str, Any]:
        path = self._resolve(self._base, reference)
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
            return json.loads(text)
        except (OSError, json.JSONDecodeError) as e:
            raise DesignSourceError(f"Could not load design tree {path}: {e}") from e

    async def fetch_image_bytes(self, reference: str) -> bytes:
        if reference.startswith("data:"):
            return _decode_data_uri(reference)
        path = self._resolve(self._images, reference)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise DesignSourceError(f"Could not read image {path}: {e}") from e

    @staticmethod
    def _resolve(base: Path, reference: str) -> Path:
        path = Path(reference)
        return path if path.is_absolute() else base / path


def _decode_data_uri(uri: str) -> bytes:
    header, _, data = uri.partition(",")
    if not data:
        raise DesignSourceError("Empty data URI")
    try:
        if header.endswith(";base64"):
            return base64.b64decode(data, validate=True)
        return data.encode("utf-8")
    except (binascii.Error, ValueError) as e:
        raise DesignSourceError(f"Invalid base64 data URI: {e}") from e
