"""Fingerprint-keyed payload cache for image assets.

An AssetCache is an explicit handle: create one per run (in-memory only) or
pass the same instance, optionally backed by a directory, across runs.
Disk entries are written to a temp file and renamed into place, so a
cancelled or crashed write never leaves a partial entry behind.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)


def fingerprint(payload: bytes) -> str:
    """sha256 hex digest of decoded asset bytes."""
    return hashlib.sha256(payload).hexdigest()


def atomic_write_bytes(path: Union[str, Path], data: bytes) -> None:
    """Write data to path via temp file + rename in the same directory."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class AssetCache:
    """Thread-safe fingerprint -> payload store.

    Args:
        directory: Optional on-disk backing directory. Entries found there
            are served without refetching; new entries are persisted.
    """

    def __init__(self, directory: Optional[Union[str, Path]] = None):
        self._entries: Dict[str, bytes] = {}
        self._lock = threading.Lock()
        self._dir = Path(directory) if directory else None
        if self._dir is not None:
            self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Optional[Path]:
        return self._dir

    def _entry_path(self, key: str) -> Optional[Path]:
        """On-disk location for key; None for a memory-only cache."""
        if self._dir is None:
            return None
        return self._dir / key[:2] / key

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            payload = self._entries.get(key)
        if payload is not None:
            return payload

        path = self._entry_path(key)
        if path is None or not path.is_file():
            return None
        payload = path.read_bytes()
        if fingerprint(payload) != key:
            logger.warning("AssetCache: discarding corrupt entry %s", path)
            return None
        with self._lock:
            self._entries.setdefault(key, payload)
        return payload

    def put(self, payload: bytes) -> str:
        """Store payload, returning its fingerprint. Idempotent."""
        key = fingerprint(payload)
        with self._lock:
            known = key in self._entries
            self._entries.setdefault(key, payload)
        path = None if known else self._entry_path(key)
        if path is not None and not path.exists():
            atomic_write_bytes(path, payload)
            logger.debug("AssetCache: persisted %s (%d bytes)", key[:12], len(payload))
        return key

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
