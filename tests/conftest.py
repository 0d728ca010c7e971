"""Shared fixtures: a token vocabulary, sample design trees, a fake source."""

import asyncio
import copy
from typing import Dict, List, Optional

import pytest

from figma_codegen import settings
from figma_codegen.spec.vocabulary import vocabulary_from_dict

PNG_A = b"\x89PNG\r\n\x1a\n" + b"hero-image-bytes"
PNG_B = b"\x89PNG\r\n\x1a\n" + b"avatar-image-bytes"
JPEG_A = b"\xff\xd8\xff\xe0" + b"photo-bytes"

VOCABULARY_DATA = {
    "version": "2026.10",
    "colors": {
        "brand-primary": "#FF6B35",
        "text-primary": "#FFFFFF",
        "background-dark": "#1A1A1A",
    },
    "fontFamilies": {"body": "Inter"},
    "colorThreshold": 2.3,
    "spacingSteps": [4, 8, 16, 24],
    "fontSteps": [12, 14, 16, 20],
    "maxFetchRetries": 2,
    "fetchTimeoutMs": 200,
    "viewportWidth": 400,
    "overlapEpsilon": 0.01,
    "rowOverlapThreshold": 0.5,
    "alignmentEpsilon": 0.02,
}


def _screen_tree() -> Dict:
    return {
        "id": "1:1",
        "name": "Profile Screen",
        "kind": "frame",
        "geometry": {"x": 0, "y": 0, "width": 400, "height": 300},
        "style": {"fill": "#1A1A1A"},
        "children": [
            {
                "id": "1:2",
                "name": "Title",
                "kind": "text",
                "text": "Hello",
                "geometry": {"x": 16, "y": 16, "width": 368, "height": 24},
                "style": {"fill": "#FFFFFF", "fontFamily": "Inter", "fontSize": 16},
            },
            {
                "id": "1:3",
                "name": "Hero",
                "kind": "image",
                "image": {"ref": "hero.png"},
                "geometry": {"x": 16, "y": 56, "width": 368, "height": 200},
            },
            {
                "id": "1:4",
                "name": "Badge",
                "kind": "frame",
                "geometry": {"x": 300, "y": 60, "width": 60, "height": 20},
                "style": {"fill": "#FF6B35", "cornerRadius": 8},
            },
        ],
    }


class FakeSource:
    """In-memory DesignSource.

    payloads: reference -> bytes. A reference listed in failures raises
    that many times before succeeding; "always" fails every attempt.
    """

    def __init__(
        self,
        payloads: Optional[Dict[str, bytes]] = None,
        trees: Optional[Dict[str, Dict]] = None,
        failures: Optional[Dict[str, object]] = None,
        delay: float = 0.0,
    ):
        self.payloads = dict(payloads or {})
        self.trees = dict(trees or {})
        self.failures = dict(failures or {})
        self.delay = delay
        self.calls: List[str] = []

    async def fetch_design_tree(self, reference: str) -> Dict:
        return copy.deepcopy(self.trees[reference])

    async def fetch_image_bytes(self, reference: str) -> bytes:
        self.calls.append(reference)
        if self.delay:
            await asyncio.sleep(self.delay)
        remaining = self.failures.get(reference)
        if remaining == "always":
            raise ConnectionError(f"unreachable: {reference}")
        if remaining:
            self.failures[reference] = remaining - 1
            raise ConnectionError(f"transient failure: {reference}")
        return self.payloads[reference]


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """Keep retry backoff negligible in tests."""
    monkeypatch.setattr(settings, "ASSET_RETRY_BASE_DELAY", 0.001)
    monkeypatch.setattr(settings, "ASSET_RETRY_MAX_DELAY", 0.002)


@pytest.fixture
def vocabulary_data():
    return copy.deepcopy(VOCABULARY_DATA)


@pytest.fixture
def vocabulary(vocabulary_data):
    return vocabulary_from_dict(vocabulary_data)


@pytest.fixture
def screen_tree():
    return _screen_tree()


@pytest.fixture
def source():
    return FakeSource(payloads={"hero.png": PNG_A})
