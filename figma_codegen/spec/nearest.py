"""Nearest-in-ordered-set matching + perceptual color distance.

One primitive serves every "snap a raw value onto the vocabulary" decision:
color palette lookup, font size steps and spacing steps. Callers choose the
distance function, an optional acceptance threshold and the tie-break key.
"""

from __future__ import annotations

import math
import re
from typing import Callable, Generic, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")
V = TypeVar("V")

_HEX_COLOR_RE = re.compile(r"^#(?:[0-9A-Fa-f]{3}|[0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$")


class Match(Generic[T]):
    """Result of a nearest lookup: the winning candidate and its distance."""

    __slots__ = ("candidate", "distance")

    def __init__(self, candidate: T, distance: float):
        self.candidate = candidate
        self.distance = distance

    def __repr__(self) -> str:
        return f"Match({self.candidate!r}, distance={self.distance:.4f})"


def nearest(
    value: V,
    candidates: Sequence[T],
    distance: Callable[[V, T], float],
    tie_key: Optional[Callable[[T], object]] = None,
    threshold: Optional[float] = None,
) -> Optional[Match[T]]:
    """Return the candidate closest to value, or None.

    Ties (equal distance) go to the candidate with the smallest tie_key;
    without a tie_key, to the one earliest in candidates. A candidate farther
    than threshold is never returned; a distance exactly equal to the
    threshold is accepted.
    """
    best: Optional[Tuple[float, object, int, T]] = None
    for index, candidate in enumerate(candidates):
        d = distance(value, candidate)
        key = (d, tie_key(candidate) if tie_key else index, index, candidate)
        if best is None or key[:3] < best[:3]:
            best = key
    if best is None:
        return None
    if threshold is not None and best[0] > threshold:
        return None
    return Match(best[3], best[0])


def nearest_step(value: float, steps: Sequence[float]) -> Optional[Match[float]]:
    """Snap value onto a step scale. Ties break toward the smaller step."""
    return nearest(value, steps, distance=lambda v, s: abs(v - s), tie_key=lambda s: s)


# ---------------------------------------------------------------------------
# Color space
# ---------------------------------------------------------------------------


def is_hex_color(value: str) -> bool:
    return bool(_HEX_COLOR_RE.fullmatch(value))


def normalize_hex(value: str) -> str:
    """Uppercase #RRGGBB form; alpha is dropped, short form expanded."""
    if not is_hex_color(value):
        raise ValueError(f"Not a hex color: {value!r}")
    digits = value[1:]
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return f"#{digits[:6].upper()}"


def hex_to_rgb(value: str) -> Tuple[int, int, int]:
    digits = normalize_hex(value)[1:]
    return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)


def _srgb_to_linear(channel: float) -> float:
    c = channel / 255.0
    if c <= 0.04045:
        return c / 12.92
    return ((c + 0.055) / 1.055) ** 2.4


def _lab_f(t: float) -> float:
    delta = 6 / 29
    if t > delta ** 3:
        return t ** (1 / 3)
    return t / (3 * delta ** 2) + 4 / 29


# D65 reference white
_XN, _YN, _ZN = 0.95047, 1.0, 1.08883


def hex_to_lab(value: str) -> Tuple[float, float, float]:
    """Convert an sRGB hex color to CIELAB (D65)."""
    r, g, b = (_srgb_to_linear(c) for c in hex_to_rgb(value))
    x = 0.4124564 * r + 0.3575761 * g + 0.1804375 * b
    y = 0.2126729 * r + 0.7151522 * g + 0.0721750 * b
    z = 0.0193339 * r + 0.1191920 * g + 0.9503041 * b
    fx, fy, fz = _lab_f(x / _XN), _lab_f(y / _YN), _lab_f(z / _ZN)
    return 116 * fy - 16, 500 * (fx - fy), 200 * (fy - fz)


def delta_e(a: str, b: str) -> float:
    """CIE76 color difference between two hex colors."""
    la, aa, ba = hex_to_lab(a)
    lb, ab, bb = hex_to_lab(b)
    return math.sqrt((la - lb) ** 2 + (aa - ab) ** 2 + (ba - bb) ** 2)
