from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from config.constants import RGBA_STRIDE


@dataclass(frozen=True)
class OutputBuffer:
    """RGBA snapshot produced by the rendering engine (never written in place)."""

    width: int
    height: int
    pixels: np.ndarray  # uint8, flat, read-only

    def __post_init__(self) -> None:
        width = int(self.width)
        height = int(self.height)
        if width < 0 or height < 0:
            raise ValueError(f"Dimensions invalides: {width}x{height}")
        pixels = np.frombuffer(_as_bytes(self.pixels), dtype=np.uint8).copy()
        expected = width * height * RGBA_STRIDE
        if pixels.size != expected:
            raise ValueError(
                f"Buffer RGBA de {pixels.size} octets, attendu {expected} ({width}x{height}x{RGBA_STRIDE})."
            )
        pixels.setflags(write=False)
        object.__setattr__(self, "width", width)
        object.__setattr__(self, "height", height)
        object.__setattr__(self, "pixels", pixels)

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    def as_rgba(self) -> np.ndarray:
        """Writable (H, W, 4) copy of the pixels."""
        return self.pixels.reshape(self.height, self.width, RGBA_STRIDE).copy()


def _as_bytes(pixels: Any) -> bytes:
    if isinstance(pixels, np.ndarray):
        return np.ascontiguousarray(pixels, dtype=np.uint8).tobytes()
    return bytes(pixels)
