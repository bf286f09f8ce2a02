from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

from config.constants import NO_SEGMENT


@dataclass(frozen=True)
class Segment:
    """Named region of the image described by its pixel-linear indices."""

    segment_id: int
    mask: np.ndarray  # int64 linear indices (y * width + x)
    class_name: str = ""

    def __post_init__(self) -> None:
        mask = _as_index_array(self.mask)
        mask.setflags(write=False)
        object.__setattr__(self, "segment_id", int(self.segment_id))
        object.__setattr__(self, "mask", mask)
        object.__setattr__(self, "class_name", str(self.class_name or ""))

    @property
    def pixel_count(self) -> int:
        return int(self.mask.size)


@dataclass(frozen=True)
class IndexMap:
    """Dense per-pixel lookup table (segment id or NO_SEGMENT), read-only."""

    width: int
    height: int
    table: np.ndarray  # int32, shape (width * height,)
    rejected_segments: Tuple[int, ...] = field(default_factory=tuple)
    overlap_count: int = 0

    def segment_at(self, pixel_index: Optional[int]) -> Optional[int]:
        """Return the segment owning ``pixel_index``, or None."""
        if pixel_index is None:
            return None
        if pixel_index < 0 or pixel_index >= self.table.size:
            return None
        value = int(self.table[pixel_index])
        return None if value == NO_SEGMENT else value

    def segment_at_xy(self, x: int, y: int) -> Optional[int]:
        if x < 0 or y < 0 or x >= self.width or y >= self.height:
            return None
        return self.segment_at(int(y) * self.width + int(x))

    def as_image(self) -> np.ndarray:
        """View of the table shaped (H, W)."""
        return self.table.reshape(self.height, self.width)


def _as_index_array(mask) -> np.ndarray:
    # Sets/iterables from the engine have no defined order; keep them sorted.
    if isinstance(mask, (set, frozenset)):
        return np.array(sorted(int(i) for i in mask), dtype=np.int64)
    if isinstance(mask, np.ndarray):
        return mask.astype(np.int64, copy=True).ravel()
    return np.fromiter((int(i) for i in mask), dtype=np.int64)
