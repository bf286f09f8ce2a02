"""Conversion d'une position pointeur/tactile (écran) en index de pixel."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from models.segment import IndexMap


@dataclass(frozen=True)
class PointerSample:
    """Client-space position of a mouse pointer or the primary touch point."""

    client_x: float
    client_y: float


@dataclass(frozen=True)
class CanvasRect:
    """On-screen bounding rectangle of the canvas (client coordinates)."""

    left: float
    top: float
    width: float
    height: float


def primary_touch(touches: Sequence[PointerSample]) -> Optional[PointerSample]:
    """Only the first contact point is used; no contact means no sample."""
    if not touches:
        return None
    return touches[0]


def resolve_pixel_index(
    sample: Optional[PointerSample],
    rect: CanvasRect,
    width: int,
    height: int,
) -> Optional[int]:
    """
    Map ``sample`` to the linear pixel index ``y * width + x`` of a
    ``width`` x ``height`` image drawn in ``rect``.

    Returns None when the point is outside the image (index 0 is a valid hit).
    """
    if sample is None or width <= 0 or height <= 0:
        return None
    if rect.width <= 0 or rect.height <= 0:
        return None

    nx = (sample.client_x - rect.left) / rect.width
    ny = (sample.client_y - rect.top) / rect.height
    if not (math.isfinite(nx) and math.isfinite(ny)):
        return None

    x = math.floor(nx * width)
    y = math.floor(ny * height)
    if x < 0 or y < 0 or x >= width or y >= height:
        return None
    return y * width + x


def segment_at(index_map: Optional[IndexMap], pixel_index: Optional[int]) -> Optional[int]:
    """Segment id under ``pixel_index``, or None (outside / no segment)."""
    if index_map is None:
        return None
    return index_map.segment_at(pixel_index)
