"""Construction de la table pixel -> segment à partir des masques du moteur."""

from __future__ import annotations

import logging
from typing import List, Sequence, Set

import numpy as np

from config.constants import NO_SEGMENT
from models.segment import IndexMap, Segment
from services.errors import OutOfBoundsMask

logger = logging.getLogger(__name__)


def check_mask_bounds(segment: Segment, pixel_count: int) -> None:
    """Raise OutOfBoundsMask if any index of ``segment`` is outside the image."""
    mask = segment.mask
    if mask.size == 0:
        return
    bad = (mask < 0) | (mask >= pixel_count)
    if np.any(bad):
        raise OutOfBoundsMask(
            segment.segment_id,
            int(np.count_nonzero(bad)),
            pixel_count,
            example=int(mask[bad][0]),
        )


def build_index_map(
    segments: Sequence[Segment],
    width: int,
    height: int,
    *,
    strict: bool = False,
) -> IndexMap:
    """
    Build the dense IndexMap for an image of ``width`` x ``height``.

    Segments are written in the given order (last write wins on overlap).
    A segment with indices outside the image contributes nothing; with
    ``strict=True`` the OutOfBoundsMask is raised instead.
    """
    width = int(width)
    height = int(height)
    if width < 0 or height < 0:
        raise ValueError(f"Dimensions invalides: {width}x{height}")

    pixel_count = width * height
    table = np.full(pixel_count, NO_SEGMENT, dtype=np.int32)
    rejected: List[int] = []
    overlap_count = 0
    seen_ids: Set[int] = set()

    for segment in segments:
        try:
            check_mask_bounds(segment, pixel_count)
        except OutOfBoundsMask as exc:
            if strict:
                raise
            logger.warning("Masque ignoré: %s", exc)
            rejected.append(segment.segment_id)
            continue

        if segment.segment_id == NO_SEGMENT:
            logger.warning("Segment id %d réservé (sentinelle), segment ignoré.", NO_SEGMENT)
            rejected.append(segment.segment_id)
            continue

        if segment.segment_id in seen_ids:
            logger.warning(
                "Segment id %d en double: seul le dernier segment reste adressable par id.",
                segment.segment_id,
            )
        seen_ids.add(segment.segment_id)

        indices = segment.mask
        claimed = table[indices] != NO_SEGMENT
        if np.any(claimed):
            n = int(np.count_nonzero(claimed))
            overlap_count += n
            logger.warning(
                "Segment %d recouvre %d pixel(s) déjà attribués (dernier écrit gagne).",
                segment.segment_id,
                n,
            )
        table[indices] = segment.segment_id

    table.setflags(write=False)
    logger.info(
        "IndexMap construite | %dx%d | segments=%d | rejetés=%d | recouvrements=%d",
        width,
        height,
        len(segments),
        len(rejected),
        overlap_count,
    )
    return IndexMap(
        width=width,
        height=height,
        table=table,
        rejected_segments=tuple(rejected),
        overlap_count=overlap_count,
    )
