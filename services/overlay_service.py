from __future__ import annotations

from typing import Optional

import numpy as np

from config.constants import (
    HIGHLIGHT_BLUE_FACTOR,
    HIGHLIGHT_GREEN_FACTOR,
    HIGHLIGHT_GREEN_OFFSET,
    HIGHLIGHT_RED_FACTOR,
)
from models.output_buffer import OutputBuffer
from services.errors import OutOfBoundsMask


class OverlayService:
    """Compose la surbrillance du segment survolé sur une copie du buffer moteur."""

    def composite(
        self,
        buffer: OutputBuffer,
        mask: Optional[np.ndarray] = None,
        *,
        segment_id: Optional[int] = None,
    ) -> np.ndarray:
        """Return a new (H, W, 4) uint8 frame; ``buffer`` is never modified."""
        frame = buffer.as_rgba()
        if mask is None:
            return frame

        indices = np.asarray(mask, dtype=np.int64).ravel()
        if indices.size == 0:
            return frame
        bad = (indices < 0) | (indices >= buffer.pixel_count)
        if np.any(bad):
            raise OutOfBoundsMask(
                segment_id,
                int(np.count_nonzero(bad)),
                buffer.pixel_count,
                example=int(indices[bad][0]),
            )

        flat = frame.reshape(-1, 4)
        rgb = flat[indices, :3].astype(np.float64)
        rgb[:, 0] *= HIGHLIGHT_RED_FACTOR
        rgb[:, 1] = rgb[:, 1] * HIGHLIGHT_GREEN_FACTOR + HIGHLIGHT_GREEN_OFFSET
        rgb[:, 2] *= HIGHLIGHT_BLUE_FACTOR
        # Arrondi au pair le plus proche puis saturation (octets "clamped").
        flat[indices, :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
        return frame
