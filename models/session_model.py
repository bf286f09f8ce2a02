from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Tuple

from models.output_buffer import OutputBuffer
from models.segment import IndexMap, Segment
from models.texture import TextureInfo


class SessionStatus(Enum):
    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"


class SessionModel:
    """
    Stores the state of one visualizer session: loaded segments, index map,
    current engine buffer, texture catalog and hover/selection.
    Pure model: no UI, no Qt, no services.
    """

    def __init__(self) -> None:
        self.status: SessionStatus = SessionStatus.EMPTY
        self.image_version: int = 0
        self.clear()

    def clear(self) -> None:
        """Drop everything derived from a bundle (status is left to the caller)."""
        self.segments: List[Segment] = []
        self._segments_by_id: Dict[int, Segment] = {}
        self.index_map: Optional[IndexMap] = None
        self.base_buffer: Optional[OutputBuffer] = None
        self.textures: List[TextureInfo] = []
        self.image_size: Optional[Tuple[int, int]] = None
        self.hovered_segment_id: Optional[int] = None
        self.selected_segment_id: Optional[int] = None
        # Monotone, jamais remis à zéro : sert de clé de cache d'affichage.
        self.image_version += 1

    # ------------------------------------------------------------------ #
    # Bundle
    # ------------------------------------------------------------------ #
    def set_bundle(
        self,
        segments: List[Segment],
        index_map: IndexMap,
        buffer: OutputBuffer,
        textures: List[TextureInfo],
    ) -> None:
        self.segments = list(segments)
        self._segments_by_id = {s.segment_id: s for s in self.segments}
        self.index_map = index_map
        self.base_buffer = buffer
        self.image_size = (buffer.width, buffer.height)
        self.textures = list(textures)
        self.hovered_segment_id = None
        self.selected_segment_id = None
        self.image_version += 1

    @property
    def bundle_loaded(self) -> bool:
        return self.status is SessionStatus.READY

    def segment(self, segment_id: Optional[int]) -> Optional[Segment]:
        if segment_id is None:
            return None
        return self._segments_by_id.get(int(segment_id))

    # ------------------------------------------------------------------ #
    # Hover / selection
    # ------------------------------------------------------------------ #
    def set_hovered(self, segment_id: Optional[int]) -> bool:
        """Update hovered id; return True when it changed."""
        new_id = None if segment_id is None else int(segment_id)
        if new_id == self.hovered_segment_id:
            return False
        self.hovered_segment_id = new_id
        return True

    def set_selected(self, segment_id: Optional[int]) -> None:
        self.selected_segment_id = None if segment_id is None else int(segment_id)

    # ------------------------------------------------------------------ #
    # Engine snapshots
    # ------------------------------------------------------------------ #
    def replace_textures(self, textures: List[TextureInfo]) -> None:
        self.textures = list(textures)
        self.image_version += 1

    def replace_buffer(self, buffer: OutputBuffer) -> None:
        self.base_buffer = buffer
        self.image_size = (buffer.width, buffer.height)
        self.image_version += 1
