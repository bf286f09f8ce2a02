"""Controller de session : chargement du bundle, survol, sélection et textures."""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from config.constants import DEFAULT_TEXTURE_SCALE
from models.output_buffer import OutputBuffer
from models.segment import IndexMap, Segment
from models.session_model import SessionModel, SessionStatus
from models.texture import (
    TextureCardModel,
    TextureInfo,
    TextureParams,
    TextureUpdate,
    texture_card_model,
)
from services.engine import (
    RenderingEngine,
    coerce_output_buffer,
    coerce_segments,
    coerce_textures,
)
from services.errors import (
    BundleLoadError,
    CatalogRefreshError,
    ConcurrentMutation,
    SessionNotReady,
)
from services.index_map_service import build_index_map
from services.overlay_service import OverlayService
from services.pointer_resolver import (
    CanvasRect,
    PointerSample,
    primary_touch,
    resolve_pixel_index,
    segment_at,
)
from services.texture_catalog_service import TextureCatalogService
from utils.async_worker import EngineWorker, ThreadedAsyncWorker

_LoadResult = Tuple[List[Segment], IndexMap, OutputBuffer, List[TextureInfo]]


class SessionController:
    """
    Owns one visualizer session against one rendering engine.

    Status goes EMPTY -> LOADING -> READY; while READY a texture mutation may
    be pending (``is_mutating``). Every engine call goes through ``worker``;
    callbacks (``on_state_changed``, ``on_segment_selected``, ``on_error``)
    may therefore fire on the worker thread.
    """

    def __init__(
        self,
        engine: RenderingEngine,
        *,
        worker: Optional[EngineWorker] = None,
        overlay_service: Optional[OverlayService] = None,
        logger: Optional[logging.Logger] = None,
        on_state_changed: Optional[Callable[[], None]] = None,
        on_segment_selected: Optional[Callable[[Segment], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.engine = engine
        self._owns_worker = worker is None
        if worker is None:
            worker = ThreadedAsyncWorker("engine-worker")
        worker.start()
        self.worker = worker
        self.overlay_service = overlay_service or OverlayService()
        self.catalog = TextureCatalogService(engine, worker, logger=self.logger)
        self.model = SessionModel()

        self._lock = threading.RLock()
        self._generation = 0
        self._mutating: Optional[str] = None
        self._frame_cache: Optional[Tuple[Tuple[int, Optional[int]], np.ndarray]] = None
        self._closed = False

        self._listeners: List[Callable[[], None]] = []
        if on_state_changed is not None:
            self._listeners.append(on_state_changed)
        self._on_segment_selected = on_segment_selected
        self._on_error = on_error

    # ------------------------------------------------------------------ #
    # Status signals
    # ------------------------------------------------------------------ #
    @property
    def status(self) -> SessionStatus:
        with self._lock:
            return self.model.status

    @property
    def is_loading(self) -> bool:
        return self.status is SessionStatus.LOADING

    @property
    def is_mutating(self) -> bool:
        with self._lock:
            return self._mutating is not None

    @property
    def interaction_enabled(self) -> bool:
        """Pointer hit-testing is only live when READY and idle."""
        with self._lock:
            return self.model.status is SessionStatus.READY and self._mutating is None

    @property
    def busy_message(self) -> Optional[str]:
        with self._lock:
            if self.model.status is SessionStatus.LOADING:
                return "Loading bundle…"
            if self._mutating is not None:
                return "Applying texture…"
            return None

    @property
    def hovered_segment_id(self) -> Optional[int]:
        with self._lock:
            return self.model.hovered_segment_id

    @property
    def selected_segment_id(self) -> Optional[int]:
        with self._lock:
            return self.model.selected_segment_id

    @property
    def hovered_class_name(self) -> str:
        with self._lock:
            segment = self.model.segment(self.model.hovered_segment_id)
            return segment.class_name if segment is not None and segment.class_name else "none"

    @property
    def image_size(self) -> Optional[Tuple[int, int]]:
        with self._lock:
            return self.model.image_size

    @property
    def image_version(self) -> int:
        """Bumped whenever the engine buffer or texture list is replaced."""
        with self._lock:
            return self.model.image_version

    @property
    def index_map(self) -> Optional[IndexMap]:
        with self._lock:
            return self.model.index_map

    @property
    def load_warning(self) -> Optional[str]:
        """Message for segments dropped from the index map at load, if any."""
        with self._lock:
            index_map = self.model.index_map
            if index_map is None or not index_map.rejected_segments:
                return None
            ids = ", ".join(str(i) for i in index_map.rejected_segments)
            return f"Segment(s) ignoré(s) (masque hors image): {ids}"

    @property
    def segments(self) -> List[Segment]:
        with self._lock:
            return list(self.model.segments)

    @property
    def textures(self) -> List[TextureInfo]:
        with self._lock:
            return list(self.model.textures)

    def add_listener(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    # ------------------------------------------------------------------ #
    # Bundle loading
    # ------------------------------------------------------------------ #
    def load_bundle(
        self,
        bundle_bytes: bytes,
        *,
        on_loaded: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        """Discard the current session and load ``bundle_bytes`` (any state)."""
        with self._lock:
            self._ensure_open()
            self._generation += 1
            generation = self._generation
            self.model.clear()
            self.model.status = SessionStatus.LOADING
            self._mutating = None
            self._frame_cache = None
        self.catalog.reset()
        self.logger.info("Chargement du bundle (%d octets)", len(bundle_bytes))
        self._notify()

        def _handle(result) -> None:
            with self._lock:
                if generation != self._generation:
                    self.logger.debug("Résultat de chargement obsolète ignoré")
                    return
                if isinstance(result, Exception):
                    self.model.clear()
                    self.model.status = SessionStatus.EMPTY
                    self.catalog.reset()
                else:
                    segments, index_map, buffer, textures = result
                    self.model.set_bundle(segments, index_map, buffer, textures)
                    self.catalog.reset(textures)
                    self.model.status = SessionStatus.READY
            self._notify()
            if isinstance(result, Exception):
                self._report(result, on_error)
                return
            self.logger.info(
                "Bundle chargé | %dx%d | segments=%d | textures=%d",
                result[2].width,
                result[2].height,
                len(result[0]),
                len(result[3]),
            )
            if on_loaded:
                on_loaded()

        self.worker.enqueue_task(self._load_task, callback=_handle, args=(bytes(bundle_bytes),))

    def _load_task(self, bundle_bytes: bytes) -> _LoadResult:
        try:
            self.engine.load(bundle_bytes)
            segments = coerce_segments(self.engine.get_segments())
            buffer = coerce_output_buffer(self.engine.get_output_buffer())
            textures = coerce_textures(self.engine.get_textures())
        except Exception as exc:
            raise BundleLoadError(f"Bundle illisible: {exc}") from exc
        index_map = build_index_map(segments, buffer.width, buffer.height)
        return segments, index_map, buffer, textures

    # ------------------------------------------------------------------ #
    # Pointer / touch
    # ------------------------------------------------------------------ #
    def pointer_move(self, sample: Optional[PointerSample], rect: CanvasRect) -> Optional[int]:
        """Update the hovered segment; return it (None = nothing under the pointer)."""
        with self._lock:
            if not self._interaction_enabled_locked():
                return self.model.hovered_segment_id
            segment_id = self._segment_under(sample, rect)
            changed = self.model.set_hovered(segment_id)
        if changed:
            self._notify()
        return segment_id

    def touch_move(self, touches: Sequence[PointerSample], rect: CanvasRect) -> Optional[int]:
        return self.pointer_move(primary_touch(touches), rect)

    def pointer_leave(self) -> None:
        with self._lock:
            changed = self.model.set_hovered(None)
        if changed:
            self._notify()

    touch_cancel = pointer_leave

    def click(self, sample: Optional[PointerSample], rect: CanvasRect) -> Optional[int]:
        """
        Select the hovered segment if the click lands on it.

        Ignored while loading or mutating. Returns the selected segment id.
        """
        with self._lock:
            if not self._interaction_enabled_locked():
                self.logger.debug("Clic ignoré (session %s, mutation=%s)", self.model.status.value, self._mutating)
                return None
            hovered = self.model.hovered_segment_id
            if hovered is None:
                return None
            if self._segment_under(sample, rect) != hovered:
                return None
            self.model.set_selected(hovered)
            segment = self.model.segment(hovered)
        self._notify()
        if segment is not None and self._on_segment_selected:
            self._on_segment_selected(segment)
        return hovered

    def touch_click(self, touches: Sequence[PointerSample], rect: CanvasRect) -> Optional[int]:
        return self.click(primary_touch(touches), rect)

    def _segment_under(self, sample: Optional[PointerSample], rect: CanvasRect) -> Optional[int]:
        index_map = self.model.index_map
        if index_map is None:
            return None
        pixel_index = resolve_pixel_index(sample, rect, index_map.width, index_map.height)
        return segment_at(index_map, pixel_index)

    # ------------------------------------------------------------------ #
    # Textures
    # ------------------------------------------------------------------ #
    def apply_texture(
        self,
        image_bytes: bytes,
        scale: float = DEFAULT_TEXTURE_SCALE,
        *,
        segment_id: Optional[int] = None,
        on_done: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> bool:
        """Apply a texture on ``segment_id`` (default: the selected segment)."""
        with self._lock:
            self._require_ready()
            target = segment_id if segment_id is not None else self.model.selected_segment_id
            segment = self.model.segment(target)
        if segment is None:
            self.logger.warning("Aucun segment sélectionné pour la texture")
            return False
        params = TextureParams(scale=float(scale)).validate()
        self._run_mutation(
            "apply_texture",
            lambda **cbs: self.catalog.apply_texture(segment.mask, image_bytes, params, **cbs),
            on_done,
            on_error,
            clear_hover=True,
        )
        return True

    def update_texture(
        self,
        texture_id: int,
        update: TextureUpdate,
        *,
        on_done: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        update.validate()
        self._run_mutation(
            "update_texture",
            lambda **cbs: self.catalog.update_texture(texture_id, update, **cbs),
            on_done,
            on_error,
        )

    def update_texture_field(self, texture_id: int, field_name: str, value: float, **kwargs) -> None:
        self.update_texture(texture_id, TextureUpdate.single(field_name, value), **kwargs)

    def remove_texture(
        self,
        texture_id: int,
        *,
        on_done: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self._run_mutation(
            "remove_texture",
            lambda **cbs: self.catalog.remove_texture(texture_id, **cbs),
            on_done,
            on_error,
        )

    def refresh(
        self,
        *,
        on_done: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        """Re-read textures and output buffer from the engine."""
        with self._lock:
            self._require_ready()
            generation = self._generation

        def _success(textures: List[TextureInfo]) -> None:
            try:
                buffer = self._read_output_buffer("refresh")
            except CatalogRefreshError as exc:
                with self._lock:
                    if generation == self._generation:
                        self.model.replace_textures(textures)
                self._notify()
                self._report(exc, on_error)
                return
            if self._apply_engine_state(generation, textures, buffer) and on_done:
                on_done()

        self.catalog.refresh(on_success=_success, on_error=lambda exc: self._report(exc, on_error))

    def texture_view_models(self) -> List[TextureCardModel]:
        return [texture_card_model(tex) for tex in self.textures]

    def _run_mutation(
        self,
        operation: str,
        submit: Callable[..., None],
        on_done: Optional[Callable[[], None]],
        on_error: Optional[Callable[[Exception], None]],
        *,
        clear_hover: bool = False,
    ) -> None:
        with self._lock:
            self._require_ready()
            if self._mutating is not None:
                raise ConcurrentMutation(f"{operation} refusé: {self._mutating} toujours en cours.")
            self._mutating = operation
            generation = self._generation
        self._notify()

        def _success(textures: List[TextureInfo]) -> None:
            try:
                buffer = self._read_output_buffer(operation)
            except CatalogRefreshError as exc:
                _failure(exc)
                return
            if not self._apply_engine_state(
                generation, textures, buffer, clear_hover=clear_hover, clear_mutating=True
            ):
                return
            if on_done:
                on_done()

        def _failure(exc: Exception) -> None:
            with self._lock:
                if generation != self._generation:
                    return
                self._mutating = None
                self.model.replace_textures(self.catalog.textures)
                if clear_hover:
                    self.model.set_hovered(None)
            self._notify()
            self._report(exc, on_error)

        try:
            submit(on_success=_success, on_error=_failure)
        except Exception:
            with self._lock:
                if generation == self._generation:
                    self._mutating = None
            self._notify()
            raise

    def _read_output_buffer(self, operation: str) -> OutputBuffer:
        try:
            return coerce_output_buffer(self.engine.get_output_buffer())
        except Exception as exc:
            raise CatalogRefreshError(f"Buffer de sortie illisible après {operation}: {exc}") from exc

    def _apply_engine_state(
        self,
        generation: int,
        textures: List[TextureInfo],
        buffer: OutputBuffer,
        *,
        clear_hover: bool = False,
        clear_mutating: bool = False,
    ) -> bool:
        # Seule la fin de la mutation en cours libère le flag.
        with self._lock:
            if generation != self._generation:
                self.logger.debug("Résultat moteur obsolète ignoré")
                return False
            self.model.replace_textures(textures)
            self.model.replace_buffer(buffer)
            if clear_mutating:
                self._mutating = None
            if clear_hover:
                self.model.set_hovered(None)
        self._notify()
        return True

    # ------------------------------------------------------------------ #
    # Rendering
    # ------------------------------------------------------------------ #
    def render(self) -> Optional[np.ndarray]:
        """Current display frame (H, W, 4) RGBA, read-only; None when not READY."""
        with self._lock:
            buffer = self.model.base_buffer
            if self.model.status is not SessionStatus.READY or buffer is None:
                return None
            hovered = self.model.hovered_segment_id
            key = (self.model.image_version, hovered)
            if self._frame_cache is not None and self._frame_cache[0] == key:
                return self._frame_cache[1]
            segment = self.model.segment(hovered)
        frame = self.overlay_service.composite(
            buffer,
            segment.mask if segment is not None else None,
            segment_id=hovered,
        )
        frame.setflags(write=False)
        with self._lock:
            if key == (self.model.image_version, self.model.hovered_segment_id):
                self._frame_cache = (key, frame)
        return frame

    # ------------------------------------------------------------------ #
    # Teardown
    # ------------------------------------------------------------------ #
    def close(self) -> None:
        """End the session: drop all state and stop the engine worker if owned."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._generation += 1
            self.model.clear()
            self.model.status = SessionStatus.EMPTY
            self._mutating = None
            self._frame_cache = None
        self.catalog.reset()
        if self._owns_worker:
            self.worker.stop()
        self.logger.info("Session fermée")
        self._notify()

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _interaction_enabled_locked(self) -> bool:
        return self.model.status is SessionStatus.READY and self._mutating is None

    def _require_ready(self) -> None:
        self._ensure_open()
        if self.model.status is not SessionStatus.READY:
            raise SessionNotReady(f"Session {self.model.status.value}: aucun bundle chargé.")

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionNotReady("Session fermée.")

    def _notify(self) -> None:
        for callback in list(self._listeners):
            callback()

    def _report(self, exc: Exception, on_error: Optional[Callable[[Exception], None]]) -> None:
        handler = on_error or self._on_error
        if handler is not None:
            handler(exc)
        else:
            self.logger.error("Erreur non traitée: %s", exc, exc_info=exc)
