"""Catalogue local des textures, synchronisé avec le moteur après chaque mutation."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, List, Optional, Sequence

import numpy as np

from models.texture import TextureInfo, TextureParams, TextureUpdate
from services.engine import RenderingEngine, coerce_textures
from services.errors import (
    CatalogRefreshError,
    ConcurrentMutation,
    EngineMutationFailure,
    InvalidTextureParams,
)
from utils.async_worker import EngineWorker

SuccessCallback = Callable[[List[TextureInfo]], None]
ErrorCallback = Callable[[Exception], None]


class TextureCatalogService:
    """
    Cache of the engine's texture list.

    Only one apply/update/remove may be pending at a time; a second request
    raises ConcurrentMutation before reaching the engine. After a successful
    mutation the whole list is re-read from the engine and ``version`` is
    incremented; on failure the local list is left untouched.
    """

    def __init__(
        self,
        engine: RenderingEngine,
        worker: EngineWorker,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.engine = engine
        self.worker = worker
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._textures: tuple[TextureInfo, ...] = ()
        self._version: int = 0
        self._pending: Optional[str] = None

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #
    @property
    def textures(self) -> List[TextureInfo]:
        with self._lock:
            return list(self._textures)

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    @property
    def pending_operation(self) -> Optional[str]:
        with self._lock:
            return self._pending

    @property
    def is_pending(self) -> bool:
        return self.pending_operation is not None

    def get(self, texture_id: int) -> Optional[TextureInfo]:
        for tex in self.textures:
            if tex.id == texture_id:
                return tex
        return None

    def reset(self, textures: Sequence[TextureInfo] = ()) -> None:
        """Replace the catalog wholesale (used after a bundle load)."""
        with self._lock:
            self._textures = tuple(textures)
            self._version += 1

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #
    def apply_texture(
        self,
        mask: Any,
        image_bytes: bytes,
        params: Optional[TextureParams] = None,
        *,
        on_success: Optional[SuccessCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        """Apply ``image_bytes`` as a new texture on the pixels of ``mask``."""
        params = (params or TextureParams()).validate()
        indices = np.asarray(mask, dtype=np.int64).ravel()
        if indices.size == 0 or np.any(indices < 0):
            raise InvalidTextureParams("Masque de texture vide ou invalide.")
        if not image_bytes:
            raise InvalidTextureParams("Image de texture vide.")
        self._mutate(
            "apply_texture",
            self.engine.apply_texture,
            (indices.astype(np.uint32), bytes(image_bytes), params.to_engine()),
            on_success,
            on_error,
        )

    def update_texture(
        self,
        texture_id: int,
        update: TextureUpdate,
        *,
        on_success: Optional[SuccessCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        update.validate()
        self._mutate(
            "update_texture",
            self.engine.update_texture,
            (int(texture_id), update.to_engine()),
            on_success,
            on_error,
        )

    def remove_texture(
        self,
        texture_id: int,
        *,
        on_success: Optional[SuccessCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._mutate(
            "remove_texture",
            self.engine.remove_texture,
            (int(texture_id),),
            on_success,
            on_error,
        )

    def refresh(
        self,
        *,
        on_success: Optional[SuccessCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        """Re-read the full texture list from the engine."""

        def _handle(result: Any) -> None:
            if isinstance(result, Exception):
                self._report(on_error, result, "refresh")
                return
            self._store(result)
            if on_success:
                on_success(list(result))

        self.worker.enqueue_task(self._read_textures, callback=_handle)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _mutate(
        self,
        operation: str,
        call: Callable[..., Any],
        args: tuple,
        on_success: Optional[SuccessCallback],
        on_error: Optional[ErrorCallback],
    ) -> None:
        with self._lock:
            if self._pending is not None:
                raise ConcurrentMutation(
                    f"{operation} refusé: {self._pending} toujours en cours."
                )
            self._pending = operation
        self.logger.debug("Mutation %s envoyée au moteur", operation)

        def _task() -> List[TextureInfo]:
            try:
                call(*args)
            except Exception as exc:
                raise EngineMutationFailure(operation, str(exc)) from exc
            return self._read_textures()

        def _handle(result: Any) -> None:
            if isinstance(result, Exception):
                with self._lock:
                    self._pending = None
                self._report(on_error, result, operation)
                return
            self._store(result, clear_pending=True)
            self.logger.info("%s terminé | textures=%d", operation, len(result))
            if on_success:
                on_success(list(result))

        try:
            self.worker.enqueue_task(_task, callback=_handle)
        except Exception:
            with self._lock:
                self._pending = None
            raise

    def _read_textures(self) -> List[TextureInfo]:
        try:
            return coerce_textures(self.engine.get_textures())
        except Exception as exc:
            raise CatalogRefreshError(f"Lecture des textures impossible: {exc}") from exc

    def _store(self, textures: Sequence[TextureInfo], *, clear_pending: bool = False) -> None:
        with self._lock:
            self._textures = tuple(textures)
            self._version += 1
            if clear_pending:
                self._pending = None

    def _report(self, on_error: Optional[ErrorCallback], exc: Exception, operation: str) -> None:
        self.logger.error("%s en échec: %s", operation, exc, exc_info=exc)
        if on_error:
            on_error(exc)
