"""
Contrat avec le moteur de rendu/segmentation externe.

Le moteur charge le bundle, fournit segments, buffer RGBA et catalogue de
textures, et applique les mutations de textures. Tous les appels peuvent
échouer; seuls les trois ``get_*`` sont des lectures pures.
"""

from __future__ import annotations

import importlib
import logging
from typing import Any, Callable, Dict, List, Mapping, Protocol, Sequence

from models.output_buffer import OutputBuffer
from models.segment import Segment
from models.texture import TextureInfo

logger = logging.getLogger(__name__)


class RenderingEngine(Protocol):
    def load(self, bundle_bytes: bytes) -> None: ...

    def get_segments(self) -> Sequence[Any]: ...

    def get_output_buffer(self) -> Any: ...

    def get_textures(self) -> Sequence[Any]: ...

    def apply_texture(self, mask: Any, image_bytes: bytes, params: Dict[str, float]) -> None: ...

    def update_texture(self, texture_id: int, partial_params: Dict[str, float]) -> None: ...

    def remove_texture(self, texture_id: int) -> None: ...


def _field(raw: Any, key: str) -> Any:
    if isinstance(raw, Mapping):
        return raw[key]
    return getattr(raw, key)


def coerce_segments(raw_segments: Sequence[Any]) -> List[Segment]:
    """Engine segment records -> Segment list (order preserved)."""
    segments: List[Segment] = []
    for raw in raw_segments:
        if isinstance(raw, Segment):
            segments.append(raw)
            continue
        segments.append(
            Segment(
                segment_id=_field(raw, "segment_id"),
                mask=_field(raw, "mask"),
                class_name=_field(raw, "class_name"),
            )
        )
    return segments


def coerce_output_buffer(raw: Any) -> OutputBuffer:
    if isinstance(raw, OutputBuffer):
        return raw
    return OutputBuffer(
        width=_field(raw, "width"),
        height=_field(raw, "height"),
        pixels=_field(raw, "pixels"),
    )


def coerce_textures(raw_textures: Sequence[Any]) -> List[TextureInfo]:
    return [t if isinstance(t, TextureInfo) else TextureInfo.from_engine(t) for t in raw_textures]


def load_engine_factory(dotted_path: str) -> Callable[[], RenderingEngine]:
    """Resolve ``package.module:ClassName`` (or ``package.module.ClassName``)."""
    if not dotted_path:
        raise ValueError("Aucun moteur de rendu configuré.")
    if ":" in dotted_path:
        module_name, _, attr = dotted_path.partition(":")
    else:
        module_name, _, attr = dotted_path.rpartition(".")
    if not module_name or not attr:
        raise ValueError(f"Chemin de moteur invalide: {dotted_path!r}")

    module = importlib.import_module(module_name)
    try:
        factory = getattr(module, attr)
    except AttributeError as exc:
        raise ValueError(f"{attr!r} introuvable dans {module_name!r}") from exc
    if not callable(factory):
        raise ValueError(f"{dotted_path!r} n'est pas appelable")
    logger.info("Moteur de rendu: %s", dotted_path)
    return factory
