from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, List, Mapping, Optional

from config.constants import (
    DEFAULT_TEXTURE_NAME,
    DEFAULT_TEXTURE_SCALE,
    TEXTURE_FIELD_LABELS,
    TEXTURE_FIELD_RANGES,
)
from services.errors import InvalidTextureParams

EDITABLE_FIELDS = ("rotation", "scale", "offset_x", "offset_y")


@dataclass(frozen=True)
class TextureInfo:
    """One applied texture as reported by the engine (id assigned by the engine)."""

    id: int
    name: int
    rotation: float
    scale: float
    offset_x: float
    offset_y: float

    @classmethod
    def from_engine(cls, raw: Any) -> "TextureInfo":
        """Build from an engine record (mapping or attribute object)."""
        get = raw.get if isinstance(raw, Mapping) else (lambda key: getattr(raw, key))
        return cls(
            id=int(get("id")),
            name=int(get("name")),
            rotation=float(get("rotation")),
            scale=float(get("scale")),
            offset_x=float(get("offset_x")),
            offset_y=float(get("offset_y")),
        )

    def field_value(self, name: str) -> float:
        if name not in EDITABLE_FIELDS:
            raise KeyError(name)
        return float(getattr(self, name))


@dataclass(frozen=True)
class TextureParams:
    """Parameters for a new texture."""

    name: int = DEFAULT_TEXTURE_NAME
    rotation: float = 0.0
    scale: float = DEFAULT_TEXTURE_SCALE
    offset_x: float = 0.0
    offset_y: float = 0.0

    def validate(self) -> "TextureParams":
        for key in EDITABLE_FIELDS:
            validate_field(key, getattr(self, key))
        return self

    def to_engine(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class TextureUpdate:
    """Partial update: only the fields that are set are sent to the engine."""

    rotation: Optional[float] = None
    scale: Optional[float] = None
    offset_x: Optional[float] = None
    offset_y: Optional[float] = None

    @classmethod
    def single(cls, field_name: str, value: float) -> "TextureUpdate":
        """Update carrying one field (slider edits)."""
        if field_name not in EDITABLE_FIELDS:
            raise InvalidTextureParams(f"Champ de texture non modifiable: {field_name!r}")
        return cls(**{field_name: float(value)})

    def validate(self) -> "TextureUpdate":
        values = self.to_engine()
        if not values:
            raise InvalidTextureParams("Mise à jour de texture vide.")
        for key, value in values.items():
            validate_field(key, value)
        return self

    def to_engine(self) -> Dict[str, float]:
        return {
            f.name: float(getattr(self, f.name))
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


def validate_field(name: str, value: Any) -> float:
    """Check ``value`` against the configured range of ``name``."""
    lo, hi, _step = TEXTURE_FIELD_RANGES[name]
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidTextureParams(f"{name}: valeur non numérique {value!r}") from exc
    if math.isnan(number) or number < lo or number > hi:
        raise InvalidTextureParams(f"{name}={number} hors plage [{lo}, {hi}]")
    return number


@dataclass(frozen=True)
class TextureFieldModel:
    """One editable numeric field of a texture card."""

    name: str
    label: str
    value: float
    minimum: float
    maximum: float
    step: float


@dataclass(frozen=True)
class TextureCardModel:
    texture_id: int
    title: str
    fields: List[TextureFieldModel]


def texture_card_model(texture: TextureInfo) -> TextureCardModel:
    """View model consumed by the texture panel (one card per texture)."""
    card_fields = []
    for key in EDITABLE_FIELDS:
        lo, hi, step = TEXTURE_FIELD_RANGES[key]
        card_fields.append(
            TextureFieldModel(
                name=key,
                label=TEXTURE_FIELD_LABELS.get(key, key),
                value=texture.field_value(key),
                minimum=lo,
                maximum=hi,
                step=step,
            )
        )
    return TextureCardModel(texture_id=texture.id, title=f"Texture #{texture.id}", fields=card_fields)
