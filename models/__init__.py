"""
Modèles de l'architecture MVC du visualiseur.

- Segment / IndexMap : régions de l'image et table pixel -> segment
- OutputBuffer : snapshot RGBA renvoyé par le moteur de rendu
- TextureInfo / TextureParams / TextureUpdate : catalogue de textures
- SessionModel : état de la session (statut, survol, sélection)
"""

from .output_buffer import OutputBuffer
from .segment import IndexMap, Segment
from .session_model import SessionModel, SessionStatus
from .texture import TextureInfo, TextureParams, TextureUpdate

__all__ = [
    'IndexMap',
    'OutputBuffer',
    'Segment',
    'SessionModel',
    'SessionStatus',
    'TextureInfo',
    'TextureParams',
    'TextureUpdate',
]
