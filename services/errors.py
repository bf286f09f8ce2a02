"""Exceptions du visualiseur (chargement, IndexMap, catalogue de textures)."""

from __future__ import annotations

from typing import Optional


class VisualizerError(Exception):
    """Base class for every error surfaced by the session core."""


class BundleLoadError(VisualizerError):
    """The engine could not load the bundle (malformed or unreadable)."""


class OutOfBoundsMask(VisualizerError):
    """A segment mask references pixels outside the image."""

    def __init__(
        self,
        segment_id: Optional[int],
        bad_indices: int,
        pixel_count: int,
        example: Optional[int] = None,
    ) -> None:
        self.segment_id = segment_id
        self.bad_indices = int(bad_indices)
        self.pixel_count = int(pixel_count)
        self.example = example
        super().__init__(
            f"Segment {segment_id}: {self.bad_indices} index hors de [0, {self.pixel_count})"
            + (f" (ex: {example})" if example is not None else "")
        )


class ConcurrentMutation(VisualizerError):
    """A texture mutation was requested while another one is still pending."""


class EngineMutationFailure(VisualizerError):
    """The engine rejected an apply/update/remove request."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


class CatalogRefreshError(VisualizerError):
    """The texture list could not be re-read from the engine."""


class InvalidTextureParams(VisualizerError, ValueError):
    """A texture parameter is outside its allowed range."""


class SessionNotReady(VisualizerError):
    """The operation needs a loaded bundle."""
