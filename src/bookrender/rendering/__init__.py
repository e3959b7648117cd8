"""Content renderer contracts and implementations."""

from .base import ContentRenderer, MissingReason, RenderedText, RenderMissing, RenderResult
from .directory import DirectoryRenderer

__all__ = [
    "ContentRenderer",
    "DirectoryRenderer",
    "MissingReason",
    "RenderMissing",
    "RenderResult",
    "RenderedText",
]
