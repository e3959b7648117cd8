"""Shared contract for content renderers feeding the document assembler."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Union, runtime_checkable


class MissingReason(str, Enum):
    NOT_FOUND = "not_found"
    NOT_RENDERABLE = "not_renderable"
    INVALID_TITLE = "invalid_title"


@dataclass(frozen=True, slots=True)
class RenderedText:
    """Fully rendered HTML for one page plus the raw text it came from."""

    html: str
    source_text: str
    full_title: str
    author: str | None = None


@dataclass(frozen=True, slots=True)
class RenderMissing:
    """A page that contributes nothing to the book."""

    title: str
    reason: MissingReason


RenderResult = Union[RenderedText, RenderMissing]


@runtime_checkable
class ContentRenderer(Protocol):
    """Protocol that every page renderer must implement."""

    def render(self, title: str) -> RenderResult:
        """Render one page; missing or non-text pages are RenderMissing, never raised."""
