"""Renderer serving pre-rendered pages from a directory."""

from __future__ import annotations

from pathlib import Path

from bookrender.rendering.base import MissingReason, RenderedText, RenderMissing, RenderResult

_SOURCE_SUFFIXES = (".wiki", ".txt")


def page_stem(title: str) -> str:
    return title.strip().replace(" ", "_")


class DirectoryRenderer:
    """Serve ``<Title_with_underscores>.html`` files with optional raw source siblings."""

    def __init__(self, pages_dir: str | Path, *, author: str | None = None) -> None:
        self._pages_dir = Path(pages_dir)
        self._author = author

    def render(self, title: str) -> RenderResult:
        stem = page_stem(title)
        if not stem or "/" in stem or "\\" in stem or stem.startswith("."):
            return RenderMissing(title=title, reason=MissingReason.INVALID_TITLE)

        html_path = self._pages_dir / f"{stem}.html"
        if not html_path.is_file():
            return RenderMissing(title=title, reason=MissingReason.NOT_FOUND)

        try:
            html = html_path.read_bytes().decode("utf-8")
        except UnicodeDecodeError:
            return RenderMissing(title=title, reason=MissingReason.NOT_RENDERABLE)

        return RenderedText(
            html=html,
            source_text=self._read_source(stem) or html,
            full_title=title.strip().replace("_", " "),
            author=self._author,
        )

    def _read_source(self, stem: str) -> str | None:
        for suffix in _SOURCE_SUFFIXES:
            candidate = self._pages_dir / f"{stem}{suffix}"
            if candidate.is_file():
                return candidate.read_text(encoding="utf-8", errors="replace")
        return None
