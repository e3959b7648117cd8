"""Extraction of the per-article table of contents from rendered HTML."""

from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup
from bs4.element import Tag

from bookrender.models import TocEntry


logger = logging.getLogger(__name__)

TOC_CONTAINER_ID = "toc"
TOC_TEXT_CLASS = "toctext"
_TOC_LEVEL_RE = re.compile(r"^toclevel-(\d+)$")
_ANCHOR_RE = re.compile(r"#(.+)")


def _parse_fragment(html: str) -> BeautifulSoup | None:
    """Parse an HTML fragment, returning None instead of raising on bad markup."""

    try:
        return BeautifulSoup(html, "html.parser")
    except Exception as exc:
        logger.debug("HTML fragment could not be parsed, leaving it untouched: %s", exc)
        return None


def _class_tokens(element: Tag) -> list[str]:
    classes = element.get("class") or []
    if isinstance(classes, str):
        return classes.split()
    return list(classes)


def _toc_level(item: Tag) -> int:
    for token in _class_tokens(item):
        match = _TOC_LEVEL_RE.match(token)
        if match:
            return int(match.group(1))
    return 0


def _entries_for_item(item: Tag, title: str, level: int) -> list[TocEntry]:
    link = item.find("a")
    if link is None:
        return []

    match = _ANCHOR_RE.search(str(link.get("href") or ""))
    key = f"{title}-{match.group(1) if match else ''}"

    return [
        TocEntry(level=level, key=key, label=label.get_text())
        for label in link.find_all(class_=TOC_TEXT_CLASS)
    ]


def extract_toc(html: str, title: str) -> tuple[str, list[TocEntry]]:
    """Collect TOC entries from ``html`` and return it with the TOC block removed.

    The converter builds its own table of contents, so the source one is
    stripped to avoid duplicating it. When no ``#toc`` container exists (or
    the markup cannot be parsed) the input is returned unchanged.
    """

    soup = _parse_fragment(html)
    if soup is None:
        return html, []

    container = soup.find(id=TOC_CONTAINER_ID)
    if container is None:
        return html, []

    entries: list[TocEntry] = []
    for item in container.find_all("li"):
        entries.extend(_entries_for_item(item, title, _toc_level(item)))

    container.decompose()
    return str(soup), entries
