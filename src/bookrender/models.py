"""Canonical data structures shared by the book rendering pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Union


class TaskState(str, Enum):
    PENDING = "pending"
    FINISHED = "finished"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Task:
    """One persisted rendering task row."""

    id: int
    timestamp: str
    state: str
    disposition: str | None = None
    content_key: str | None = None


@dataclass(frozen=True, slots=True)
class Article:
    """Leaf item referencing one renderable page."""

    title: str
    displaytitle: str | None = None

    @property
    def display_title(self) -> str:
        return self.displaytitle or self.title


@dataclass(frozen=True, slots=True)
class Chapter:
    """Container item grouping nested items under one heading level."""

    title: str
    items: tuple["Item", ...] = ()


Item = Union[Chapter, Article]


@dataclass(frozen=True, slots=True)
class MetaBook:
    """Input of one rendering job: optional title/subtitle plus the item tree."""

    title: str | None = None
    subtitle: str | None = None
    items: tuple[Item, ...] = ()


@dataclass(frozen=True, slots=True)
class TocEntry:
    level: int
    key: str
    label: str


@dataclass(slots=True)
class AssembledDocument:
    """Single HTML document built from a metabook, ready for conversion."""

    html: str
    metadata: dict[str, str] = field(default_factory=dict)
    toc: list[TocEntry] = field(default_factory=list)


def _optional_text(value: Any) -> str | None:
    if value is None or value is False:
        return None
    return str(value)


def _parse_item(raw: Any) -> Item:
    if not isinstance(raw, Mapping):
        raise ValueError(f"Metabook item must be an object, got {type(raw).__name__}")

    title = str(raw.get("title") or "")
    if raw.get("type") == "chapter":
        children = raw.get("items") or []
        if not isinstance(children, (list, tuple)):
            raise ValueError(f"Chapter items must be a list: {title!r}")
        return Chapter(title=title, items=tuple(_parse_item(child) for child in children))

    return Article(title=title, displaytitle=_optional_text(raw.get("displaytitle")))


def parse_metabook(raw: Mapping[str, Any]) -> MetaBook:
    """Build a MetaBook from the Extension:Collection dictionary shape.

    Any item whose ``type`` is not ``chapter`` is treated as an article.
    """

    if not isinstance(raw, Mapping):
        raise ValueError("Metabook payload must be an object")

    items = raw.get("items") or []
    if not isinstance(items, (list, tuple)):
        raise ValueError("Metabook items must be a list")

    return MetaBook(
        title=_optional_text(raw.get("title")),
        subtitle=_optional_text(raw.get("subtitle")),
        items=tuple(_parse_item(item) for item in items),
    )
