"""Stylesheet lookup contract used when building the document head."""

from __future__ import annotations

from typing import Iterable, Mapping, Protocol, Sequence
from urllib.parse import quote


class StylesheetResolver(Protocol):
    """Report which configured stylesheets exist and where to fetch them."""

    def resolve(self, names: Sequence[str]) -> list[str]:
        """Return fetch URLs for the existing stylesheets, in ``names`` order."""


class MappingStylesheetResolver:
    """Resolve stylesheet names through a fixed name -> URL mapping."""

    def __init__(self, urls: Mapping[str, str]) -> None:
        self._urls = dict(urls)

    def resolve(self, names: Sequence[str]) -> list[str]:
        return [self._urls[name] for name in names if name in self._urls]


class PrefixStylesheetResolver:
    """Resolve existing stylesheets served as raw CSS under one base URL.

    ``https://wiki.example/index.php`` and ``Common.css`` resolve to
    ``https://wiki.example/index.php?title=MediaWiki:Common.css&action=raw&ctype=text/css``.
    """

    def __init__(self, base_url: str, existing: Iterable[str], *, namespace: str = "MediaWiki") -> None:
        self._base_url = base_url
        self._existing = set(existing)
        self._namespace = namespace

    def resolve(self, names: Sequence[str]) -> list[str]:
        urls: list[str] = []
        for name in names:
            if name not in self._existing:
                continue
            page = quote(f"{self._namespace}:{name}", safe=":/")
            urls.append(f"{self._base_url}?title={page}&action=raw&ctype=text/css")
        return urls
