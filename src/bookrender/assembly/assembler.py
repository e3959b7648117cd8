"""Assembly of a metabook's rendered articles into one HTML document."""

from __future__ import annotations

import logging
import re

from lxml import html as lxml_html
from lxml.html import builder as E

from bookrender.assembly.headings import shift_headings
from bookrender.assembly.metadata import MetadataExtractor
from bookrender.assembly.stylesheets import StylesheetResolver
from bookrender.assembly.toc import extract_toc
from bookrender.config import RenderSettings
from bookrender.models import Article, AssembledDocument, Chapter, Item, MetaBook, TocEntry
from bookrender.rendering.base import ContentRenderer, RenderedText


logger = logging.getLogger(__name__)

ITEM_SEPARATOR = "\n\n"
# Root-relative only; protocol-relative "//host/..." sources are already absolute.
_RELATIVE_SRC_RE = re.compile(r' src="/(?!/)')
# Characters lxml rejects in text and attribute values.
_XML_INCOMPATIBLE_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


def _serialize(element) -> str:
    return lxml_html.tostring(element, encoding="unicode")


def _xml_text(text: str) -> str:
    return _XML_INCOMPATIBLE_RE.sub("", text)


class DocumentAssembler:
    """Walk a metabook and concatenate its rendered articles.

    Metadata is accumulated first-write-wins in document order: the book
    title, then the first rendered article's title and author, then
    configured regex matches, then configured defaults.
    """

    def __init__(
        self,
        renderer: ContentRenderer,
        settings: RenderSettings,
        stylesheet_resolver: StylesheetResolver | None = None,
    ) -> None:
        self._renderer = renderer
        self._settings = settings
        self._stylesheet_resolver = stylesheet_resolver
        self._metadata_extractor = MetadataExtractor(settings.metadata_regex)

    def assemble(self, metabook: MetaBook) -> AssembledDocument:
        metadata: dict[str, str] = {}
        toc: list[TocEntry] = []

        head = self._stylesheet_links()
        if metabook.title:
            head += _serialize(E.TITLE(_xml_text(metabook.title)))

        parts = ["<html>", f"<head>{head}</head>", "<body>"]
        if metabook.title is not None:
            metadata["title"] = metabook.title
            parts.append(_serialize(E.H1(_xml_text(metabook.title), id="bookTitle")))
        if metabook.subtitle:
            parts.append(_serialize(E.H2(_xml_text(metabook.subtitle), id="bookSubtitle")))

        parts.append(self._render_items(metabook.items, metadata, toc, depth=0))
        parts.append("</body></html>")

        for key, value in self._settings.default_metadata.items():
            metadata.setdefault(key, value)
        logger.debug("Calculated metadata: %s", metadata)

        html = self._absolutize_image_sources("".join(parts))
        return AssembledDocument(html=html, metadata=metadata, toc=toc)

    def _stylesheet_links(self) -> str:
        if self._stylesheet_resolver is None or not self._settings.stylesheets:
            return ""
        urls = self._stylesheet_resolver.resolve(self._settings.stylesheets)
        return "".join(
            _serialize(E.LINK(rel="stylesheet", type="text/css", href=_xml_text(url))) for url in urls
        )

    def _absolutize_image_sources(self, html: str) -> str:
        server = self._settings.canonical_server
        if not server:
            return html
        return _RELATIVE_SRC_RE.sub(f' src="{server}/', html)

    def _render_items(
        self,
        items: tuple[Item, ...],
        metadata: dict[str, str],
        toc: list[TocEntry],
        depth: int,
    ) -> str:
        return "".join(self._render_item(item, metadata, toc, depth) for item in items)

    def _render_item(
        self,
        item: Item,
        metadata: dict[str, str],
        toc: list[TocEntry],
        depth: int,
    ) -> str:
        if isinstance(item, Chapter):
            logger.debug("Rendering chapter %r at depth %s", item.title, depth)
            content = self._render_items(item.items, metadata, toc, depth + 1)
            return shift_headings(content)
        return self._render_article(item, metadata, toc)

    def _render_article(
        self,
        article: Article,
        metadata: dict[str, str],
        toc: list[TocEntry],
    ) -> str:
        try:
            result = self._renderer.render(article.title)
        except Exception:
            logger.exception("Renderer failed for %r, skipping it", article.title)
            return ""

        if not isinstance(result, RenderedText):
            logger.warning("Skipping %r: %s", article.title, getattr(result, "reason", result))
            return ""

        metadata.setdefault("title", result.full_title)
        if result.author is not None:
            metadata.setdefault("creator-user", result.author)
        self._metadata_extractor.extract_into(metadata, result.source_text)

        body, entries = extract_toc(result.html, result.full_title)
        toc.extend(entries)

        heading = _serialize(E.H1(_xml_text(article.display_title)))
        return heading + body + ITEM_SEPARATOR
