"""Heading-level shifting for nested chapters."""

from __future__ import annotations

import re


MAX_HEADING_LEVEL = 6

_HEADING_TAG_RE = re.compile(r"<(/?)h([1-6])(?=[\s>/])", re.IGNORECASE)


def shift_headings(content: str, levels: int = 1) -> str:
    """Demote every ``<hN>`` tag by ``levels``, saturating at ``<h6>``."""

    def _replace(match: re.Match[str]) -> str:
        level = min(int(match.group(2)) + levels, MAX_HEADING_LEVEL)
        tag = match.group(0)[len(match.group(1)) + 1]
        return f"<{match.group(1)}{tag}{level}"

    return _HEADING_TAG_RE.sub(_replace, content)
