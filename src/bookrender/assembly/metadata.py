"""Regex-driven metadata extraction from article source text."""

from __future__ import annotations

import re
from typing import Mapping, MutableMapping


_PCRE_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
    "u": 0,
}
_DELIMITERS = "/#~!@%|+;,"


def compile_metadata_pattern(raw: str) -> re.Pattern[str]:
    """Compile ``raw`` as a delimited PCRE pattern (``/.../i``) or a bare regex."""

    if len(raw) >= 2 and raw[0] in _DELIMITERS:
        end = raw.rfind(raw[0])
        if end > 0:
            modifiers = raw[end + 1 :]
            if all(flag in _PCRE_FLAGS for flag in modifiers):
                flags = 0
                for flag in modifiers:
                    flags |= _PCRE_FLAGS[flag]
                try:
                    return re.compile(raw[1:end], flags)
                except re.error as exc:
                    raise ValueError(f"Invalid metadata pattern {raw!r}: {exc}") from exc

    try:
        return re.compile(raw)
    except re.error as exc:
        raise ValueError(f"Invalid metadata pattern {raw!r}: {exc}") from exc


class MetadataExtractor:
    """Fill unset metadata keys from the first capture group of configured patterns."""

    def __init__(self, patterns: Mapping[str, str]) -> None:
        self._patterns = {key: compile_metadata_pattern(raw) for key, raw in patterns.items()}

    @property
    def keys(self) -> tuple[str, ...]:
        return tuple(self._patterns)

    def extract_into(self, metadata: MutableMapping[str, str], text: str) -> None:
        for key, pattern in self._patterns.items():
            if key in metadata:
                continue
            match = pattern.search(text)
            if match is None:
                continue
            value = match.group(1) if pattern.groups else None
            metadata[key] = value or ""
