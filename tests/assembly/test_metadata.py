from __future__ import annotations

import re

import pytest

from bookrender.assembly.metadata import MetadataExtractor, compile_metadata_pattern


def test_delimited_pattern_extracts_first_group() -> None:
    extractor = MetadataExtractor({"creator": "/Author=([^\\n]+)/"})
    metadata: dict[str, str] = {}

    extractor.extract_into(metadata, "Text\nAuthor=Jane Doe\nMore text")

    assert metadata == {"creator": "Jane Doe"}


def test_existing_key_is_not_overwritten() -> None:
    extractor = MetadataExtractor({"creator": "/Author=([^\\n]+)/"})
    metadata = {"creator": "First"}

    extractor.extract_into(metadata, "Author=Second")

    assert metadata == {"creator": "First"}


def test_pattern_without_group_stores_empty_string() -> None:
    extractor = MetadataExtractor({"draft": "/DRAFT/"})
    metadata: dict[str, str] = {}

    extractor.extract_into(metadata, "this is a DRAFT copy")

    assert metadata == {"draft": ""}


def test_no_match_leaves_key_unset() -> None:
    extractor = MetadataExtractor({"language": "/lang=(\\w+)/"})
    metadata: dict[str, str] = {}

    extractor.extract_into(metadata, "nothing here")

    assert metadata == {}
    assert extractor.keys == ("language",)


def test_trailing_flags_are_applied() -> None:
    pattern = compile_metadata_pattern("/^subject: (.+)$/im")

    assert pattern.flags & re.IGNORECASE
    assert pattern.flags & re.MULTILINE
    match = pattern.search("intro\nSUBJECT: Astronomy\n")
    assert match is not None
    assert match.group(1) == "Astronomy"


def test_alternative_delimiter() -> None:
    pattern = compile_metadata_pattern("#ISBN ([0-9-]+)#")

    match = pattern.search("ISBN 978-3-16")
    assert match is not None
    assert match.group(1) == "978-3-16"


def test_bare_regex_is_accepted() -> None:
    pattern = compile_metadata_pattern("(\\d{4})")

    match = pattern.search("Published 1969")
    assert match is not None
    assert match.group(1) == "1969"


def test_invalid_pattern_raises_value_error() -> None:
    with pytest.raises(ValueError, match="Invalid metadata pattern"):
        MetadataExtractor({"broken": "/([a-z/"})
