from __future__ import annotations

from pathlib import Path

import pytest

from bookrender.storage.base import ContentStoreError
from bookrender.storage.directory_store import DEFAULT_MIME_TYPE, DirectoryContentStore


def test_put_then_get_returns_data_and_metadata(tmp_path: Path) -> None:
    store = DirectoryContentStore(tmp_path / "stash")

    key = store.put(b"EPUB-BYTES", "converted123.epub")
    stored = store.get(key)

    assert key.endswith(".epub")
    assert stored.data == b"EPUB-BYTES"
    assert stored.size == len(b"EPUB-BYTES")
    assert stored.name == key
    assert stored.mime_type == "application/epub+zip"


def test_keys_are_unique_per_put(tmp_path: Path) -> None:
    store = DirectoryContentStore(tmp_path / "stash")

    first = store.put(b"a", "out.pdf")
    second = store.put(b"a", "out.pdf")

    assert first != second
    assert sorted(path.name for path in store.root.iterdir()) == sorted([first, second])


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("book.pdf", "application/pdf"),
        ("book.fb2", "application/x-fictionbook+xml"),
        ("book.mobi", "application/x-mobipocket-ebook"),
        ("book", DEFAULT_MIME_TYPE),
    ],
)
def test_mime_type_is_guessed_from_suffix(tmp_path: Path, name: str, expected: str) -> None:
    store = DirectoryContentStore(tmp_path)

    assert store.get(store.put(b"x", name)).mime_type == expected


def test_odd_suffix_is_dropped(tmp_path: Path) -> None:
    store = DirectoryContentStore(tmp_path)

    key = store.put(b"x", "weird.ta r")

    assert "." not in key


def test_unknown_key_raises(tmp_path: Path) -> None:
    store = DirectoryContentStore(tmp_path)

    with pytest.raises(ContentStoreError, match="Artifact not found"):
        store.get("0" * 32 + ".pdf")


@pytest.mark.parametrize("key", ["../secret", "abc", "/etc/passwd", "0" * 32 + "/x"])
def test_malformed_keys_are_rejected(tmp_path: Path, key: str) -> None:
    store = DirectoryContentStore(tmp_path)

    with pytest.raises(ContentStoreError, match="Malformed content key"):
        store.get(key)


def test_put_failure_is_wrapped(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file", encoding="utf-8")
    store = DirectoryContentStore(blocker)

    with pytest.raises(ContentStoreError, match="Failed to stash artifact"):
        store.put(b"x", "out.pdf")


def test_delete_removes_artifact(tmp_path: Path) -> None:
    store = DirectoryContentStore(tmp_path)
    key = store.put(b"x", "out.pdf")

    assert store.delete(key) is True
    assert store.delete(key) is False
    with pytest.raises(ContentStoreError, match="Artifact not found"):
        store.get(key)
    with pytest.raises(ContentStoreError, match="Malformed content key"):
        store.delete("../escape")
