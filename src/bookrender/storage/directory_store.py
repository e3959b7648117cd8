"""Local filesystem content store ("stash") for rendered books."""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
import re
import uuid

from bookrender.storage.base import ContentStoreError, StoredContent


logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"
_KEY_RE = re.compile(r"^[0-9a-f]{32}(\.[A-Za-z0-9]{1,16})?$")
_SUFFIX_RE = re.compile(r"^\.[A-Za-z0-9]{1,16}$")

mimetypes.add_type("application/epub+zip", ".epub")
mimetypes.add_type("application/x-fictionbook+xml", ".fb2")
mimetypes.add_type("application/x-mobipocket-ebook", ".mobi")


class DirectoryContentStore:
    """Store each artifact as ``<random hex><suffix>`` inside one directory."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def put(self, data: bytes, name: str) -> str:
        suffix = Path(name).suffix.lower()
        if not _SUFFIX_RE.match(suffix):
            suffix = ""
        key = f"{uuid.uuid4().hex}{suffix}"

        try:
            self._root.mkdir(parents=True, exist_ok=True)
            (self._root / key).write_bytes(data)
        except OSError as exc:
            raise ContentStoreError(key, f"Failed to stash artifact: {exc}") from exc

        logger.debug("Stashed %s bytes under %s", len(data), key)
        return key

    def get(self, key: str) -> StoredContent:
        if not _KEY_RE.match(key):
            raise ContentStoreError(key, "Malformed content key")

        path = self._root / key
        try:
            data = path.read_bytes()
        except FileNotFoundError as exc:
            raise ContentStoreError(key, "Artifact not found") from exc
        except OSError as exc:
            raise ContentStoreError(key, f"Failed to read artifact: {exc}") from exc

        mime_type, _encoding = mimetypes.guess_type(path.name)
        return StoredContent(
            data=data,
            name=path.name,
            mime_type=mime_type or DEFAULT_MIME_TYPE,
            size=len(data),
        )

    def delete(self, key: str) -> bool:
        if not _KEY_RE.match(key):
            raise ContentStoreError(key, "Malformed content key")

        path = self._root / key
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise ContentStoreError(key, f"Failed to delete artifact: {exc}") from exc
        logger.debug("Removed stashed artifact %s", key)
        return True
