"""Content store contract for finished artifacts awaiting download."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(slots=True)
class ContentStoreError(Exception):
    """Artifact could not be saved into or loaded from the store."""

    key: str | None
    message: str

    def __str__(self) -> str:
        if self.key is None:
            return self.message
        return f"{self.message} (key={self.key})"


@dataclass(frozen=True, slots=True)
class StoredContent:
    data: bytes
    name: str
    mime_type: str
    size: int


class ContentStore(Protocol):
    """Key-addressed blob storage; every operation raises ContentStoreError."""

    def put(self, data: bytes, name: str) -> str:
        """Store ``data`` (``name`` hints the file type) and return its key."""

    def get(self, key: str) -> StoredContent:
        """Load a previously stored artifact."""

    def delete(self, key: str) -> bool:
        """Remove an artifact; returns False when nothing was stored under ``key``."""
