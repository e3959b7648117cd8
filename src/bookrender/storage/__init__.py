from .base import ContentStore, ContentStoreError, StoredContent
from .directory_store import DirectoryContentStore

__all__ = ["ContentStore", "ContentStoreError", "DirectoryContentStore", "StoredContent"]
