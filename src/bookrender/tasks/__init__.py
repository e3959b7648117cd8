from .repository import StorageError, TaskRepository

__all__ = ["StorageError", "TaskRepository"]
