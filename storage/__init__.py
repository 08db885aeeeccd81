"""Storage package persisting scan cycles and execution results."""

from .sqlite_repository import SQLiteRepository

__all__ = ["SQLiteRepository"]
