"""Content file storage."""

from .store import ContentFileHandle, ContentFileStore, TemporaryContentFileStore

__all__ = ['ContentFileHandle', 'ContentFileStore', 'TemporaryContentFileStore']
