"""Local storage for downloaded content files."""

import asyncio
import shutil
import tempfile
import threading
import uuid
from pathlib import Path
from typing import BinaryIO, Dict, Optional

from loguru import logger

from ..models.content import ContentReference


class ContentFileHandle:
    """A downloaded content file owned by whoever holds the handle.

    ``release`` deletes the file; it is safe to call more than once and only
    the first call has an effect.
    """

    def __init__(self, store: 'ContentFileStore', path: Path, original_name: str):
        self.store = store
        self.path = path
        self.original_name = original_name
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def open_read(self) -> BinaryIO:
        if self._released:
            raise ValueError(f'File handle for {self.original_name} was released')
        return open(self.path, 'rb')

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self.store.remove(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.release()


class ContentFileStore:
    """Creates file handles for downloaded content."""

    async def create(
        self, content_item: ContentReference, content: bytes, filename: str
    ) -> ContentFileHandle:
        raise NotImplementedError

    def remove(self, handle: ContentFileHandle) -> None:
        raise NotImplementedError


class TemporaryContentFileStore(ContentFileStore):
    """File store writing each content file under a temporary directory."""

    def __init__(self, temp_dir: Optional[str] = None, cleanup: bool = True):
        """Initialize the store.

        Args:
            temp_dir: Parent directory, defaults to the system temp directory
            cleanup: Remove the whole store directory on :meth:`close`
        """
        if temp_dir is not None:
            Path(temp_dir).mkdir(parents=True, exist_ok=True)
        self.root = Path(tempfile.mkdtemp(prefix='tableau-migrate-', dir=temp_dir))
        self.cleanup = cleanup
        self._handles: Dict[Path, ContentFileHandle] = {}
        self._lock = threading.Lock()
        self.logger = logger.bind(component='ContentFileStore')

    async def create(
        self, content_item: ContentReference, content: bytes, filename: str
    ) -> ContentFileHandle:
        directory = self.root / str(content_item.id) / uuid.uuid4().hex
        path = directory / (Path(filename).name or 'content')

        def _write():
            directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)

        await asyncio.to_thread(_write)

        handle = ContentFileHandle(self, path, filename)
        with self._lock:
            self._handles[path] = handle

        self.logger.debug(f'Stored {len(content)} bytes for {content_item} at {path}')
        return handle

    def remove(self, handle: ContentFileHandle) -> None:
        with self._lock:
            self._handles.pop(handle.path, None)
        shutil.rmtree(handle.path.parent, ignore_errors=True)

    @property
    def open_handles(self) -> int:
        return len(self._handles)

    def close(self) -> None:
        """Release orphaned handles and, if configured, the store directory."""
        with self._lock:
            orphans = list(self._handles.values())
        for handle in orphans:
            handle.release()

        if orphans:
            self.logger.warning(f'Released {len(orphans)} orphaned content files')

        if self.cleanup:
            shutil.rmtree(self.root, ignore_errors=True)
