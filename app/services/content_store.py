import hashlib
import os
from pathlib import Path
from typing import AsyncIterator, Optional, Tuple

import aiofiles
import aiofiles.os

from app.exceptions import FileTooLarge, NotFound, StorageFailure
from logger_config import setup_logger

logger = setup_logger()

CHUNK_SIZE = 8192  # 8KB chunks
TEMP_SUFFIX = "_temp.upload"


def stored_filename(file_id: str, original_name: str) -> str:
    """Build the on-disk name: id prefix plus the client name without spaces."""
    safe_name = Path(original_name.replace("\\", "/")).name.replace(" ", "_")
    return f"{file_id}_{safe_name}" if safe_name else file_id


class ContentStream:
    """Async iterable over an open file, closed after the last chunk or on aclose()."""

    def __init__(self, handle):
        self._handle = handle
        self._closed = False

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._chunks()

    async def _chunks(self):
        try:
            while chunk := await self._handle.read(CHUNK_SIZE):
                yield chunk
        finally:
            await self.aclose()

    async def read_all(self) -> bytes:
        return b"".join([chunk async for chunk in self])

    async def aclose(self):
        if not self._closed:
            self._closed = True
            await self._handle.close()


class ContentStore:
    def __init__(self, upload_dir: Path, temp_dir: Path):
        self.upload_dir = upload_dir
        self.temp_dir = temp_dir

    async def initialize(self):
        """Create the storage directories and drop partial uploads left by a crash."""
        for directory in (self.upload_dir, self.temp_dir):
            directory.mkdir(exist_ok=True, parents=True)
        logger.info(f"Content store ready at {self.upload_dir} (temp {self.temp_dir})")

        removed = await self._clear_partial_uploads()
        if removed:
            logger.info(f"Discarded {removed} partial uploads from a previous run")

    def get_file_path(self, file_id: str, original_name: str) -> Path:
        return self.upload_dir / stored_filename(file_id, original_name)

    async def write(self, source, file_id: str, original_name: str,
                    max_size: Optional[int] = None) -> Tuple[Path, int, str]:
        """Store the content of ``source`` and return (path, size, sha256).

        ``source`` is anything with an async ``read(size)``, such as an
        UploadFile. Bytes go to a temp file first and are renamed into place
        only once complete, so the final path either holds the full content
        or does not exist.
        """
        file_path = self.get_file_path(file_id, original_name)
        temp_path = self.temp_dir / f"{file_id}{TEMP_SUFFIX}"
        digest = hashlib.sha256()
        size = 0

        try:
            async with aiofiles.open(temp_path, 'wb') as f:
                while chunk := await source.read(CHUNK_SIZE):
                    size += len(chunk)
                    if max_size is not None and size > max_size:
                        raise FileTooLarge(f"File too large. Maximum size is {max_size} bytes")
                    digest.update(chunk)
                    await f.write(chunk)

            await aiofiles.os.rename(str(temp_path), str(file_path))
        except FileTooLarge:
            await self._discard(temp_path)
            raise
        except OSError as e:
            logger.error(f"Error storing file {file_id}: {str(e)}", exc_info=True)
            await self._discard(temp_path)
            raise StorageFailure(f"Error storing file: {str(e)}")

        checksum = digest.hexdigest()
        logger.debug(f"Stored {size} bytes for {file_id} at {file_path} (sha256 {checksum})")
        return file_path, size, checksum

    async def read(self, path: str) -> 'ContentStream':
        """Open stored content for streaming.

        The file is opened before returning, so a missing file raises NotFound
        here rather than halfway through a response.
        """
        try:
            handle = await aiofiles.open(path, 'rb')
        except FileNotFoundError:
            raise NotFound(f"Content missing for {os.path.basename(path)}")
        except OSError as e:
            logger.error(f"Error opening {path}: {str(e)}", exc_info=True)
            raise StorageFailure(f"Error reading file: {str(e)}")
        return ContentStream(handle)

    async def remove(self, path: str) -> bool:
        """Delete stored content. Failures are logged, never raised."""
        try:
            await aiofiles.os.unlink(path)
            return True
        except FileNotFoundError:
            logger.warning(f"Content already gone: {path}")
        except OSError as e:
            logger.error(f"Error deleting file {path}: {str(e)}")
        return False

    async def _clear_partial_uploads(self) -> int:
        removed = 0
        for temp_path in self.temp_dir.glob(f"*{TEMP_SUFFIX}"):
            if temp_path.is_file() and await self._discard(temp_path):
                removed += 1
        return removed

    async def _discard(self, temp_path: Path) -> bool:
        try:
            await aiofiles.os.unlink(temp_path)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Error cleaning up {temp_path}: {str(e)}")
            return False
