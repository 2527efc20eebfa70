import secrets
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional, Set, Tuple

from app.exceptions import DuplicateID, LimitReached, NotFound
from app.models.file_record import FileRecord
from app.services.rw_lock import ReadWriteLock
from logger_config import setup_logger

logger = setup_logger()

ID_BYTES = 16
MAX_RETIRED_IDS = 100_000


class MetadataRegistry:
    """In-memory table of file records.

    Every access goes through one reader/writer lock, held only for the dict
    operation itself. Records handed out are copies, so callers can do disk
    or network I/O with them after the lock is released.
    """

    def __init__(self, max_retired: int = MAX_RETIRED_IDS):
        self._files: Dict[str, FileRecord] = {}
        # Recently removed ids are never issued again; the oldest are forgotten past max_retired
        self._retired: Set[str] = set()
        self._retired_order: Deque[str] = deque()
        self._max_retired = max_retired
        self._lock = ReadWriteLock()

    async def new_id(self) -> str:
        async with self._lock.read():
            while True:
                file_id = secrets.token_hex(ID_BYTES)
                if file_id not in self._files and file_id not in self._retired:
                    return file_id

    async def put(self, record: FileRecord) -> None:
        async with self._lock.write():
            if record.id in self._files or record.id in self._retired:
                raise DuplicateID(f"File id {record.id} already issued")
            self._files[record.id] = record.model_copy(deep=True)
        logger.debug(f"Registered file {record.id} ({record.original_name})")

    async def get(self, file_id: str) -> FileRecord:
        async with self._lock.read():
            record = self._files.get(file_id)
            if record is None:
                raise NotFound()
            return record.model_copy(deep=True)

    async def increment_downloads(self, file_id: str) -> FileRecord:
        """Count one download, refusing once max_downloads is reached.

        The check and the increment share one write lock hold, so concurrent
        downloads can never push the counter past the limit.
        """
        async with self._lock.write():
            record = self._files.get(file_id)
            if record is None:
                raise NotFound()
            if record.limit_reached():
                raise LimitReached()
            record.downloads += 1
            return record.model_copy(deep=True)

    async def remove(self, file_id: str) -> Optional[FileRecord]:
        """Remove a record. Returns None if it was already gone."""
        async with self._lock.write():
            record = self._files.pop(file_id, None)
            if record is not None:
                self._retire(file_id)
            return record

    async def remove_many(self, file_ids: Iterable[str]) -> List[FileRecord]:
        removed = []
        async with self._lock.write():
            for file_id in file_ids:
                record = self._files.pop(file_id, None)
                if record is not None:
                    self._retire(file_id)
                    removed.append(record)
        return removed

    async def snapshot(self) -> Tuple[FileRecord, ...]:
        async with self._lock.read():
            return tuple(record.model_copy(deep=True) for record in self._files.values())

    async def load(self, records: Iterable[FileRecord]) -> int:
        """Replace the whole table, used once at startup."""
        files = {record.id: record.model_copy(deep=True) for record in records}
        async with self._lock.write():
            self._files = files
        return len(files)

    async def count(self) -> int:
        async with self._lock.read():
            return len(self._files)

    def _retire(self, file_id: str):
        # Caller holds the write lock
        self._retired.add(file_id)
        self._retired_order.append(file_id)
        while len(self._retired_order) > self._max_retired:
            self._retired.discard(self._retired_order.popleft())
