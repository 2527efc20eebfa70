import asyncio
import os
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Tuple

import psutil

from app.exceptions import DuplicateID, Expired, FileShareError, InvalidInput, NotFound, Unauthorized
from app.models.file_record import FileRecord, utcnow
from app.services import query
from app.services.content_store import ContentStore, ContentStream
from app.services.persistence import PersistenceGateway
from app.services.registry import MetadataRegistry
from app.services.sweeper import EvictionSweeper, run_periodically
from config import Settings
from logger_config import setup_logger

logger = setup_logger()


@dataclass
class Download:
    record: FileRecord
    stream: ContentStream


def parse_tags(raw: Optional[str]) -> List[str]:
    """Split a comma-separated tag string, dropping blanks."""
    if not raw:
        return []
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


class FileShareService:
    """Owns the registry, content store, persistence and background tasks for one server.

    Handlers get the instance from ``app.state``; there is no module-level
    state, so tests can run several independent services side by side.
    """

    def __init__(self, settings: Settings, clock: Callable[[], datetime] = utcnow):
        self.settings = settings
        self.clock = clock
        self.registry = MetadataRegistry()
        self.store = ContentStore(settings.upload_path, settings.temp_path)
        self.persistence = PersistenceGateway(self.registry, settings.metadata_path)
        self.sweeper = EvictionSweeper(self.registry, self.store, self.persistence, clock)
        self.start_time = clock()
        self._started_monotonic = time.monotonic()
        self._tasks: List[asyncio.Task] = []

    async def start(self):
        await self.store.initialize()
        await self.persistence.load()
        self._tasks = [
            asyncio.create_task(
                run_periodically("cleanup", self.settings.cleanup_interval, self.sweeper.sweep)),
            asyncio.create_task(
                run_periodically("metadata-save", self.settings.save_interval, self.persistence.save)),
        ]
        logger.info("File share service started")

    async def stop(self):
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        await self.persistence.save()
        logger.info("File share service stopped")

    def validate_content_type(self, content_type: str):
        allowed = self.settings.allowed_types
        if allowed and not any(content_type.startswith(prefix) for prefix in allowed):
            raise InvalidInput("File type not allowed")

    async def upload(self, source, filename: str, content_type: Optional[str] = None,
                     ttl: Optional[int] = None, max_downloads: Optional[int] = None,
                     password: str = "", description: str = "", tags: str = "",
                     uploader_ip: str = "") -> FileRecord:
        if not filename:
            raise InvalidInput("No file provided")
        content_type = content_type or "application/octet-stream"
        self.validate_content_type(content_type)

        ttl = self.settings.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise InvalidInput("TTL must be a positive number of seconds")
        max_downloads = self.settings.max_downloads if max_downloads is None else max_downloads
        if max_downloads < 0:
            raise InvalidInput("max_downloads must not be negative")

        file_id = await self.registry.new_id()
        path, size, checksum = await self.store.write(
            source, file_id, filename, max_size=self.settings.max_file_size)

        now = self.clock()
        record = FileRecord(
            id=file_id,
            filename=path.name,
            original_name=filename,
            size=size,
            content_type=content_type,
            checksum=checksum,
            upload_time=now,
            expires_at=now + timedelta(seconds=ttl),
            max_downloads=max_downloads,
            password=password or "",
            uploader_ip=uploader_ip,
            tags=parse_tags(tags),
            description=description or "",
            path=str(path),
        )

        try:
            await self.registry.put(record)
        except DuplicateID:
            await self.store.remove(str(path))
            raise

        await self.persistence.save()
        logger.info(f"Uploaded {filename} as {file_id} ({size} bytes, expires {record.expires_at.isoformat()})")
        return record

    async def _evict(self, record: FileRecord, reason: str):
        removed = await self.registry.remove(record.id)
        if removed is None:
            return
        await self.store.remove(removed.path)
        logger.info(f"Cleaned up file: {removed.filename} (reason: {reason})")
        await self.persistence.save()

    async def _lookup(self, file_id: str) -> FileRecord:
        """Fetch a record, evicting it on the spot if it has expired."""
        record = await self.registry.get(file_id)
        if record.is_expired(self.clock()):
            await self._evict(record, "expired")
            raise Expired()
        return record

    async def info(self, file_id: str) -> FileRecord:
        return await self._lookup(file_id)

    async def download(self, file_id: str, password: Optional[str] = None) -> Download:
        """Grant one download: validate, open the content, then count it.

        The counter is incremented before any bytes are sent, so an aborted
        transfer still uses up one download.
        """
        record = await self._lookup(file_id)
        if not record.check_password(password):
            logger.info(f"Rejected download of {file_id}: bad password")
            raise Unauthorized()

        try:
            stream = await self.store.read(record.path)
        except NotFound:
            logger.warning(f"Content for {file_id} is missing on disk, dropping record")
            await self._evict(record, "content missing")
            raise

        try:
            record = await self.registry.increment_downloads(file_id)
        except FileShareError:
            await stream.aclose()
            raise

        logger.info(f"Download {record.downloads} of {file_id} ({record.original_name})")
        return Download(record=record, stream=stream)

    async def delete(self, file_id: str) -> bool:
        """Delete one file. Returns False if it was already gone."""
        removed = await self.registry.remove(file_id)
        if removed is None:
            return False
        await self.store.remove(removed.path)
        await self.persistence.save()
        logger.info(f"Deleted file {file_id} ({removed.original_name})")
        return True

    async def bulk_delete(self, file_ids: Iterable[str]) -> Tuple[int, int]:
        """Delete several files. Returns (deleted, requested)."""
        file_ids = list(file_ids)
        removed = await self.registry.remove_many(dict.fromkeys(file_ids))
        for record in removed:
            await self.store.remove(record.path)
        if removed:
            await self.persistence.save()
        logger.info(f"Bulk delete removed {len(removed)} of {len(file_ids)} requested files")
        return len(removed), len(file_ids)

    async def list_files(self, offset: Optional[int] = None, limit: Optional[int] = None,
                         sort: Optional[str] = None) -> Tuple[List[FileRecord], int, int, int]:
        """Return (page, total, offset, limit) of live files."""
        offset, limit = query.clamp_page(
            offset, limit, self.settings.default_page_size, self.settings.max_page_size)
        records = query.sort_records(query.live(await self.registry.snapshot(), self.clock()), sort)
        return query.paginate(records, offset, limit), len(records), offset, limit

    async def search(self, q: Optional[str] = None, tag: Optional[str] = None,
                     sort: Optional[str] = None, offset: Optional[int] = None,
                     limit: Optional[int] = None) -> List[FileRecord]:
        records = query.search(query.live(await self.registry.snapshot(), self.clock()), q, tag, sort)
        if offset is None and limit is None:
            return records
        offset, limit = query.clamp_page(
            offset, limit, self.settings.default_page_size, self.settings.max_page_size)
        return query.paginate(records, offset, limit)

    async def stats(self) -> dict:
        return query.compute_stats(await self.registry.snapshot(), self.clock())

    async def health(self) -> dict:
        uptime_seconds = time.monotonic() - self._started_monotonic
        process = psutil.Process(os.getpid())
        return {
            "status": "healthy",
            "timestamp": self.clock(),
            "file_count": await self.registry.count(),
            "uptime": str(timedelta(seconds=int(uptime_seconds))),
            "uptime_seconds": round(uptime_seconds, 3),
            "memory_mb": round(process.memory_info().rss / (1024 * 1024), 2),
        }
