"""Read-only search, sorting, pagination and statistics over registry snapshots.

Nothing here touches the registry itself: callers pass in the tuple returned
by ``MetadataRegistry.snapshot()``.
"""
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from app.models.file_record import FileRecord, is_evictable

SORT_UPLOADED = "uploaded"
SORT_SIZE = "size"
SORT_DOWNLOADS = "downloads"

_SORT_KEYS = {
    SORT_UPLOADED: lambda r: r.upload_time,
    SORT_SIZE: lambda r: (r.size, r.upload_time),
    SORT_DOWNLOADS: lambda r: (r.downloads, r.upload_time),
}


def live(records: Iterable[FileRecord], now: Optional[datetime] = None) -> List[FileRecord]:
    """Drop records that are due for eviction but not swept yet."""
    return [r for r in records if not is_evictable(r, now)]


def matches(record: FileRecord, query: Optional[str] = None, tag: Optional[str] = None) -> bool:
    if query:
        needle = query.lower()
        name = record.original_name.lower()
        # The stored name has spaces as underscores; match either spelling
        haystacks = (name, name.replace(" ", "_"), record.description.lower())
        if not any(needle in text for text in haystacks):
            return False
    if tag:
        wanted = tag.strip().lower()
        if not any(t.lower() == wanted for t in record.tags):
            return False
    return True


def sort_records(records: Iterable[FileRecord], sort: Optional[str] = None) -> List[FileRecord]:
    """Sort newest first by default, or by size/downloads descending.

    Unknown sort keys fall back to upload time.
    """
    key = _SORT_KEYS.get(sort or SORT_UPLOADED, _SORT_KEYS[SORT_UPLOADED])
    return sorted(records, key=key, reverse=True)


def search(records: Iterable[FileRecord], query: Optional[str] = None,
           tag: Optional[str] = None, sort: Optional[str] = None) -> List[FileRecord]:
    return sort_records((r for r in records if matches(r, query, tag)), sort)


def clamp_page(offset: Optional[int], limit: Optional[int],
               default_limit: int, max_limit: int) -> Tuple[int, int]:
    if limit is None or limit <= 0:
        limit = default_limit
    limit = min(limit, max_limit)
    offset = max(offset or 0, 0)
    return offset, limit


def paginate(records: Sequence[FileRecord], offset: int, limit: int) -> List[FileRecord]:
    return list(records[offset:offset + limit])


def compute_stats(records: Iterable[FileRecord], now: datetime) -> dict:
    stats = {"total_files": 0, "total_size": 0, "total_downloads": 0, "active_files": 0}
    for record in records:
        stats["total_files"] += 1
        stats["total_size"] += record.size
        stats["total_downloads"] += record.downloads
        if not record.is_expired(now):
            stats["active_files"] += 1
    return stats
