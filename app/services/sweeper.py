import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Optional

from app.models.file_record import eviction_reason, utcnow
from app.services.content_store import ContentStore
from app.services.persistence import PersistenceGateway
from app.services.registry import MetadataRegistry
from logger_config import setup_logger

logger = setup_logger()


class EvictionSweeper:
    def __init__(self, registry: MetadataRegistry, store: ContentStore,
                 persistence: PersistenceGateway,
                 clock: Callable[[], datetime] = utcnow):
        self.registry = registry
        self.store = store
        self.persistence = persistence
        self.clock = clock

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """Evict every expired or exhausted record. Returns the number removed."""
        now = now or self.clock()
        cleaned = 0

        for record in await self.registry.snapshot():
            reason = eviction_reason(record, now)
            if reason is None:
                continue
            # Lazy expiry on a request may have removed it already
            removed = await self.registry.remove(record.id)
            if removed is None:
                continue
            await self.store.remove(removed.path)
            cleaned += 1
            logger.info(f"Cleaned up file: {removed.filename} (reason: {reason})")

        if cleaned > 0:
            await self.persistence.save()
        return cleaned


async def run_periodically(name: str, interval: float, job: Callable[[], Awaitable]):
    """Run ``job`` every ``interval`` seconds until cancelled.

    A failing run is logged and the loop keeps ticking.
    """
    logger.debug(f"Starting background task {name} (every {interval}s)")
    while True:
        await asyncio.sleep(interval)
        try:
            await job()
        except Exception:
            logger.error(f"Background task {name} failed", exc_info=True)
