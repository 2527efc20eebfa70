import asyncio
import json
from pathlib import Path
from typing import List

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from app.exceptions import PersistenceFailure
from app.models.file_record import FileRecord
from app.services.registry import MetadataRegistry
from logger_config import setup_logger

logger = setup_logger()


class PersistenceGateway:
    """Saves the registry to a JSON snapshot and restores it at startup.

    The snapshot maps file id to record. Saving is best effort: failures are
    logged and the in-memory registry stays authoritative.
    """

    def __init__(self, registry: MetadataRegistry, snapshot_path: Path):
        self.registry = registry
        self.snapshot_path = snapshot_path
        # Serializes snapshot file writes; independent of the registry lock
        self._write_lock = asyncio.Lock()

    async def save(self) -> bool:
        try:
            await self._write_snapshot()
            return True
        except PersistenceFailure as e:
            logger.error(f"Error saving metadata: {e.detail}")
            return False

    async def _write_snapshot(self):
        temp_path = self.snapshot_path.with_name(self.snapshot_path.name + ".tmp")
        async with self._write_lock:
            # Snapshot under the file lock so the last write always holds the newest state
            records = await self.registry.snapshot()
            data = {record.id: record.model_dump(mode='json') for record in records}
            payload = json.dumps(data, indent=2)
            try:
                self.snapshot_path.parent.mkdir(exist_ok=True, parents=True)
                async with aiofiles.open(temp_path, 'w', encoding='utf-8') as f:
                    await f.write(payload)
                await aiofiles.os.rename(str(temp_path), str(self.snapshot_path))
            except OSError as e:
                raise PersistenceFailure(f"Could not write {self.snapshot_path}: {str(e)}")
        logger.debug(f"Saved metadata for {len(data)} files to {self.snapshot_path}")

    async def load(self) -> int:
        """Load the snapshot into the registry, dropping records whose bytes are gone.

        Returns the number of records loaded. A missing snapshot means a fresh
        registry; an unreadable one is moved aside and also starts fresh.
        """
        records = await self._read_snapshot()

        valid: List[FileRecord] = []
        for record in records:
            if await aiofiles.os.path.isfile(record.path):
                valid.append(record)
            else:
                logger.warning(f"File not found on disk, removing from metadata: {record.filename}")

        count = await self.registry.load(valid)
        logger.info(f"Loaded {count} files from metadata")
        return count

    async def _read_snapshot(self) -> List[FileRecord]:
        if not await aiofiles.os.path.exists(self.snapshot_path):
            logger.info("No existing metadata file found, starting fresh")
            return []

        try:
            async with aiofiles.open(self.snapshot_path, 'r', encoding='utf-8') as f:
                content = await f.read()
            data = json.loads(content) if content.strip() else {}
            if not isinstance(data, dict):
                raise ValueError("snapshot must be a JSON object")
            return [FileRecord.model_validate(entry) for entry in data.values()]
        except OSError as e:
            logger.error(f"Error reading metadata file {self.snapshot_path}: {str(e)}")
            return []
        except (ValueError, ValidationError) as e:
            # json.JSONDecodeError is a ValueError
            logger.error(f"Error loading metadata: {str(e)}")
            await self._quarantine()
            return []

    async def _quarantine(self):
        corrupt_path = self.snapshot_path.with_name(self.snapshot_path.name + ".corrupt")
        try:
            await aiofiles.os.rename(str(self.snapshot_path), str(corrupt_path))
            logger.warning(f"Moved unreadable metadata file to {corrupt_path}")
        except OSError as e:
            logger.error(f"Could not move unreadable metadata file aside: {str(e)}")
