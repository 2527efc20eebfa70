import io
import os
import secrets
import sys
import tempfile
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

# Add the parent directory to sys.path so we can import the server modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Keep test logs out of the working directory; must be set before any import logs
os.environ.setdefault("FILESHARE_LOG_DIR", tempfile.mkdtemp(prefix="file_share_logs_"))

from app.models.file_record import FileRecord
from app.services.file_service import FileShareService
from config import Settings


class FakeClock:
    def __init__(self, now: datetime = None):
        self.now = now or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


class BytesSource:
    """Minimal stand-in for UploadFile: an async read() over bytes."""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)

    async def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        upload_dir=str(tmp_path / "files"),
        temp_dir=str(tmp_path / "temp"),
        metadata_file=str(tmp_path / "metadata.json"),
        # Background loops stay idle unless a test drives them
        cleanup_interval=3600,
        save_interval=3600,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def service(settings, clock):
    file_service = FileShareService(settings, clock=clock)
    await file_service.store.initialize()
    yield file_service


@pytest.fixture
def make_record(tmp_path):
    """Build FileRecords with sensible defaults; pass write=True to create the content file."""

    def _make(write: bool = False, content: bytes = b"abc", **overrides) -> FileRecord:
        now = datetime.now(timezone.utc)
        file_id = overrides.pop("id", secrets.token_hex(16))
        fields = dict(
            id=file_id,
            filename=f"{file_id}_a.txt",
            original_name="a.txt",
            size=len(content),
            checksum="0" * 64,
            upload_time=now,
            expires_at=now + timedelta(hours=1),
            path=str(tmp_path / f"{file_id}_a.txt"),
        )
        fields.update(overrides)
        record = FileRecord(**fields)
        if write:
            with open(record.path, "wb") as f:
                f.write(content)
        return record

    return _make
