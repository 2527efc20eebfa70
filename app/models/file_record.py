from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FileRecord(BaseModel):
    """Metadata for one uploaded file.

    Field names double as the snapshot keys and must stay stable. Only
    ``downloads`` changes after creation, and only through the registry.
    """
    id: str
    filename: str
    original_name: str
    size: int
    content_type: str = "application/octet-stream"
    checksum: str
    upload_time: datetime
    expires_at: datetime
    downloads: int = 0
    max_downloads: int = 0
    password: str = ""
    uploader_ip: str = ""
    tags: List[str] = Field(default_factory=list)
    description: str = ""
    path: str
    metadata: Dict[str, str] = Field(default_factory=dict)

    # Older snapshots write null for empty tags and metadata
    @field_validator('tags', mode='before')
    @classmethod
    def validate_tags(cls, v):
        return [] if v is None else v

    @field_validator('metadata', mode='before')
    @classmethod
    def validate_metadata(cls, v):
        return {} if v is None else v

    @field_validator('password', 'description', 'uploader_ip', mode='before')
    @classmethod
    def validate_optional_text(cls, v):
        return "" if v is None else v

    @property
    def password_protected(self) -> bool:
        return bool(self.password)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.expires_at

    def limit_reached(self) -> bool:
        return self.max_downloads > 0 and self.downloads >= self.max_downloads

    def check_password(self, password: Optional[str]) -> bool:
        return not self.password or self.password == (password or "")


def eviction_reason(record: FileRecord, now: Optional[datetime] = None) -> Optional[str]:
    """Return why a record should be evicted, or None if it is still live."""
    if record.is_expired(now):
        return "expired"
    if record.limit_reached():
        return "max downloads reached"
    return None


def is_evictable(record: FileRecord, now: Optional[datetime] = None) -> bool:
    return eviction_reason(record, now) is not None
