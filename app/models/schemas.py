from datetime import datetime
from typing import Dict, List

from pydantic import BaseModel, field_validator

from app.models.file_record import FileRecord


class FileRecordOut(BaseModel):
    id: str
    filename: str
    original_name: str
    size: int
    content_type: str
    checksum: str
    upload_time: datetime
    expires_at: datetime
    downloads: int
    max_downloads: int
    password_protected: bool
    uploader_ip: str
    tags: List[str]
    description: str
    metadata: Dict[str, str]

    @classmethod
    def from_record(cls, record: FileRecord) -> 'FileRecordOut':
        data = record.model_dump(exclude={'password', 'path'})
        return cls(password_protected=record.password_protected, **data)


class UploadOut(BaseModel):
    id: str
    filename: str
    original_name: str
    size: int
    checksum: str
    download_url: str
    expires_at: datetime
    max_downloads: int


class FileListOut(BaseModel):
    files: List[FileRecordOut]
    total: int
    limit: int
    offset: int


class StatsOut(BaseModel):
    total_files: int
    total_size: int
    total_downloads: int
    active_files: int


class BulkDeleteIn(BaseModel):
    file_ids: List[str]

    @field_validator('file_ids')
    @classmethod
    def validate_file_ids(cls, v):
        if any(not file_id for file_id in v):
            raise ValueError('File ids must not be empty')
        return v


class BulkDeleteOut(BaseModel):
    deleted: int
    total: int


class HealthOut(BaseModel):
    status: str
    timestamp: datetime
    file_count: int
    uptime: str
    uptime_seconds: float
    memory_mb: float
