from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.responses import PlainTextResponse, RedirectResponse, StreamingResponse
from starlette.background import BackgroundTask

from app.models.file_record import FileRecord
from app.models.schemas import (BulkDeleteIn, BulkDeleteOut, FileListOut, FileRecordOut,
                                HealthOut, StatsOut, UploadOut)
from app.services.file_service import FileShareService
from logger_config import setup_logger

logger = setup_logger()

router = APIRouter()


def get_service(request: Request) -> FileShareService:
    return request.app.state.file_service


def wants_json(request: Request) -> bool:
    return "application/json" in request.headers.get("accept", "")


def content_disposition(filename: str) -> str:
    """Build an attachment header that survives non-ASCII file names."""
    try:
        filename.encode('ascii')
    except UnicodeEncodeError:
        return f"attachment; filename*=utf-8''{quote(filename)}"
    escaped = filename.replace('\\', '\\\\').replace('"', '\\"')
    return f'attachment; filename="{escaped}"'


def to_out(records: List[FileRecord]) -> List[FileRecordOut]:
    return [FileRecordOut.from_record(record) for record in records]


@router.get("/")
async def index():
    return RedirectResponse(url="/api/files")


@router.post("/upload")
@router.post("/api/upload")
async def upload_file(
    request: Request,
    file: UploadFile = File(...),
    ttl: Optional[int] = Form(None),
    max_downloads: Optional[int] = Form(None),
    password: str = Form(""),
    description: str = Form(""),
    tags: str = Form(""),
):
    """Upload a file and return its download handle.

    Args:
        file: The file to upload
        ttl: Seconds until the file expires, defaults to the configured TTL
        max_downloads: Downloads allowed before eviction, 0 for unlimited
        password: Optional password required to download
        description: Free text shown in listings
        tags: Comma-separated tags
    """
    service = get_service(request)
    logger.info(f"Receiving upload request for {file.filename}")

    record = await service.upload(
        file,
        filename=file.filename,
        content_type=file.content_type,
        ttl=ttl,
        max_downloads=max_downloads,
        password=password,
        description=description,
        tags=tags,
        uploader_ip=request.client.host if request.client else "",
    )
    download_url = str(request.url_for("download_file", file_id=record.id))

    if wants_json(request):
        return UploadOut(
            id=record.id,
            filename=record.filename,
            original_name=record.original_name,
            size=record.size,
            checksum=record.checksum,
            download_url=download_url,
            expires_at=record.expires_at,
            max_downloads=record.max_downloads,
        )
    return PlainTextResponse(
        f"File uploaded successfully!\n\n"
        f"Download URL: {download_url}\n"
        f"Expires: {record.expires_at.strftime('%Y-%m-%d %H:%M:%S')}\n"
        f"Checksum: {record.checksum}\n"
    )


@router.get("/download/{file_id}")
async def download_file(file_id: str, request: Request, password: Optional[str] = None):
    """Stream a file's bytes, counting the download."""
    service = get_service(request)
    logger.info(f"Receiving download request for file_id: {file_id}")

    download = await service.download(file_id, password)
    record = download.record
    headers = {
        "content-disposition": content_disposition(record.original_name),
        "content-length": str(record.size),
        "x-checksum": record.checksum,
    }
    # The incremented counter reaches the snapshot once the response is sent
    return StreamingResponse(
        download.stream,
        media_type=record.content_type,
        headers=headers,
        background=BackgroundTask(service.persistence.save),
    )


@router.get("/info/{file_id}", response_model=FileRecordOut)
async def file_info(file_id: str, request: Request):
    record = await get_service(request).info(file_id)
    return FileRecordOut.from_record(record)


@router.delete("/delete/{file_id}")
async def delete_file(file_id: str, request: Request):
    """Delete a file. Deleting an unknown id is not an error."""
    logger.info(f"Receiving delete request for file_id: {file_id}")
    deleted = await get_service(request).delete(file_id)
    return {"status": "deleted" if deleted else "not_found", "id": file_id}


@router.post("/bulk-delete", response_model=BulkDeleteOut)
async def bulk_delete(body: BulkDeleteIn, request: Request):
    deleted, total = await get_service(request).bulk_delete(body.file_ids)
    return BulkDeleteOut(deleted=deleted, total=total)


@router.get("/search", response_model=List[FileRecordOut])
async def search_files(
    request: Request,
    q: Optional[str] = None,
    tag: Optional[str] = None,
    sort: Optional[str] = None,
    offset: Optional[int] = None,
    limit: Optional[int] = None,
):
    records = await get_service(request).search(q, tag, sort, offset, limit)
    return to_out(records)


@router.get("/api/files", response_model=FileListOut)
async def list_files(
    request: Request,
    offset: Optional[int] = None,
    limit: Optional[int] = None,
    sort: Optional[str] = None,
):
    records, total, offset, limit = await get_service(request).list_files(offset, limit, sort)
    return FileListOut(files=to_out(records), total=total, limit=limit, offset=offset)


@router.get("/stats", response_model=StatsOut)
async def get_stats(request: Request):
    return StatsOut(**await get_service(request).stats())


@router.get("/api/health", response_model=HealthOut)
async def health_check(request: Request):
    return HealthOut(**await get_service(request).health())
