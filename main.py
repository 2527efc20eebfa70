from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.exceptions import FileShareError
from app.routes.file_routes import router
from app.services.file_service import FileShareService
from config import Settings
from logger_config import setup_logger

# Logger setup
logger = setup_logger()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI app around its own FileShareService instance."""
    settings = settings or Settings.from_file()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Load the snapshot and start the cleanup and save loops
        app.state.file_service = FileShareService(settings)
        await app.state.file_service.start()
        yield
        await app.state.file_service.stop()

    app = FastAPI(title="File Share Server", lifespan=lifespan)
    app.state.settings = settings

    @app.exception_handler(FileShareError)
    async def file_share_error_handler(request: Request, exc: FileShareError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    app.include_router(router)
    return app


if __name__ == "__main__":
    settings = Settings.from_file()
    logger.info("Starting file share server...")
    logger.info(f"Upload directory: {settings.upload_dir}")
    logger.info(f"Metadata file: {settings.metadata_file}")
    logger.info(f"Default TTL: {settings.default_ttl}s, cleanup every {settings.cleanup_interval}s")
    logger.info(f"File list: http://localhost:{settings.port}/api/files")
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
