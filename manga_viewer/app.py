# FILE: manga_viewer/app.py
"""
FastAPI application entry point for Manga Viewer
Upload ZIP archives, serve single pages out of them, track reading progress
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from manga_viewer.config import APP_VERSION, Settings, get_settings
from manga_viewer.errors import MangaViewerError
from manga_viewer.middleware.body_limit import UploadSizeLimitMiddleware
from manga_viewer.routes import blobs, cache, collections, health, metrics, pages, progress, upload
from manga_viewer.services.archive_cache import ArchiveCache
from manga_viewer.services.blob_store import LocalBlobStore
from manga_viewer.services.catalog_store import CatalogStore
from manga_viewer.services.page_extractor import PageExtractor
from manga_viewer.services.registration import CollectionRegistrar
from manga_viewer.services.telemetry import init_telemetry
from manga_viewer.services.thumbnail import Thumbnailer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown"""
    logger.info(f"Starting Manga Viewer backend v{APP_VERSION}")

    if not app.state.settings.storage_configured:
        logger.warning("BLOB_SIGNING_SECRET is empty: uploads and page reads will fail")

    init_telemetry()

    yield

    # Shutdown
    logger.info("Shutting down Manga Viewer backend")
    await app.state.http_client.aclose()


def create_app(
    settings: Optional[Settings] = None,
    catalog: Optional[CatalogStore] = None,
    blob_store: Optional[LocalBlobStore] = None,
    http_client: Optional[httpx.AsyncClient] = None
) -> FastAPI:
    """Build the application and the services it owns"""
    settings = settings or get_settings()

    catalog = catalog or CatalogStore(settings.catalog_db_path)
    blob_store = blob_store or LocalBlobStore(
        settings.blob_dir, settings.blob_signing_secret, settings.public_base_url
    )
    http_client = http_client or httpx.AsyncClient(timeout=settings.fetch_timeout_seconds)

    archive_cache = None
    if settings.archive_cache_enabled:
        archive_cache = ArchiveCache(
            ttl_seconds=settings.archive_cache_ttl_seconds,
            max_entries=settings.archive_cache_max_entries,
            max_bytes=settings.archive_cache_max_mb * 1024 * 1024,
        )

    app = FastAPI(
        title="Manga Viewer API",
        description="ZIP archive catalog with on-demand page extraction",
        version=APP_VERSION,
        lifespan=lifespan
    )

    app.state.settings = settings
    app.state.catalog = catalog
    app.state.blob_store = blob_store
    app.state.http_client = http_client
    app.state.archive_cache = archive_cache
    app.state.extractor = PageExtractor(
        catalog,
        blob_store,
        http_client,
        signed_url_ttl=settings.signed_url_ttl_seconds,
        cache=archive_cache,
    )
    app.state.registrar = CollectionRegistrar(
        catalog,
        blob_store,
        Thumbnailer(blob_store, settings.thumbnail_max_width, settings.thumbnail_max_height),
        storage_configured=settings.storage_configured,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Upload size guard
    app.add_middleware(UploadSizeLimitMiddleware, max_upload_bytes=settings.max_upload_bytes)

    # Exception handlers
    @app.exception_handler(MangaViewerError)
    async def manga_viewer_error_handler(request: Request, exc: MangaViewerError):
        if exc.status_code >= 500:
            logger.error(f"{exc.kind} on {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.kind, "message": exc.message}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "internal-failure",
                "message": "An error occurred while processing the request"
            }
        )

    # Include routers
    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(upload.router, prefix="/upload", tags=["upload"])
    app.include_router(collections.router, prefix="/collections", tags=["collections"])
    app.include_router(pages.router, prefix="/collections", tags=["pages"])
    app.include_router(progress.router, prefix="/progress", tags=["progress"])
    app.include_router(blobs.router, prefix="/blobs", tags=["blobs"])
    app.include_router(metrics.router, prefix="/metrics", tags=["metrics"])
    app.include_router(cache.router, prefix="/cache", tags=["cache"])

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "service": "Manga Viewer",
            "version": APP_VERSION,
            "status": "active"
        }

    return app


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    settings = get_settings()
    uvicorn.run(
        "manga_viewer.app:create_app",
        factory=True,
        host=settings.backend_host,
        port=settings.backend_port,
        reload=settings.environment == "development"
    )
