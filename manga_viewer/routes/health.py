# FILE: manga_viewer/routes/health.py
"""
Health check endpoint
"""
import logging
from fastapi import APIRouter, Request

from manga_viewer.config import APP_VERSION

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def health_check(request: Request):
    """
    Health check endpoint
    Returns storage_configured=false when signed URLs cannot be issued
    """
    settings = request.app.state.settings
    cache = request.app.state.archive_cache

    return {
        "status": "healthy",
        "version": APP_VERSION,
        "storage_configured": settings.storage_configured,
        "archive_cache": cache.get_stats() if cache is not None else None
    }
