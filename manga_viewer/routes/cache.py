# FILE: manga_viewer/routes/cache.py
"""
Archive cache endpoints
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends

from manga_viewer.routes.deps import get_archive_cache
from manga_viewer.services.archive_cache import ArchiveCache

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/status")
async def cache_status(cache: Optional[ArchiveCache] = Depends(get_archive_cache)):
    """Get archive cache statistics"""
    return {
        "enabled": cache is not None,
        "stats": cache.get_stats() if cache is not None else None
    }


@router.post("/clear")
async def clear_cache(
    collection_id: Optional[str] = None,
    cache: Optional[ArchiveCache] = Depends(get_archive_cache)
):
    """Clear the whole cache or one collection's entry"""
    if cache is not None:
        if collection_id:
            cache.invalidate(collection_id)
        else:
            cache.clear()

    return {
        "status": "success",
        "cleared": collection_id or "all"
    }
