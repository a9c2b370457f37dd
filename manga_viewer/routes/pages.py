# FILE: manga_viewer/routes/pages.py
"""
Page image endpoint
"""
import logging

from fastapi import APIRouter, Depends, Path
from fastapi.responses import Response

from manga_viewer.config import Settings
from manga_viewer.routes.deps import get_app_settings, get_extractor
from manga_viewer.services.page_extractor import PageExtractor

logger = logging.getLogger(__name__)
router = APIRouter()


# Async handler: the archive fetch may hit this process's own /blobs route,
# so it must not wait while holding a threadpool worker
@router.get("/{collection_id}/pages/{page_index}")
async def get_page(
    collection_id: str,
    page_index: int = Path(..., ge=0),
    settings: Settings = Depends(get_app_settings),
    extractor: PageExtractor = Depends(get_extractor)
):
    """Return one page image extracted from the collection's archive"""
    page = await extractor.extract_page(collection_id, page_index)

    return Response(
        content=page.data,
        media_type=page.content_type,
        headers={
            "Cache-Control": f"public, max-age={settings.page_cache_max_age}",
        },
    )
