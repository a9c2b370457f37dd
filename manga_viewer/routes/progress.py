# FILE: manga_viewer/routes/progress.py
"""
Reading progress endpoint
"""
import logging
from fastapi import APIRouter, Depends

from manga_viewer.errors import NotFoundError
from manga_viewer.models.collections import ProgressUpdate
from manga_viewer.routes.deps import get_catalog
from manga_viewer.services.catalog_store import CatalogStore
from manga_viewer.services import telemetry

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("")
def update_progress(request: ProgressUpdate, catalog: CatalogStore = Depends(get_catalog)):
    """Persist the last page read"""
    record = catalog.update_progress(request.collection_id, request.page_number)
    if record is None:
        raise NotFoundError(f"Collection {request.collection_id} not found")

    telemetry.record_event(telemetry.PROGRESS_UPDATED, collection_id=record.id, page_number=request.page_number)

    return {
        "success": True,
        "collection_id": record.id,
        "last_page_read": record.last_page_read,
        "last_read_date": record.last_read_date
    }
