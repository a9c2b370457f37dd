# FILE: manga_viewer/routes/upload.py
"""
Archive upload endpoint
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from manga_viewer.config import Settings
from manga_viewer.errors import StorageMisconfigured, ValidationFailure
from manga_viewer.models.collections import ArchiveUpload, UploadResponse
from manga_viewer.routes.deps import get_app_settings, get_registrar
from manga_viewer.services.registration import CollectionRegistrar

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=UploadResponse)
async def upload_archive(
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    settings: Settings = Depends(get_app_settings),
    registrar: CollectionRegistrar = Depends(get_registrar)
):
    """
    Upload one ZIP archive and register it as a collection.
    """
    filename = file.filename or ""
    if not filename.lower().endswith(".zip"):
        raise ValidationFailure("Please select a ZIP file", kind="not-an-archive")

    if not settings.storage_configured:
        raise StorageMisconfigured("Blob storage is not configured. Check the environment settings.")

    content = await file.read()
    if len(content) > settings.max_upload_bytes:
        raise ValidationFailure(f"File is too large (limit {settings.max_upload_mb} MB)")
    if not content:
        raise ValidationFailure("Uploaded file is empty")

    logger.info(f"Uploading archive: {filename} ({len(content)} bytes)")

    try:
        upload = ArchiveUpload(
            filename=filename,
            data=content,
            title=title,
            description=description,
            tags=tags.split(",") if tags else [],
        )
    except ValidationError as e:
        raise ValidationFailure(f"Invalid upload: {e.errors()[0]['msg']}") from e

    record = await run_in_threadpool(registrar.register, upload)

    return UploadResponse(
        message="Upload complete",
        collection_id=record.id,
        total_pages=record.total_pages,
        thumbnail_key=record.thumbnail_key,
    )
