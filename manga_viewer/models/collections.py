# FILE: manga_viewer/models/collections.py
"""
Collection models
"""
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator


class Collection(BaseModel):
    """Catalog record for one uploaded archive"""
    id: str
    title: str
    original_filename: str
    file_hash: str
    file_size: int = Field(ge=0)
    total_pages: int = Field(ge=0)
    page_filenames: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    key_prefix: str
    archive_key: Optional[str] = None
    thumbnail_key: Optional[str] = None
    upload_date: datetime
    updated_at: datetime
    last_page_read: int = 0
    last_read_date: Optional[datetime] = None


class ArchiveUpload(BaseModel):
    """Validated ingest input"""
    model_config = ConfigDict(extra="forbid")

    filename: str = Field(min_length=1)
    data: bytes
    title: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("filename")
    @classmethod
    def validate_filename(cls, v):
        if not v.lower().endswith(".zip"):
            raise ValueError("filename must end with .zip")
        return v

    @field_validator("title", "description")
    @classmethod
    def blank_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, v):
        return [t.strip() for t in v if t and t.strip()]


class CollectionSidecar(BaseModel):
    """metadata.json written next to each archive in the blob store"""
    model_config = ConfigDict(extra="forbid")

    collection_id: str = Field(min_length=1)
    title: str
    original_filename: str
    file_hash: str = Field(pattern=r"^[0-9a-f]{64}$")
    file_size: int = Field(ge=0)
    total_pages: int = Field(gt=0)
    page_filenames: List[str]
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    upload_date: datetime
    key_prefix: str
    archive_key: str
    thumbnail_key: Optional[str] = None

    @field_validator("page_filenames")
    @classmethod
    def validate_page_filenames(cls, v, info):
        total = info.data.get("total_pages")
        if total is not None and len(v) != total:
            raise ValueError("page_filenames length must match total_pages")
        return v


class ProgressUpdate(BaseModel):
    """Reading progress update"""
    collection_id: str = Field(min_length=1)
    page_number: int = Field(ge=0)


class RestoreRequest(BaseModel):
    """Restore a catalog record from a metadata sidecar"""
    metadata_key: str = Field(min_length=1)


class UploadResponse(BaseModel):
    success: bool = True
    message: str
    collection_id: str
    total_pages: int
    thumbnail_key: Optional[str] = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str
