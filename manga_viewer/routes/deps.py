# FILE: manga_viewer/routes/deps.py
"""
Request dependencies resolving the services built by create_app()
"""
from fastapi import Request

from manga_viewer.config import Settings
from manga_viewer.services.archive_cache import ArchiveCache
from manga_viewer.services.blob_store import LocalBlobStore
from manga_viewer.services.catalog_store import CatalogStore
from manga_viewer.services.page_extractor import PageExtractor
from manga_viewer.services.registration import CollectionRegistrar


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_catalog(request: Request) -> CatalogStore:
    return request.app.state.catalog


def get_blob_store(request: Request) -> LocalBlobStore:
    return request.app.state.blob_store


def get_extractor(request: Request) -> PageExtractor:
    return request.app.state.extractor


def get_registrar(request: Request) -> CollectionRegistrar:
    return request.app.state.registrar


def get_archive_cache(request: Request) -> ArchiveCache:
    return request.app.state.archive_cache
