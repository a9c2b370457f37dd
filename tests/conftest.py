# FILE: tests/conftest.py

import io
import sys
import zipfile
from pathlib import Path
from typing import Iterable, Tuple

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import httpx
import pytest
from PIL import Image

from manga_viewer.config import reload_settings
from manga_viewer.services.blob_store import LocalBlobStore
from manga_viewer.services.catalog_store import CatalogStore
from manga_viewer.services.page_extractor import PageExtractor
from manga_viewer.services.registration import CollectionRegistrar
from manga_viewer.services.thumbnail import Thumbnailer

SIGNING_SECRET = "test-signing-secret"


def make_zip(entries: Iterable[Tuple[str, bytes]], compression=zipfile.ZIP_DEFLATED) -> bytes:
    """Build a ZIP archive in memory; entries are written in the given order"""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression) as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return buf.getvalue()


def make_image(color=(255, 0, 0), size=(60, 90), fmt="PNG") -> bytes:
    """Small real image for thumbnail-capable fixtures"""
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


def make_blob_transport(blob_store: LocalBlobStore, calls=None) -> httpx.MockTransport:
    """Serve signed blob URLs straight from the local blob store"""
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(str(request.url))
        key = request.url.path[len("/blobs/"):]
        expires = int(request.url.params.get("expires", "0"))
        signature = request.url.params.get("signature", "")
        if not blob_store.verify_signature(key, expires, signature):
            return httpx.Response(403)
        if not blob_store.exists(key):
            return httpx.Response(404)
        return httpx.Response(200, content=blob_store.get_object(key))

    return httpx.MockTransport(handler)


@pytest.fixture(autouse=True)
def settings(tmp_path, monkeypatch):
    """Provide settings pointing at a per-test data directory"""
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("BLOB_DIR", str(tmp_path / "data" / "blobs"))
    monkeypatch.setenv("CATALOG_DB_PATH", str(tmp_path / "data" / "catalog.db"))
    monkeypatch.setenv("LOGS_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("BLOB_SIGNING_SECRET", SIGNING_SECRET)
    monkeypatch.setenv("PUBLIC_BASE_URL", "http://testserver")
    monkeypatch.setenv("MAX_UPLOAD_MB", "1")
    monkeypatch.setenv("TELEMETRY_ENABLED", "true")
    monkeypatch.setenv("ARCHIVE_CACHE_ENABLED", "false")
    return reload_settings()


@pytest.fixture
def blob_store(settings):
    return LocalBlobStore(settings.blob_dir, settings.blob_signing_secret, settings.public_base_url)


@pytest.fixture
def catalog(settings):
    return CatalogStore(settings.catalog_db_path)


@pytest.fixture
def fetch_calls():
    return []


@pytest.fixture
def http_client(blob_store, fetch_calls):
    # MockTransport holds no connections, nothing to close
    return httpx.AsyncClient(transport=make_blob_transport(blob_store, fetch_calls))


@pytest.fixture
def registrar(catalog, blob_store):
    return CollectionRegistrar(catalog, blob_store, Thumbnailer(blob_store))


@pytest.fixture
def extractor(catalog, blob_store, http_client):
    return PageExtractor(catalog, blob_store, http_client)


@pytest.fixture
def page_images():
    """Distinct image payloads keyed by member name"""
    return {
        "1.jpg": make_image((255, 0, 0), fmt="JPEG"),
        "2.jpg": make_image((0, 255, 0), fmt="JPEG"),
        "3.jpg": make_image((0, 0, 255), fmt="JPEG"),
    }


@pytest.fixture
def sample_archive(page_images):
    """Three pages written out of natural order"""
    return make_zip([
        ("3.jpg", page_images["3.jpg"]),
        ("1.jpg", page_images["1.jpg"]),
        ("2.jpg", page_images["2.jpg"]),
    ])
