# FILE: tests/test_registration.py

import json
import struct

import pytest
from pydantic import ValidationError

from conftest import make_image, make_zip
from manga_viewer.errors import ConflictError, StorageMisconfigured, ValidationFailure
from manga_viewer.models.collections import ArchiveUpload
from manga_viewer.services.archive_index import index_archive
from manga_viewer.services.blob_store import LocalBlobStore
from manga_viewer.services.registration import (
    CollectionRegistrar,
    calculate_file_hash,
    delete_collection,
    title_from_filename,
)
from manga_viewer.services.thumbnail import Thumbnailer


class RecordingBlobStore(LocalBlobStore):
    """Local blob store that remembers every key written"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.put_keys = []

    def put_object(self, key, data, content_type="application/octet-stream"):
        self.put_keys.append(key)
        return super().put_object(key, data, content_type)


@pytest.fixture
def recording_store(settings):
    return RecordingBlobStore(settings.blob_dir, settings.blob_signing_secret, settings.public_base_url)


@pytest.fixture
def recording_registrar(catalog, recording_store):
    return CollectionRegistrar(catalog, recording_store, Thumbnailer(recording_store))


def test_register_archive(registrar, catalog, blob_store, sample_archive):
    record = registrar.register(ArchiveUpload(filename="a.zip", data=sample_archive))

    assert record.title == "a"
    assert record.total_pages == 3
    assert record.page_filenames == ["1.jpg", "2.jpg", "3.jpg"]
    assert record.file_hash == calculate_file_hash(sample_archive)
    assert record.file_size == len(sample_archive)
    assert record.key_prefix == f"manga-collections/{record.id}/"
    assert record.archive_key == f"manga-collections/{record.id}/a.zip"
    assert blob_store.get_object(record.archive_key) == sample_archive
    assert record.thumbnail_key == f"manga-collections/{record.id}/thumbnail.jpg"
    assert blob_store.exists(record.thumbnail_key)
    assert catalog.get(record.id) == record


def test_persisted_filenames_match_reindexing(registrar, catalog, blob_store, sample_archive):
    record = registrar.register(ArchiveUpload(filename="a.zip", data=sample_archive))
    stored = catalog.get(record.id)

    archive = blob_store.get_object(stored.archive_key)
    assert index_archive(archive).page_filenames == stored.page_filenames


def test_sidecar_written(registrar, blob_store, sample_archive):
    record = registrar.register(ArchiveUpload(
        filename="Vol 01.zip", data=sample_archive, title="Volume One", tags=["shonen", " "]
    ))
    sidecar = json.loads(blob_store.get_object(f"{record.key_prefix}metadata.json"))

    assert sidecar["collection_id"] == record.id
    assert sidecar["title"] == "Volume One"
    assert sidecar["tags"] == ["shonen"]
    assert sidecar["page_filenames"] == record.page_filenames
    assert sidecar["archive_key"] == record.archive_key


def test_duplicate_rejected_without_blob_writes(recording_registrar, recording_store, catalog, sample_archive):
    recording_registrar.register(ArchiveUpload(filename="a.zip", data=sample_archive))
    writes_after_first = len(recording_store.put_keys)

    with pytest.raises(ConflictError):
        recording_registrar.register(ArchiveUpload(filename="copy.zip", data=sample_archive))

    assert len(recording_store.put_keys) == writes_after_first
    assert len(catalog.list_all()) == 1


def test_zero_images_rejected_without_blob_writes(recording_registrar, recording_store, catalog):
    data = make_zip([("notes.txt", b"hello"), ("__MACOSX/._1.jpg", b"junk")])

    with pytest.raises(ValidationFailure) as exc:
        recording_registrar.register(ArchiveUpload(filename="a.zip", data=data))

    assert exc.value.kind == "no-images-found"
    assert recording_store.put_keys == []
    assert catalog.list_all() == []


def test_not_a_zip_rejected(recording_registrar, recording_store):
    with pytest.raises(ValidationFailure) as exc:
        recording_registrar.register(ArchiveUpload(filename="a.zip", data=b"plain text"))

    assert exc.value.kind == "not-an-archive"
    assert recording_store.put_keys == []


def test_thumbnail_failure_does_not_fail_registration(registrar, catalog):
    data = make_zip([("1.jpg", b"not really an image"), ("2.jpg", b"neither")])

    record = registrar.register(ArchiveUpload(filename="broken.zip", data=data))

    assert record.thumbnail_key is None
    assert record.total_pages == 2
    assert catalog.get(record.id) is not None


@pytest.mark.parametrize("error", [struct.error("unpack requires a buffer"), IndexError("tile"), SyntaxError("bad header")])
def test_unexpected_decoder_error_does_not_fail_registration(catalog, blob_store, sample_archive, error):
    class FailingThumbnailer(Thumbnailer):
        def render(self, image_bytes):
            raise error

    registrar = CollectionRegistrar(catalog, blob_store, FailingThumbnailer(blob_store))
    record = registrar.register(ArchiveUpload(filename="a.zip", data=sample_archive))

    assert record.thumbnail_key is None
    assert catalog.get(record.id) is not None


def test_nested_archive_filenames_are_base_names(registrar):
    data = make_zip([
        ("Vol 1/002.png", make_image()),
        ("Vol 1/001.png", make_image()),
        ("Vol 1/010.png", make_image()),
    ])
    record = registrar.register(ArchiveUpload(filename="uploads/vol1.zip", data=data))

    assert record.page_filenames == ["001.png", "002.png", "010.png"]
    assert record.archive_key.endswith("/vol1.zip")
    assert record.title == "vol1"


def test_storage_misconfigured(catalog, blob_store, sample_archive):
    registrar = CollectionRegistrar(catalog, blob_store, Thumbnailer(blob_store), storage_configured=False)

    with pytest.raises(StorageMisconfigured):
        registrar.register(ArchiveUpload(filename="a.zip", data=sample_archive))


def test_concurrent_duplicate_cleans_up(recording_registrar, recording_store, catalog, sample_archive, monkeypatch):
    """Losing the unique-hash race leaves no visible record and no new blobs"""
    first = recording_registrar.register(ArchiveUpload(filename="a.zip", data=sample_archive))
    writes_after_first = len(recording_store.put_keys)
    monkeypatch.setattr(catalog, "find_by_hash", lambda file_hash: None)

    with pytest.raises(ConflictError):
        recording_registrar.register(ArchiveUpload(filename="a.zip", data=sample_archive))

    assert [c.id for c in catalog.list_all()] == [first.id]
    for key in recording_store.put_keys[writes_after_first:]:
        assert not recording_store.exists(key)


def test_upload_model_rejects_unknown_fields():
    with pytest.raises(ValidationError):
        ArchiveUpload(filename="a.zip", data=b"x", publisher="unknown")


def test_upload_model_requires_zip_suffix():
    with pytest.raises(ValidationError):
        ArchiveUpload(filename="a.rar", data=b"x")
    assert ArchiveUpload(filename="A.ZIP", data=b"x").filename == "A.ZIP"


def test_title_from_filename():
    assert title_from_filename("One Piece 01.zip") == "One Piece 01"
    assert title_from_filename("dir/Vol.ZIP") == "Vol"


def test_restore_from_sidecar(registrar, catalog, sample_archive):
    record = registrar.register(ArchiveUpload(filename="a.zip", data=sample_archive))
    catalog.delete(record.id)

    restored = registrar.restore_from_sidecar(f"{record.key_prefix}metadata.json")

    assert restored.id == record.id
    assert restored.page_filenames == record.page_filenames
    assert catalog.get(record.id).file_hash == record.file_hash

    with pytest.raises(ConflictError):
        registrar.restore_from_sidecar(f"{record.key_prefix}metadata.json")


def test_restore_conflicts_with_existing_collection_id(registrar, catalog, blob_store, sample_archive):
    record = registrar.register(ArchiveUpload(filename="a.zip", data=sample_archive))
    metadata_key = f"{record.key_prefix}metadata.json"
    sidecar = json.loads(blob_store.get_object(metadata_key))
    sidecar["file_hash"] = "0" * 64
    blob_store.put_object(metadata_key, json.dumps(sidecar).encode("utf-8"), "application/json")

    with pytest.raises(ConflictError) as exc_info:
        registrar.restore_from_sidecar(metadata_key)

    assert exc_info.value.kind == "duplicate-collection"
    assert catalog.get(record.id).file_hash == record.file_hash


def test_restore_rejects_malformed_sidecar(registrar, blob_store):
    blob_store.put_object("manga-collections/x/metadata.json", b'{"collection_id": "x", "bogus": 1}')
    with pytest.raises(ValidationFailure):
        registrar.restore_from_sidecar("manga-collections/x/metadata.json")

    blob_store.put_object("manga-collections/y/metadata.json", b"not json")
    with pytest.raises(ValidationFailure):
        registrar.restore_from_sidecar("manga-collections/y/metadata.json")


def test_delete_keeps_blobs_unless_purged(registrar, catalog, blob_store, sample_archive):
    first = registrar.register(ArchiveUpload(filename="a.zip", data=sample_archive))
    delete_collection(catalog, blob_store, first.id)

    assert catalog.get(first.id) is None
    assert blob_store.exists(first.archive_key)

    second = registrar.register(ArchiveUpload(filename="a.zip", data=sample_archive))
    delete_collection(catalog, blob_store, second.id, purge_blobs=True)

    assert not blob_store.exists(second.archive_key)
    assert not blob_store.exists(second.thumbnail_key)
    assert not blob_store.exists(f"{second.key_prefix}metadata.json")
