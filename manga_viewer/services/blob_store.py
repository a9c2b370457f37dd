# FILE: manga_viewer/services/blob_store.py
"""
Blob store for archives, thumbnails and metadata sidecars

LocalBlobStore keeps objects on the filesystem and hands out HMAC-signed,
time-limited retrieval URLs served by GET /blobs/{key}.
"""
import hashlib
import hmac
import json
import logging
import os
import time
from pathlib import Path
from typing import Optional
from urllib.parse import quote, urlencode

from manga_viewer.errors import NotFoundError, StorageMisconfigured, TransientFailure

logger = logging.getLogger(__name__)


class BlobStore:
    """Interface for object storage used by registration and extraction"""

    def put_object(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        raise NotImplementedError

    def get_object(self, key: str) -> bytes:
        raise NotImplementedError

    def delete_object(self, key: str) -> None:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def generate_signed_url(self, key: str, expires_in: int = 300) -> str:
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """Filesystem-backed blob store with signed retrieval URLs"""

    def __init__(self, root_dir: str, signing_secret: str, public_base_url: str):
        self.root_dir = Path(root_dir)
        self.root_dir.mkdir(parents=True, exist_ok=True)
        self.signing_secret = signing_secret
        self.public_base_url = public_base_url.rstrip("/")

    def _path(self, key: str) -> Path:
        """Resolve key to a path inside root_dir"""
        if not key or key.startswith("/") or "\\" in key:
            raise NotFoundError(f"Invalid blob key: {key!r}")
        parts = key.split("/")
        if any(p in ("", ".", "..") for p in parts):
            raise NotFoundError(f"Invalid blob key: {key!r}")
        return self.root_dir.joinpath(*parts)

    def put_object(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        path = self._path(key)
        tmp_path = path.with_name(path.name + ".part")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "wb") as f:
                f.write(data)
            os.replace(tmp_path, path)
            with open(self._meta_path(path), "w") as f:
                json.dump({"content_type": content_type, "size": len(data)}, f)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise TransientFailure(f"Failed to store blob {key}: {e}") from e

        logger.debug(f"Stored blob: {key} ({len(data)} bytes)")
        return key

    def get_object(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise NotFoundError(f"Blob not found: {key}")
        try:
            return path.read_bytes()
        except OSError as e:
            raise TransientFailure(f"Failed to read blob {key}: {e}") from e

    def get_content_type(self, key: str) -> str:
        meta_path = self._meta_path(self._path(key))
        if not meta_path.exists():
            return "application/octet-stream"
        with open(meta_path, "r") as f:
            return json.load(f).get("content_type", "application/octet-stream")

    def delete_object(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
            self._meta_path(path).unlink(missing_ok=True)
        except OSError as e:
            raise TransientFailure(f"Failed to delete blob {key}: {e}") from e
        logger.debug(f"Deleted blob: {key}")

    def exists(self, key: str) -> bool:
        try:
            return self._path(key).is_file()
        except NotFoundError:
            return False

    @staticmethod
    def _meta_path(path: Path) -> Path:
        return path.with_name(path.name + ".meta.json")

    def _sign(self, key: str, expires: int) -> str:
        message = f"{key}\n{expires}".encode("utf-8")
        return hmac.new(self.signing_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()

    def generate_signed_url(self, key: str, expires_in: int = 300, now: Optional[float] = None) -> str:
        """Time-limited retrieval URL for one object"""
        if not self.signing_secret:
            raise StorageMisconfigured("Blob storage is not configured (BLOB_SIGNING_SECRET is empty)")
        issued = time.time() if now is None else now
        expires = int(issued) + int(expires_in)
        query = urlencode({"expires": expires, "signature": self._sign(key, expires)})
        return f"{self.public_base_url}/blobs/{quote(key)}?{query}"

    def verify_signature(self, key: str, expires: int, signature: str, now: Optional[float] = None) -> bool:
        if not self.signing_secret:
            return False
        current = time.time() if now is None else now
        if int(expires) < current:
            logger.warning(f"Rejected expired signed URL for {key}")
            return False
        expected = self._sign(key, int(expires))
        if not hmac.compare_digest(expected, signature):
            logger.warning(f"Rejected bad signature for {key}")
            return False
        return True
