# FILE: manga_viewer/errors.py
"""
Error taxonomy shared by services and routes.

Services raise these; the application maps them to structured JSON
responses (see manga_viewer/app.py). Low-level zipfile/httpx/sqlite errors
are converted at the service boundary and never reach the HTTP layer.
"""


class MangaViewerError(Exception):
    """Base error carrying a user-facing message and an HTTP status"""

    kind = "internal-failure"
    status_code = 500

    def __init__(self, message: str, kind: str = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class NotFoundError(MangaViewerError):
    """Unknown collection, page out of range or missing storage pointer"""

    kind = "not-found"
    status_code = 404


class ConflictError(MangaViewerError):
    """Archive with the same content hash already registered"""

    kind = "duplicate-hash"
    status_code = 400


class ValidationFailure(MangaViewerError):
    """Rejected input: not an archive, empty, oversize, no images"""

    kind = "validation"
    status_code = 400


class TransientFailure(MangaViewerError):
    """Blob-store fetch/put or signing failure; the caller may retry"""

    kind = "transient-failure"
    status_code = 500


class StorageMisconfigured(TransientFailure):
    kind = "storage-misconfigured"


class CorruptArchiveError(Exception):
    """Archive bytes cannot be parsed or an entry cannot be decompressed.

    Internal only: the page extractor converts it to NotFoundError and the
    registration path to ValidationFailure.
    """


class DuplicateHashError(Exception):
    """Raised by the catalog when the unique content-hash index is violated"""


class DuplicateIdError(Exception):
    """Raised by the catalog when a record with the same id already exists"""
