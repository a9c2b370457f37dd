# FILE: manga_viewer/middleware/body_limit.py
"""
Upload size guard

Rejects archive uploads whose declared Content-Length is already over the
cap, before any of the multipart body is read. Uploads without a declared
length are measured again by the upload route after parsing.
"""
import logging
from typing import Iterable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)


class UploadSizeLimitMiddleware(BaseHTTPMiddleware):
    """413 for oversized request bodies on the guarded path prefixes"""

    def __init__(self, app, max_upload_bytes: int, overhead_bytes: int = 64 * 1024,
                 guarded_prefixes: Iterable[str] = ("/upload",)):
        super().__init__(app)
        self.max_upload_bytes = max_upload_bytes
        # multipart framing and form fields ride along with the file
        self.limit = max_upload_bytes + overhead_bytes
        self.guarded_prefixes = tuple(guarded_prefixes)

    def _declared_length(self, request: Request) -> int:
        raw = request.headers.get("content-length", "")
        return int(raw) if raw.isdigit() else 0

    async def dispatch(self, request: Request, call_next):
        if request.method == "POST" and request.url.path.startswith(self.guarded_prefixes):
            declared = self._declared_length(request)
            if declared > self.limit:
                logger.warning(
                    "Upload to %s refused: %d bytes declared, limit %d",
                    request.url.path, declared, self.limit
                )
                limit_mb = self.max_upload_bytes / (1024 * 1024)
                return JSONResponse(
                    status_code=413,
                    content={
                        "success": False,
                        "error": "validation",
                        "message": f"File is too large (limit {limit_mb:g} MB)"
                    }
                )

        return await call_next(request)
