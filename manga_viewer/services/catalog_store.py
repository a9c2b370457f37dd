# FILE: manga_viewer/services/catalog_store.py
"""
Catalog store for collection records (SQLite)

file_hash carries a UNIQUE index: it is the one place where concurrent
uploads of the same archive are serialised.
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from manga_viewer.errors import DuplicateHashError, DuplicateIdError
from manga_viewer.models.collections import Collection

logger = logging.getLogger(__name__)

_COLUMNS = [
    "id", "title", "original_filename", "file_hash", "file_size", "total_pages",
    "page_filenames", "description", "tags", "key_prefix", "archive_key",
    "thumbnail_key", "upload_date", "updated_at", "last_page_read", "last_read_date",
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _load_list(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Corrupt JSON list in catalog row; treating as empty")
        return []
    return value if isinstance(value, list) else []


class CatalogStore:
    """Store for collection records"""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.init_db()

    @contextmanager
    def _connect(self):
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def init_db(self):
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute('''CREATE TABLE IF NOT EXISTS collections (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                original_filename TEXT NOT NULL,
                file_hash TEXT NOT NULL UNIQUE,
                file_size INTEGER NOT NULL,
                total_pages INTEGER NOT NULL,
                page_filenames TEXT NOT NULL,
                description TEXT,
                tags TEXT,
                key_prefix TEXT NOT NULL,
                archive_key TEXT,
                thumbnail_key TEXT,
                upload_date TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                last_page_read INTEGER NOT NULL DEFAULT 0,
                last_read_date TEXT
            )''')
            conn.execute('CREATE INDEX IF NOT EXISTS idx_upload_date ON collections(upload_date)')
            conn.execute('CREATE INDEX IF NOT EXISTS idx_last_read ON collections(last_read_date)')

    @staticmethod
    def _to_row(record: Collection) -> Dict[str, Any]:
        row = record.model_dump()
        row["page_filenames"] = json.dumps(record.page_filenames, ensure_ascii=False)
        row["tags"] = json.dumps(record.tags, ensure_ascii=False)
        for field in ("upload_date", "updated_at", "last_read_date"):
            if row[field] is not None:
                row[field] = row[field].isoformat()
        return row

    @staticmethod
    def _from_row(row: sqlite3.Row) -> Collection:
        data = dict(row)
        data["page_filenames"] = _load_list(data["page_filenames"])
        data["tags"] = _load_list(data["tags"])
        return Collection.model_validate(data)

    def create(self, record: Collection) -> Collection:
        """Insert a new record; the row becomes visible atomically"""
        row = self._to_row(record)
        placeholders = ", ".join(f":{c}" for c in _COLUMNS)
        try:
            with self._connect() as conn:
                conn.execute(
                    f"INSERT INTO collections ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                    row
                )
        except sqlite3.IntegrityError as e:
            if "file_hash" in str(e):
                raise DuplicateHashError(record.file_hash) from e
            if "collections.id" in str(e):
                raise DuplicateIdError(record.id) from e
            raise

        logger.info(f"Created collection: {record.id} ({record.title})")
        return record

    def get(self, collection_id: str) -> Optional[Collection]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM collections WHERE id = ?", (collection_id,)).fetchone()
        return self._from_row(row) if row else None

    def find_by_hash(self, file_hash: str) -> Optional[Collection]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM collections WHERE file_hash = ?", (file_hash,)).fetchone()
        return self._from_row(row) if row else None

    def update_progress(
        self,
        collection_id: str,
        last_page_read: int,
        read_at: Optional[datetime] = None
    ) -> Optional[Collection]:
        """Update reading progress; returns None for an unknown id"""
        read_at = read_at or _utcnow()
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE collections SET last_page_read = ?, last_read_date = ?, updated_at = ? WHERE id = ?",
                (last_page_read, read_at.isoformat(), _utcnow().isoformat(), collection_id)
            )
            if cur.rowcount == 0:
                return None
        return self.get(collection_id)

    def delete(self, collection_id: str) -> Optional[Collection]:
        """Delete the catalog row; returns the removed record"""
        record = self.get(collection_id)
        if record is None:
            return None
        with self._connect() as conn:
            conn.execute("DELETE FROM collections WHERE id = ?", (collection_id,))
        logger.info(f"Deleted collection: {collection_id}")
        return record

    def list_all(self) -> List[Collection]:
        """All collections, newest upload first"""
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM collections ORDER BY upload_date DESC").fetchall()
        return [self._from_row(r) for r in rows]

    def search_by_title(self, query: str) -> List[Collection]:
        pattern = "%" + query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM collections WHERE title LIKE ? ESCAPE '\\' ORDER BY upload_date DESC",
                (pattern,)
            ).fetchall()
        return [self._from_row(r) for r in rows]

    def list_in_progress(self) -> List[Collection]:
        """Started but not finished, most recently read first"""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM collections WHERE last_page_read > 0 AND last_page_read < total_pages "
                "ORDER BY last_read_date DESC"
            ).fetchall()
        return [self._from_row(r) for r in rows]

    def list_recently_read(self, limit: int = 10) -> List[Collection]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM collections WHERE last_read_date IS NOT NULL "
                "ORDER BY last_read_date DESC LIMIT ?",
                (limit,)
            ).fetchall()
        return [self._from_row(r) for r in rows]
