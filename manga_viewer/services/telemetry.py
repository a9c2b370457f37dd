# FILE: manga_viewer/services/telemetry.py
"""
Reader telemetry (rotated JSONL)

Every upload, restore, delete, page read and progress write appends one
summary line to {LOGS_DIR}/telemetry/events-YYYY-MM-DD.jsonl (UTC dates).
Page bytes and archive contents are never written here.

A short in-memory tail is kept per process for /metrics/recent.
"""
from __future__ import annotations

import json
import logging
import threading
from collections import Counter, deque
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Deque, Dict, Optional

from manga_viewer.config import get_settings

logger = logging.getLogger(__name__)

# Event names
COLLECTION_REGISTERED = "collection_registered"
COLLECTION_REJECTED = "collection_rejected"
COLLECTION_RESTORED = "collection_restored"
COLLECTION_DELETED = "collection_deleted"
PAGE_EXTRACTED = "page_extracted"
PAGE_EXTRACT_FAILED = "page_extract_failed"
ARCHIVE_CACHE_HIT = "archive_cache_hit"
PROGRESS_UPDATED = "progress_updated"

_TAIL_SIZE = 200
_tail: Deque[Dict[str, Any]] = deque(maxlen=_TAIL_SIZE)
_seen: Counter = Counter()
_write_lock = threading.Lock()


@dataclass(frozen=True)
class TelemetryConfig:
    enabled: bool
    retention_days: int
    logs_dir: Path


def _current_config() -> TelemetryConfig:
    settings = get_settings()
    return TelemetryConfig(
        enabled=settings.telemetry_enabled,
        retention_days=settings.telemetry_retention_days,
        logs_dir=Path(settings.logs_dir),
    )


def telemetry_dir(cfg: Optional[TelemetryConfig] = None) -> Path:
    cfg = cfg or _current_config()
    d = cfg.logs_dir / "telemetry"
    d.mkdir(parents=True, exist_ok=True)
    return d


def event_file_for(day: date, cfg: Optional[TelemetryConfig] = None) -> Path:
    return telemetry_dir(cfg) / f"events-{day.isoformat()}.jsonl"


def _file_day(path: Path) -> Optional[date]:
    stem = path.stem
    if not stem.startswith("events-"):
        return None
    try:
        return date.fromisoformat(stem[len("events-"):])
    except ValueError:
        return None


def prune_event_files(cfg: Optional[TelemetryConfig] = None, today: Optional[date] = None) -> int:
    """Remove event files older than the retention window; returns how many went"""
    cfg = cfg or _current_config()
    today = today or datetime.now(timezone.utc).date()
    oldest_kept = today - timedelta(days=max(cfg.retention_days, 1))

    removed = 0
    try:
        for path in telemetry_dir(cfg).glob("events-*.jsonl"):
            day = _file_day(path)
            if day is not None and day < oldest_kept:
                path.unlink(missing_ok=True)
                removed += 1
    except OSError as e:
        logger.debug("Telemetry prune stopped early: %s", e)
    return removed


def init_telemetry() -> None:
    cfg = _current_config()
    if not cfg.enabled:
        logger.info("Telemetry disabled")
        return

    removed = prune_event_files(cfg)
    logger.info(
        "Telemetry ready (dir=%s retention_days=%s pruned=%s)",
        telemetry_dir(cfg),
        cfg.retention_days,
        removed,
    )


def record_event(event: str, **fields: Any) -> None:
    """Append one event line. Failures are logged, never raised to the caller."""
    cfg = _current_config()
    if not cfg.enabled:
        return

    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {"ts": now.isoformat(), "event": event, **fields}

    _tail.append(payload)
    _seen[event] += 1

    path = event_file_for(now.date(), cfg)
    try:
        line = json.dumps(payload, ensure_ascii=False, default=str)
        with _write_lock, open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
    except (OSError, TypeError, ValueError) as e:
        logger.warning("Dropped telemetry event %s (%s): %s", event, path, e)


def recent_events(limit: int = 20) -> Dict[str, Any]:
    """This process's view: counts since start plus the newest events"""
    limit = max(0, min(limit, _TAIL_SIZE))
    return {
        "enabled": _current_config().enabled,
        "counts_since_start": dict(_seen),
        "events": list(_tail)[-limit:] if limit else [],
    }


def reset_recent_events() -> None:
    _tail.clear()
    _seen.clear()
