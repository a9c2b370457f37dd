# FILE: manga_viewer/routes/metrics.py
"""
Global metrics API over rotated JSONL telemetry logs.

Endpoints:
- GET /metrics/summary
- GET /metrics/recent

Telemetry files:
  {LOGS_DIR}/telemetry/events-YYYY-MM-DD.jsonl
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from fastapi import APIRouter, Query

from manga_viewer.services import telemetry

logger = logging.getLogger(__name__)
router = APIRouter(tags=["metrics"])


# ----------------------------
# Helpers
# ----------------------------

def _parse_ts(ts: Any) -> Optional[datetime]:
    if not ts or not isinstance(ts, str):
        return None

    s = ts.strip()
    # support "...Z"
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _percentile(values: List[float], p: float) -> float:
    if not values:
        return 0.0
    if p <= 0:
        return float(min(values))
    if p >= 100:
        return float(max(values))
    vals = sorted(values)
    k = (len(vals) - 1) * (p / 100.0)
    f = int(k)
    c = min(f + 1, len(vals) - 1)
    if f == c:
        return float(vals[f])
    return float(vals[f] + (vals[c] - vals[f]) * (k - f))


def _iter_candidate_files(start_utc: datetime, end_utc: datetime) -> List[Path]:
    """Rotated files (events-YYYY-MM-DD.jsonl) whose date intersects the window"""
    files: List[Path] = []
    d = start_utc.date()
    while d <= end_utc.date():
        p = telemetry.event_file_for(d)
        if p.exists():
            files.append(p)
        d = d + timedelta(days=1)
    return files


def _iter_events(since_hours: int, collection_id: Optional[str] = None) -> Iterable[Dict[str, Any]]:
    now = datetime.now(timezone.utc)
    start = now - timedelta(hours=max(1, since_hours))

    for path in _iter_candidate_files(start, now):
        try:
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        ev = json.loads(line)
                    except json.JSONDecodeError:
                        continue

                    ts = _parse_ts(ev.get("ts"))
                    if not ts or ts < start or ts > now:
                        continue
                    if collection_id and ev.get("collection_id") != collection_id:
                        continue

                    yield ev
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning("metrics: failed reading %s: %s", str(path), e)
            continue


def _safe_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except (TypeError, ValueError):
        return default


# ----------------------------
# API: /metrics/summary
# ----------------------------

@router.get("/summary")
def metrics_summary(
    since_hours: int = Query(24, ge=1, le=24 * 30),
    collection_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    High-level summary: event counts, extraction latency, cache hit rate.
    """
    total_events = 0
    counts: Dict[str, int] = {}
    durations: List[float] = []
    stale = 0
    failure_reasons: Dict[str, int] = {}

    for ev in _iter_events(since_hours, collection_id=collection_id):
        total_events += 1
        name = str(ev.get("event") or "").strip()
        counts[name] = counts.get(name, 0) + 1

        if name == telemetry.PAGE_EXTRACTED:
            durations.append(float(_safe_int(ev.get("durationms"), 0)))
            if ev.get("stale_metadata"):
                stale += 1

        if name == telemetry.PAGE_EXTRACT_FAILED:
            reason = str(ev.get("reason") or "unknown")
            failure_reasons[reason] = failure_reasons.get(reason, 0) + 1

    extracted = counts.get(telemetry.PAGE_EXTRACTED, 0)
    cache_hits = counts.get(telemetry.ARCHIVE_CACHE_HIT, 0)

    return {
        "since_hours": since_hours,
        "filters": {"collection_id": collection_id},
        "total_events": total_events,
        "event_counts": counts,
        "extraction": {
            "count": extracted,
            "avg_duration_ms": (sum(durations) / len(durations)) if durations else 0.0,
            "p50_duration_ms": _percentile(durations, 50),
            "p95_duration_ms": _percentile(durations, 95),
            "max_duration_ms": max(durations) if durations else 0.0,
            "stale_metadata": stale,
            "failures": failure_reasons,
        },
        "cache": {
            "hits": cache_hits,
            "hit_rate": (cache_hits / extracted) if extracted else 0.0,
        },
        "registration": {
            "registered": counts.get(telemetry.COLLECTION_REGISTERED, 0),
            "rejected": counts.get(telemetry.COLLECTION_REJECTED, 0),
        },
    }


@router.get("/recent")
def metrics_recent(limit: int = Query(20, ge=0, le=200)) -> Dict[str, Any]:
    """Newest events seen by this process (not read from disk)"""
    return telemetry.recent_events(limit)
