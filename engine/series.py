from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from config import WINDOWS
from engine.errors import InvalidArgumentError, InvalidInputError


@dataclass(frozen=True)
class SeriesPoint:
    date: date
    value: float


def validate_window(window: str) -> str:
    if window not in WINDOWS:
        raise InvalidArgumentError(f"Invalid window '{window}'. Allowed: {list(WINDOWS)}")
    return window


def parse_date(raw: Any) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, str):
        try:
            return datetime.fromisoformat(raw.strip().replace("Z", "+00:00")).date()
        except ValueError:
            pass
    raise InvalidInputError(f"Unparseable date: {raw!r}")


def parse_value(raw: Any) -> float:
    # no data -> 0
    if raw is None:
        return 0.0
    try:
        v = float(raw)
    except (TypeError, ValueError):
        raise InvalidInputError(f"Non-numeric interest value: {raw!r}")
    if math.isnan(v) or math.isinf(v):
        raise InvalidInputError(f"Non-finite interest value: {raw!r}")
    return v


def point_field(point: Any, name: str) -> Any:
    if isinstance(point, dict):
        return point.get(name)
    return getattr(point, name, None)


def parse_timestamp(raw: Any) -> Optional[datetime]:
    """Capture time as naive UTC. None passes through."""
    if raw is None:
        return None
    if isinstance(raw, datetime):
        ts = raw
    elif isinstance(raw, date):
        ts = datetime(raw.year, raw.month, raw.day)
    elif isinstance(raw, str):
        try:
            ts = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
        except ValueError:
            raise InvalidInputError(f"Unparseable capture time: {raw!r}")
    else:
        raise InvalidInputError(f"Unparseable capture time: {raw!r}")
    if ts.tzinfo is not None:
        ts = ts.replace(tzinfo=None) - ts.utcoffset()
    return ts


def _capture_key(point: Any, position: int) -> Tuple[int, datetime, int]:
    # Points without a capture timestamp rank by arrival order, below any timestamped one.
    captured = parse_timestamp(point_field(point, "captured_at"))
    if captured is None:
        return (0, datetime.min, position)
    return (1, captured, position)


def normalize(raw_points: Iterable[Any], window: str) -> List[SeriesPoint]:
    """
    Turn raw interest samples into a clean series for one (query, window).

    raw_points: dicts or objects with `date` and `value` (optionally `captured_at`)
    returns points strictly increasing by date, one per calendar date; a date
    seen more than once keeps the latest-captured value. Interior gaps are kept
    as gaps (no back-fill).
    """
    validate_window(window)

    latest: Dict[date, Tuple[Tuple[int, Any, int], float]] = {}
    for position, p in enumerate(raw_points or []):
        d = parse_date(point_field(p, "date"))
        v = parse_value(point_field(p, "value"))
        key = _capture_key(p, position)
        prev = latest.get(d)
        if prev is None or key >= prev[0]:
            latest[d] = (key, v)

    if len(latest) < 2:
        raise InvalidInputError(f"Need at least 2 distinct dates to score a series, got {len(latest)}")

    return [SeriesPoint(date=d, value=latest[d][1]) for d in sorted(latest)]


def snapshots_to_points(snapshots: Iterable[Any], region: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Map stored TrendSnapshot rows to raw points.

    Regions are never mixed. Without an explicit region the global
    (region-less) series is used; when there is none, the region with the
    most rows is used, ties going to the alphabetically first region.
    """
    rows = list(snapshots or [])
    if region is None and rows and not any(s.region is None for s in rows):
        counts = Counter(s.region for s in rows)
        region = min(counts, key=lambda r: (-counts[r], r))
    rows = [s for s in rows if s.region == region]

    return [
        {"date": s.date, "value": s.interest_value, "captured_at": s.created_at}
        for s in rows
    ]
