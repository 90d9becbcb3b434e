"""Device/time filtering of stored readings."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Union

from app.schemas import Reading
from datastore.readings import ReadingStore
from models.records import TimeWindow
from services.errors import QueryError

logger = logging.getLogger(__name__)

DEFAULT_HOURS = 24
DEFAULT_LIMIT = 100
DEFAULT_MAX_LIMIT = 10000

DateInput = Union[str, datetime, None]


def coerce_int(value: Any, name: str, default: int) -> int:
    """Coerce a query parameter to a positive integer.

    Fractional values are truncated toward zero, so ``"1.5"`` becomes 1.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, bool):
        raise QueryError(f"{name} must be an integer")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, (float, str)):
        parsed = _truncate_number(value, name)
    else:
        raise QueryError(f"{name} must be an integer")
    if parsed <= 0:
        raise QueryError(f"{name} must be positive")
    return parsed


def _truncate_number(value: Union[float, str], name: str) -> int:
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    try:
        number = float(value)
    except ValueError as exc:
        raise QueryError(f"{name} must be an integer") from exc
    if not math.isfinite(number):
        raise QueryError(f"{name} must be an integer")
    return int(number)


def parse_instant(value: Union[str, datetime], name: str) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        candidate = value.strip()
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError as exc:
            raise QueryError(f"{name} is not a valid ISO-8601 date") from exc

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except (OverflowError, ValueError) as exc:
        raise QueryError(f"{name} is out of range") from exc


def resolve_window(
    now: datetime,
    hours: Any = None,
    start_date: DateInput = None,
    end_date: DateInput = None,
) -> TimeWindow:
    """Explicit dates win only when both are given; otherwise look back ``hours``."""
    if start_date and end_date:
        start = parse_instant(start_date, "startDate")
        end = parse_instant(end_date, "endDate")
        if start > end:
            raise QueryError("startDate must not be after endDate")
        return TimeWindow(start=start, end=end)

    look_back = coerce_int(hours, "hours", DEFAULT_HOURS)
    try:
        start = now - timedelta(hours=look_back)
    except (OverflowError, ValueError) as exc:
        raise QueryError("hours is out of range") from exc
    return TimeWindow(start=start, end=now)


class RangeQueryEngine:
    """Answers "what happened recently" queries, most recent first."""

    def __init__(self, store: ReadingStore, max_limit: int = DEFAULT_MAX_LIMIT) -> None:
        self.store = store
        self.max_limit = max_limit

    def query(
        self,
        window: TimeWindow,
        device_id: Optional[str] = None,
        limit: Any = None,
        now: Optional[datetime] = None,
    ) -> List[Reading]:
        requested = coerce_int(limit, "limit", DEFAULT_LIMIT)
        effective = min(requested, self.max_limit)
        if effective < requested:
            logger.debug("Clamping query limit", extra={"limit": effective})
        return self.store.select(
            device_id=device_id or None,
            start=window.start,
            end=window.end,
            limit=effective,
            newest_first=True,
            now=now,
        )
