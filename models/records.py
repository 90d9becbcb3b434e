"""Core value types shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AggregationInterval(str, Enum):
    """Bucket widths supported by the aggregation engine."""

    minute = "minute"
    hour = "hour"
    day = "day"


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """Closed time interval used to filter readings by ``timestamp``."""

    start: datetime
    end: datetime


@dataclass(frozen=True, slots=True)
class ReadingDraft:
    """A validated ingestion candidate that has not been stamped yet."""

    device_id: str
    temperature: float
    humidity: float
    source: str
    location_name: str
    latitude: float
    longitude: float
