"""Aggregation logic for sensor readings."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Tuple

from app.schemas import BucketSummary, Reading, StatSummary
from models.records import AggregationInterval

TEMPERATURE_PLACES = 2
HUMIDITY_PLACES = 1


def round_half_up(value: float, places: int) -> float:
    """Round half away from zero on the shortest decimal form of ``value``.

    ``round()`` works on the binary value, so ``round(20.125, 2)`` is
    ``20.12``; here it is ``20.13``.
    """
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def truncate(timestamp: datetime, interval: AggregationInterval) -> datetime:
    """Floor ``timestamp`` to the start of its bucket, in UTC."""
    instant = timestamp.astimezone(timezone.utc)
    if interval is AggregationInterval.minute:
        return instant.replace(second=0, microsecond=0)
    if interval is AggregationInterval.hour:
        return instant.replace(minute=0, second=0, microsecond=0)
    return instant.replace(hour=0, minute=0, second=0, microsecond=0)


@dataclass
class _Accumulator:
    """Running statistics for one (device, bucket) group."""

    first: Reading
    last: Reading
    temperatures: List[float] = field(default_factory=list)
    humidities: List[float] = field(default_factory=list)

    def add(self, reading: Reading) -> None:
        self.temperatures.append(reading.temperature)
        self.humidities.append(reading.humidity)
        if reading.order_key < self.first.order_key:
            self.first = reading
        if reading.order_key > self.last.order_key:
            self.last = reading


def _stats(values: List[float], places: int) -> StatSummary:
    return StatSummary(
        avg=round_half_up(math.fsum(values) / len(values), places),
        min=round_half_up(min(values), places),
        max=round_half_up(max(values), places),
    )


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def aggregate(
        self,
        readings: Iterable[Reading],
        interval: AggregationInterval = AggregationInterval.hour,
    ) -> List[BucketSummary]:
        groups: Dict[Tuple[str, datetime], _Accumulator] = {}

        for reading in readings:
            key = (reading.device_id, truncate(reading.timestamp, interval))
            group = groups.get(key)
            if group is None:
                group = groups[key] = _Accumulator(first=reading, last=reading)
            group.add(reading)

        summaries = [
            self._summarize(device_id, bucket_start, group, interval)
            for (device_id, bucket_start), group in groups.items()
        ]
        summaries.sort(key=lambda summary: (summary.first_reading, summary.device_id))
        return summaries

    @staticmethod
    def _summarize(
        device_id: str,
        bucket_start: datetime,
        group: _Accumulator,
        interval: AggregationInterval,
    ) -> BucketSummary:
        return BucketSummary(
            device_id=device_id,
            interval=interval,
            bucket_start=bucket_start,
            count=len(group.temperatures),
            temperature=_stats(group.temperatures, TEMPERATURE_PLACES),
            humidity=_stats(group.humidities, HUMIDITY_PLACES),
            first_reading=group.first.timestamp,
            last_reading=group.last.timestamp,
            location=group.first.location,
        )
