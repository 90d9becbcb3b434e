"""Ingestion and query orchestration for device telemetry."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime, timedelta
from functools import lru_cache
from threading import Event, Lock
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from app.schemas import BucketSummary, Location, Reading
from datastore.readings import Clock, ReadingStore, build_default_store
from models.records import AggregationInterval, TimeWindow, utc_now
from services.aggregator import Aggregator
from services.errors import QueryError, StoreUnavailable, ValidationError
from services.latest_index import LatestReadingIndex
from services.range_query import DEFAULT_MAX_LIMIT, RangeQueryEngine, resolve_window
from services.validation import validate_payload
from settings import get_settings

logger = logging.getLogger(__name__)


def parse_interval(bucket: Any) -> AggregationInterval:
    if bucket is None or (isinstance(bucket, str) and not bucket.strip()):
        return AggregationInterval.hour
    if isinstance(bucket, AggregationInterval):
        return bucket
    try:
        return AggregationInterval(str(bucket).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(interval.value for interval in AggregationInterval)
        raise QueryError(f"interval must be one of: {allowed}") from exc


class TelemetryService:
    """Admits readings and answers latest, range and aggregate queries.

    Ingestion for a single device is serialized by a per-device lock; other
    devices and all reads proceed concurrently.
    """

    def __init__(
        self,
        store: ReadingStore,
        index: Optional[LatestReadingIndex] = None,
        aggregator: Optional[Aggregator] = None,
        clock: Clock = utc_now,
        latest_lookback_hours: int = 24,
        max_query_limit: int = DEFAULT_MAX_LIMIT,
        sweep_interval_seconds: int = 0,
    ) -> None:
        self.store = store
        self.index = index or LatestReadingIndex()
        self.aggregator = aggregator or Aggregator()
        self.range_engine = RangeQueryEngine(store, max_limit=max_query_limit)
        self.latest_lookback_hours = latest_lookback_hours
        self._clock = clock
        self._device_locks: Dict[str, Lock] = {}
        self._device_locks_guard = Lock()

        self.index.rebuild(self.store.latest_per_device(now=self._clock()))

        self.sweeper: Optional[RetentionSweeper] = None
        if sweep_interval_seconds > 0:
            self.sweeper = RetentionSweeper(self, interval_seconds=sweep_interval_seconds)

    def ingest(self, raw: Any) -> Reading:
        """Validate, stamp and store a reading, then publish it to the index."""
        try:
            draft = validate_payload(raw)
        except ValidationError as exc:
            device_id = raw.get("deviceId") if isinstance(raw, Mapping) else None
            logger.warning(
                "Rejected reading payload",
                extra={"device_id": device_id, "fields": sorted(exc.fields)},
            )
            raise

        with self._locked_device(draft.device_id):
            stamped = self._clock()
            previous = self.index.get(draft.device_id)
            if previous is not None and previous.timestamp > stamped:
                # Server clock stepped backwards; keep per-device order.
                stamped = previous.timestamp
            reading = Reading(
                device_id=draft.device_id,
                location=Location(
                    name=draft.location_name,
                    latitude=draft.latitude,
                    longitude=draft.longitude,
                ),
                temperature=draft.temperature,
                humidity=draft.humidity,
                source=draft.source,
                timestamp=stamped,
                created_at=stamped,
            )
            stored = self.store.append(reading)
            self.index.upsert(stored)

        logger.info(
            "Reading admitted",
            extra={"device_id": stored.device_id, "reading_sequence": stored.sequence},
        )
        return stored

    def query_latest(self, device_id: Optional[str] = None) -> List[Reading]:
        now = self._clock()
        if device_id:
            reading = self.index.get(device_id)
            if reading is None or not self._is_live(reading, now):
                return []
            return [reading]

        since = None
        if self.latest_lookback_hours > 0:
            since = now - timedelta(hours=self.latest_lookback_hours)
        latest = [
            reading
            for reading in self.index.get_all(since=since).values()
            if self._is_live(reading, now)
        ]
        latest.sort(key=lambda reading: reading.order_key, reverse=True)
        return latest

    def resolve_window(
        self,
        hours: Any = None,
        start_date: Any = None,
        end_date: Any = None,
    ) -> TimeWindow:
        return resolve_window(self._clock(), hours=hours, start_date=start_date, end_date=end_date)

    def query_range(
        self,
        device_id: Optional[str] = None,
        hours: Any = None,
        start_date: Any = None,
        end_date: Any = None,
        limit: Any = None,
    ) -> List[Reading]:
        now = self._clock()
        window = resolve_window(now, hours=hours, start_date=start_date, end_date=end_date)
        return self.range_engine.query(window, device_id=device_id, limit=limit, now=now)

    def query_aggregate(
        self,
        device_id: Optional[str] = None,
        hours: Any = None,
        start_date: Any = None,
        end_date: Any = None,
        bucket: Any = None,
    ) -> List[BucketSummary]:
        interval = parse_interval(bucket)
        now = self._clock()
        window = resolve_window(now, hours=hours, start_date=start_date, end_date=end_date)
        readings = self.store.select(
            device_id=device_id or None,
            start=window.start,
            end=window.end,
            newest_first=False,
            now=now,
        )
        return self.aggregator.aggregate(readings, interval)

    def purge_expired(self) -> int:
        """Remove readings past the retention horizon and repair the index."""
        now = self._clock()
        expired = self.store.purge_expired(now=now)
        if not expired:
            return 0

        affected = {reading.device_id for reading in expired}
        survivors: Dict[str, Reading] = {}
        for device_id in affected:
            reading = self.store.latest_for(device_id, now=now)
            if reading is not None:
                survivors[device_id] = reading
        self.index.refresh_expired(expired, survivors)
        self._prune_device_locks(affected.difference(survivors))

        logger.info("Expired readings removed", extra={"expired": len(expired)})
        return len(expired)

    def shutdown(self) -> None:
        """Stop the background retention sweep, if one is running."""
        if self.sweeper is not None:
            self.sweeper.shutdown()

    def _is_live(self, reading: Reading, now: datetime) -> bool:
        return now - reading.created_at < self.store.retention

    def _device_lock(self, device_id: str) -> Lock:
        with self._device_locks_guard:
            lock = self._device_locks.get(device_id)
            if lock is None:
                lock = self._device_locks[device_id] = Lock()
            return lock

    @contextmanager
    def _locked_device(self, device_id: str) -> Iterator[None]:
        while True:
            lock = self._device_lock(device_id)
            lock.acquire()
            with self._device_locks_guard:
                current = self._device_locks.get(device_id)
            if current is lock:
                break
            # Pruned by a retention sweep while we waited.
            lock.release()
        try:
            yield
        finally:
            lock.release()

    def _prune_device_locks(self, device_ids: Iterable[str]) -> None:
        """Forget locks of devices left without readings, unless one is held."""
        with self._device_locks_guard:
            for device_id in device_ids:
                if self.index.get(device_id) is not None:
                    continue
                lock = self._device_locks.get(device_id)
                if lock is None or not lock.acquire(blocking=False):
                    continue
                del self._device_locks[device_id]
                lock.release()


class RetentionSweeper:
    """Runs ``purge_expired`` periodically on a single background worker."""

    def __init__(self, service: TelemetryService, interval_seconds: float) -> None:
        self.service = service
        self.interval_seconds = interval_seconds
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="retention-sweep")
        self._stop = Event()
        self._future: Future[None] = self.executor.submit(self._run)

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.service.purge_expired()
            except StoreUnavailable as exc:
                logger.warning("Retention sweep failed", extra={"reason": str(exc)})

    def shutdown(self) -> None:
        self._stop.set()
        self.executor.shutdown(wait=True, cancel_futures=True)


@lru_cache
def build_default_service() -> TelemetryService:
    """Factory that wires the service with the configured store."""
    settings = get_settings()
    return TelemetryService(
        store=build_default_store(),
        latest_lookback_hours=settings.latest_lookback_hours,
        max_query_limit=settings.max_query_limit,
        sweep_interval_seconds=settings.sweep_interval_seconds,
    )
