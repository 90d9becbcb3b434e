"""Time-ordered reading stores with a bounded retention horizon."""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from bisect import bisect_left, bisect_right, insort
from datetime import datetime, timedelta
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError as SchemaError

from app.schemas import Reading
from models.records import utc_now
from services.errors import StoreUnavailable
from settings import get_settings

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(days=30)

Clock = Callable[[], datetime]


def _order_key(reading: Reading) -> tuple[datetime, int]:
    return reading.order_key


def _timestamp_key(reading: Reading) -> datetime:
    return reading.timestamp


class ReadingStore(ABC):
    """Append-only reading persistence ordered by ``(timestamp, sequence)``.

    Readings whose ``created_at`` is at least ``retention`` old are expired:
    queries never return them, and ``purge_expired`` removes them for good.
    """

    retention: timedelta

    @abstractmethod
    def append(self, reading: Reading) -> Reading:
        """Durably store ``reading`` and return it with its assigned sequence."""

    @abstractmethod
    def select(
        self,
        device_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        newest_first: bool = True,
        now: Optional[datetime] = None,
    ) -> List[Reading]:
        """Return a snapshot of live readings with ``start <= timestamp <= end``."""

    @abstractmethod
    def latest_for(self, device_id: str, now: Optional[datetime] = None) -> Optional[Reading]:
        ...

    @abstractmethod
    def latest_per_device(self, now: Optional[datetime] = None) -> Dict[str, Reading]:
        ...

    @abstractmethod
    def purge_expired(self, now: Optional[datetime] = None) -> List[Reading]:
        """Remove expired readings and return them."""

    @abstractmethod
    def __len__(self) -> int:
        ...


class MemoryReadingStore(ReadingStore):
    """Thread-safe in-process store; contents live as long as the instance."""

    def __init__(self, retention: timedelta = DEFAULT_RETENTION, clock: Clock = utc_now) -> None:
        self.retention = retention
        self._clock = clock
        self._rows: List[Reading] = []
        self._by_device: Dict[str, List[Reading]] = {}
        self._last_sequence = 0
        self._lock = Lock()

    def append(self, reading: Reading) -> Reading:
        with self._lock:
            sequence = self._last_sequence + 1
            stored = reading.model_copy(update={"sequence": sequence})
            self._write_through(stored)
            self._last_sequence = sequence
            self._insert(stored)
        return stored

    def select(
        self,
        device_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        newest_first: bool = True,
        now: Optional[datetime] = None,
    ) -> List[Reading]:
        cutoff = self._cutoff(now)
        with self._lock:
            rows = self._rows if device_id is None else self._by_device.get(device_id, [])
            lo = 0 if start is None else bisect_left(rows, start, key=_timestamp_key)
            hi = len(rows) if end is None else bisect_right(rows, end, key=_timestamp_key)
            window = rows[lo:hi]

        ordered: Iterable[Reading] = reversed(window) if newest_first else window
        results: List[Reading] = []
        for reading in ordered:
            if reading.created_at <= cutoff:
                continue
            results.append(reading)
            if limit is not None and len(results) >= limit:
                break
        return results

    def latest_for(self, device_id: str, now: Optional[datetime] = None) -> Optional[Reading]:
        cutoff = self._cutoff(now)
        with self._lock:
            rows = list(self._by_device.get(device_id, []))
        for reading in reversed(rows):
            if reading.created_at > cutoff:
                return reading
        return None

    def latest_per_device(self, now: Optional[datetime] = None) -> Dict[str, Reading]:
        with self._lock:
            device_ids = list(self._by_device)
        latest: Dict[str, Reading] = {}
        for device_id in device_ids:
            reading = self.latest_for(device_id, now=now)
            if reading is not None:
                latest[device_id] = reading
        return latest

    def purge_expired(self, now: Optional[datetime] = None) -> List[Reading]:
        cutoff = self._cutoff(now)
        with self._lock:
            kept: List[Reading] = []
            expired: List[Reading] = []
            for reading in self._rows:
                (expired if reading.created_at <= cutoff else kept).append(reading)
            if not expired:
                return []
            self._rewrite(kept)
            self._rows = []
            self._by_device = {}
            for reading in kept:
                self._insert(reading)
        return expired

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

    def _cutoff(self, now: Optional[datetime]) -> datetime:
        return (now or self._clock()) - self.retention

    def _insert(self, reading: Reading) -> None:
        insort(self._rows, reading, key=_order_key)
        insort(self._by_device.setdefault(reading.device_id, []), reading, key=_order_key)

    def _write_through(self, reading: Reading) -> None:
        """Persist ``reading`` before it becomes visible. Called with the lock held."""

    def _rewrite(self, readings: List[Reading]) -> None:
        """Replace persisted contents with ``readings``. Called with the lock held."""


class JsonLinesReadingStore(MemoryReadingStore):
    """Durable store that appends one JSON document per reading to a file.

    The file is fsynced before a reading becomes visible, so an admitted
    reading survives a restart. Retention sweeps rewrite the file through a
    temporary sibling and ``os.replace``.
    """

    def __init__(
        self,
        path: Path,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(retention=retention, clock=clock)
        self.path = path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise self._unavailable("Could not prepare reading store directory", exc) from exc
        self._load_from_disk()

    def _write_through(self, reading: Reading) -> None:
        line = reading.model_dump_json(by_alias=True) + "\n"
        try:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line)
                handle.flush()
                os.fsync(handle.fileno())
        except OSError as exc:
            raise self._unavailable("Could not append reading", exc) from exc

    def _rewrite(self, readings: List[Reading]) -> None:
        temporary = self.path.with_name(self.path.name + ".tmp")
        try:
            with temporary.open("w", encoding="utf-8") as handle:
                for reading in readings:
                    handle.write(reading.model_dump_json(by_alias=True) + "\n")
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temporary, self.path)
        except OSError as exc:
            raise self._unavailable("Could not rewrite reading store", exc) from exc

    def _load_from_disk(self) -> None:
        if not self.path.exists():
            return
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            raise self._unavailable("Could not read reading store", exc) from exc

        for line_number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                reading = Reading.model_validate(json.loads(line))
            except (json.JSONDecodeError, SchemaError) as exc:
                logger.warning(
                    "Skipping corrupt line %d in reading store",
                    line_number,
                    extra={"store_path": str(self.path), "reason": type(exc).__name__},
                )
                continue
            self._last_sequence = max(self._last_sequence, reading.sequence)
            self._insert(reading)

        logger.info(
            "Loaded reading store",
            extra={"store_path": str(self.path), "count": len(self._rows)},
        )

    def _unavailable(self, message: str, exc: OSError) -> StoreUnavailable:
        logger.error(
            message,
            extra={"store_path": str(self.path), "reason": str(exc)},
        )
        return StoreUnavailable(f"{message}: {exc}")


@lru_cache
def build_default_store(path: Optional[str] = None) -> ReadingStore:
    settings = get_settings()
    store_path = settings.store_path if path is None else path
    retention = timedelta(days=settings.retention_days)
    if store_path:
        return JsonLinesReadingStore(Path(store_path), retention=retention)
    return MemoryReadingStore(retention=retention)
