"""Per-device projection of the most recent reading."""

from __future__ import annotations

from datetime import datetime
from threading import Lock
from typing import Dict, Iterable, Mapping, Optional

from app.schemas import Reading


class LatestReadingIndex:
    """Holds at most one reading per device: the one with the greatest
    ``(timestamp, sequence)`` seen so far.

    ``upsert`` is a compare-and-swap, so an older reading arriving late can
    never replace a newer one.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Reading] = {}
        self._lock = Lock()

    def upsert(self, reading: Reading) -> bool:
        with self._lock:
            current = self._entries.get(reading.device_id)
            if current is not None and current.order_key >= reading.order_key:
                return False
            self._entries[reading.device_id] = reading
            return True

    def get(self, device_id: str) -> Optional[Reading]:
        with self._lock:
            return self._entries.get(device_id)

    def get_all(self, since: Optional[datetime] = None) -> Dict[str, Reading]:
        with self._lock:
            entries = dict(self._entries)
        if since is None:
            return entries
        return {
            device_id: reading
            for device_id, reading in entries.items()
            if reading.timestamp >= since
        }

    def rebuild(self, latest: Mapping[str, Reading]) -> None:
        with self._lock:
            self._entries = dict(latest)

    def refresh_expired(
        self, expired: Iterable[Reading], survivors: Mapping[str, Reading]
    ) -> int:
        """Replace entries that pointed at expired readings.

        ``survivors`` maps device ids to their newest remaining reading; a
        device missing from it loses its entry. Returns the number of entries
        touched.
        """
        expired_keys = {(reading.device_id, reading.order_key) for reading in expired}
        touched = 0
        with self._lock:
            for device_id, current in list(self._entries.items()):
                if (device_id, current.order_key) not in expired_keys:
                    continue
                touched += 1
                replacement = survivors.get(device_id)
                if replacement is None:
                    del self._entries[device_id]
                else:
                    self._entries[device_id] = replacement
        return touched

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
