from __future__ import annotations

from datetime import datetime, timedelta, timezone

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


def payload(device_id: str = "d1", temperature: object = 20.0, humidity: object = 50.0, **extra) -> dict:
    """Builds a raw ingestion payload in the device wire shape."""
    body = {"deviceId": device_id, "sensorData": {"temperature": temperature, "humidity": humidity}}
    body.update(extra)
    return body
