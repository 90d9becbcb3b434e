from __future__ import annotations

from typing import Iterator

import pytest

from datastore.readings import MemoryReadingStore
from services.telemetry import TelemetryService

from .utils import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(clock: FakeClock) -> Iterator[TelemetryService]:
    store = MemoryReadingStore(clock=clock)
    telemetry = TelemetryService(store=store, clock=clock)
    yield telemetry
    telemetry.shutdown()
