from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.schemas import Reading
from datastore.readings import MemoryReadingStore
from services.errors import QueryError
from services.range_query import RangeQueryEngine, coerce_int, parse_instant, resolve_window

NOW = datetime(2024, 3, 10, 15, 30, tzinfo=timezone.utc)


def _store_with(*offsets_hours: float, device_id: str = "d1") -> MemoryReadingStore:
    store = MemoryReadingStore()
    for offset in offsets_hours:
        instant = NOW - timedelta(hours=offset)
        store.append(
            Reading(
                device_id=device_id,
                temperature=offset,
                humidity=50.0,
                timestamp=instant,
                created_at=instant,
            )
        )
    return store


def test_window_defaults_to_last_24_hours() -> None:
    window = resolve_window(NOW)

    assert window.start == NOW - timedelta(hours=24)
    assert window.end == NOW


def test_window_uses_hours_when_only_one_date_given() -> None:
    window = resolve_window(NOW, hours="6", start_date="2024-01-01T00:00:00Z")

    assert window.start == NOW - timedelta(hours=6)


def test_explicit_dates_take_precedence() -> None:
    window = resolve_window(
        NOW,
        hours=1,
        start_date="2024-03-01T00:00:00Z",
        end_date="2024-03-02T08:00:00+02:00",
    )

    assert window.start == datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert window.end == datetime(2024, 3, 2, 6, tzinfo=timezone.utc)


def test_naive_dates_are_treated_as_utc() -> None:
    assert parse_instant("2024-03-01T10:00:00", "startDate") == datetime(
        2024, 3, 1, 10, tzinfo=timezone.utc
    )


@pytest.mark.parametrize(
    "kwargs",
    [
        {"start_date": "yesterday", "end_date": "2024-03-02T00:00:00Z"},
        {"start_date": "2024-03-03T00:00:00Z", "end_date": "2024-03-02T00:00:00Z"},
        {"hours": "many"},
        {"hours": "0"},
        {"hours": -2},
        {"hours": "0.5"},
        {"hours": "nan"},
        {"hours": "100000000"},
        {"start_date": "0001-01-01", "end_date": "9999-12-31T23:59:59-05:00"},
        {"start_date": "0001-01-01T00:00:00+05:00", "end_date": "2024-03-02T00:00:00Z"},
    ],
)
def test_bad_window_parameters_raise_query_error(kwargs: dict) -> None:
    with pytest.raises(QueryError):
        resolve_window(NOW, **kwargs)


def test_coerce_int_accepts_integer_like_values() -> None:
    assert coerce_int("12", "limit", 100) == 12
    assert coerce_int(12.0, "limit", 100) == 12
    assert coerce_int(None, "limit", 100) == 100
    assert coerce_int("", "limit", 100) == 100
    assert coerce_int(1.5, "limit", 100) == 1
    assert coerce_int(" 1.9 ", "hours", 24) == 1
    with pytest.raises(QueryError):
        coerce_int(True, "limit", 100)


def test_query_is_newest_first_within_window_and_limited() -> None:
    engine = RangeQueryEngine(_store_with(1, 30, 2, 3, 5))

    results = engine.query(resolve_window(NOW, hours=24), limit="3", now=NOW)

    assert [r.temperature for r in results] == [1, 2, 3]
    timestamps = [r.timestamp for r in results]
    assert timestamps == sorted(timestamps, reverse=True)


def test_query_upper_bound_is_inclusive() -> None:
    engine = RangeQueryEngine(_store_with(0, 1))
    window = resolve_window(
        NOW, start_date=NOW - timedelta(hours=1), end_date=NOW - timedelta(hours=1)
    )

    results = engine.query(window, now=NOW)

    assert [r.timestamp for r in results] == [NOW - timedelta(hours=1)]


def test_query_clamps_limit_to_ceiling() -> None:
    engine = RangeQueryEngine(_store_with(1, 2, 3, 4), max_limit=2)

    assert len(engine.query(resolve_window(NOW), limit=1000, now=NOW)) == 2


def test_repeated_queries_return_identical_results() -> None:
    engine = RangeQueryEngine(_store_with(1, 2, 3))
    window = resolve_window(NOW)

    assert engine.query(window, now=NOW) == engine.query(window, now=NOW)


def test_query_filters_by_device() -> None:
    store = _store_with(1, 2)
    other = NOW - timedelta(hours=1)
    store.append(
        Reading(device_id="d2", temperature=9, humidity=9, timestamp=other, created_at=other)
    )
    engine = RangeQueryEngine(store)

    results = engine.query(resolve_window(NOW), device_id="d2", now=NOW)

    assert [r.device_id for r in results] == ["d2"]
