"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from app.schemas import (
    ErrorDetail,
    HistoryMeta,
    HistoryQuery,
    HistoryResponse,
    IngestResponse,
    LatestResponse,
    ReadingsResponse,
    Timespan,
)
from models.records import utc_now
from services.errors import QueryError, StoreUnavailable, ValidationError
from services.range_query import DEFAULT_HOURS, coerce_int
from services.telemetry import TelemetryService, build_default_service, parse_interval

router = APIRouter()


def get_service() -> TelemetryService:
    return build_default_service()


def _store_failure(exc: StoreUnavailable) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Reading store unavailable: {exc}",
    )


def _bad_query(exc: QueryError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.post(
    "/api/sensors/data",
    response_model=IngestResponse,
    summary="Admit one reading from a field device.",
)
def ingest_reading(
    payload: Any = Body(default=None),
    service: TelemetryService = Depends(get_service),
) -> IngestResponse:
    try:
        reading = service.ingest(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ErrorDetail(message=str(exc), fields=exc.fields).model_dump(),
        ) from exc
    except StoreUnavailable as exc:
        raise _store_failure(exc) from exc
    return IngestResponse(saved=reading)


@router.get(
    "/api/sensors/latest",
    response_model=LatestResponse,
    summary="Latest reading per device, or for a single device.",
)
def latest_readings(
    device_id: Optional[str] = Query(default=None, alias="deviceId"),
    service: TelemetryService = Depends(get_service),
) -> LatestResponse:
    readings = service.query_latest(device_id)
    return LatestResponse(data=readings, count=len(readings), timestamp=utc_now())


@router.get(
    "/api/sensors/readings",
    response_model=ReadingsResponse,
    summary="Raw readings in a time window, most recent first.",
)
def list_readings(
    device_id: Optional[str] = Query(default=None, alias="deviceId"),
    hours: Optional[str] = Query(default=None),
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    limit: Optional[str] = Query(default=None),
    service: TelemetryService = Depends(get_service),
) -> ReadingsResponse:
    try:
        readings = service.query_range(
            device_id=device_id,
            hours=hours,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
        )
    except QueryError as exc:
        raise _bad_query(exc) from exc
    return ReadingsResponse(data=readings, count=len(readings))


@router.get(
    "/api/sensors/history",
    response_model=HistoryResponse,
    summary="Per-device statistics over minute, hour or day buckets.",
)
def reading_history(
    device_id: Optional[str] = Query(default=None, alias="deviceId"),
    hours: Optional[str] = Query(default=None),
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    interval: Optional[str] = Query(default=None),
    service: TelemetryService = Depends(get_service),
) -> HistoryResponse:
    try:
        bucket = parse_interval(interval)
        window = service.resolve_window(hours=hours, start_date=start_date, end_date=end_date)
        explicit = bool(start_date and end_date)
        hours_value = None if explicit else coerce_int(hours, "hours", DEFAULT_HOURS)
        summaries = service.query_aggregate(
            device_id=device_id,
            start_date=window.start,
            end_date=window.end,
            bucket=bucket,
        )
    except QueryError as exc:
        raise _bad_query(exc) from exc

    return HistoryResponse(
        data=summaries,
        count=len(summaries),
        query=HistoryQuery(
            device_id=device_id,
            hours=hours_value,
            interval=bucket,
            start_date=window.start,
            end_date=window.end,
        ),
        meta=HistoryMeta(
            aggregation_interval=bucket,
            total_data_points=len(summaries),
            timespan=Timespan(start=window.start, end=window.end),
        ),
    )


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
