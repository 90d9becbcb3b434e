"""Pydantic schemas for telemetry readings, aggregates and the HTTP envelopes."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models.records import AggregationInterval

DEFAULT_LOCATION_NAME = "Unknown Location"
DEFAULT_SOURCE = "ESP32"


class CamelModel(BaseModel):
    """Base model exposing camelCase JSON while keeping snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Location(FrozenCamelModel):
    """Where a device was installed when it reported."""

    name: str = DEFAULT_LOCATION_NAME
    latitude: float = 0.0
    longitude: float = 0.0


class Reading(FrozenCamelModel):
    """One admitted telemetry sample. Immutable once stored."""

    device_id: str = Field(..., min_length=1)
    location: Location = Field(default_factory=Location)
    temperature: float
    humidity: float
    source: str = DEFAULT_SOURCE
    timestamp: datetime = Field(..., description="Server-assigned admission time (UTC).")
    created_at: datetime = Field(..., description="Admission time used for retention.")
    sequence: int = Field(
        default=0, ge=0, description="Store-assigned admission order, used for tie-breaks."
    )

    @property
    def order_key(self) -> tuple[datetime, int]:
        return (self.timestamp, self.sequence)


class StatSummary(FrozenCamelModel):
    avg: float
    min: float
    max: float


class BucketSummary(FrozenCamelModel):
    """Statistics for one device within one time bucket."""

    device_id: str
    interval: AggregationInterval
    bucket_start: datetime
    count: int = Field(..., ge=1)
    temperature: StatSummary
    humidity: StatSummary
    first_reading: datetime
    last_reading: datetime
    location: Location


class IngestResponse(CamelModel):
    ok: bool = True
    saved: Reading


class LatestResponse(CamelModel):
    success: bool = True
    data: List[Reading] = Field(default_factory=list)
    count: int = 0
    timestamp: datetime


class ReadingsResponse(CamelModel):
    success: bool = True
    data: List[Reading] = Field(default_factory=list)
    count: int = 0


class HistoryQuery(CamelModel):
    device_id: Optional[str] = None
    hours: Optional[int] = None
    interval: AggregationInterval
    start_date: datetime
    end_date: datetime


class Timespan(CamelModel):
    start: datetime
    end: datetime


class HistoryMeta(CamelModel):
    aggregation_interval: AggregationInterval
    total_data_points: int
    timespan: Timespan


class HistoryResponse(CamelModel):
    success: bool = True
    data: List[BucketSummary] = Field(default_factory=list)
    count: int = 0
    query: HistoryQuery
    meta: HistoryMeta


class ErrorDetail(BaseModel):
    message: str
    fields: dict[str, str] = Field(default_factory=dict)
