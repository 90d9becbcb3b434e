"""Typed failures raised by the telemetry core."""

from __future__ import annotations

from typing import Mapping


class TelemetryError(Exception):
    """Base class for every failure surfaced by the telemetry core."""


class ValidationError(TelemetryError):
    """An ingestion payload is missing or carries invalid required fields."""

    def __init__(self, fields: Mapping[str, str]) -> None:
        self.fields = dict(fields)
        details = ", ".join(f"{name}: {reason}" for name, reason in self.fields.items())
        super().__init__(f"Invalid reading payload ({details})")


class QueryError(TelemetryError):
    """Query filter parameters could not be interpreted."""


class StoreUnavailable(TelemetryError):
    """The persistence layer could not be read or written."""
