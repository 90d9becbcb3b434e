"""Admission checks and default filling for raw ingestion payloads."""

from __future__ import annotations

import math
from typing import Any, Dict, Mapping, Optional

from app.schemas import DEFAULT_LOCATION_NAME, DEFAULT_SOURCE
from models.records import ReadingDraft
from services.errors import ValidationError


def _coerce_number(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float, or ``None`` when it is not one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _validate_measurement(
    sensor_data: Mapping[str, Any], name: str, errors: Dict[str, str]
) -> float:
    field = f"sensorData.{name}"
    if sensor_data.get(name) is None:
        errors[field] = "missing"
        return 0.0
    number = _coerce_number(sensor_data[name])
    if number is None:
        errors[field] = "must be a finite number"
        return 0.0
    return number


def _validate_location(raw: Any, errors: Dict[str, str]) -> tuple[str, float, float]:
    if raw is None:
        return DEFAULT_LOCATION_NAME, 0.0, 0.0
    if not isinstance(raw, Mapping):
        errors["location"] = "must be an object"
        return DEFAULT_LOCATION_NAME, 0.0, 0.0

    name = raw.get("name")
    if name is None or (isinstance(name, str) and not name.strip()):
        name = DEFAULT_LOCATION_NAME
    elif not isinstance(name, str):
        errors["location.name"] = "must be a string"
        name = DEFAULT_LOCATION_NAME

    coordinates = []
    for key in ("latitude", "longitude"):
        value = raw.get(key)
        if value is None:
            coordinates.append(0.0)
            continue
        number = _coerce_number(value)
        if number is None:
            errors[f"location.{key}"] = "must be a finite number"
            number = 0.0
        coordinates.append(number)
    return name.strip(), coordinates[0], coordinates[1]


def validate_payload(raw: Any) -> ReadingDraft:
    """Validate an ingestion payload and fill defaults.

    Every failing field is collected before a single ``ValidationError`` is
    raised, so callers can report all problems at once. Client-supplied
    timestamps are ignored; admission time is assigned by the service.
    """
    if not isinstance(raw, Mapping):
        raise ValidationError({"payload": "must be an object"})

    errors: Dict[str, str] = {}

    device_id = raw.get("deviceId")
    if device_id is None:
        errors["deviceId"] = "missing"
    elif not isinstance(device_id, str):
        errors["deviceId"] = "must be a string"
    elif not device_id.strip():
        errors["deviceId"] = "must not be empty"

    sensor_data = raw.get("sensorData")
    temperature = humidity = 0.0
    source = DEFAULT_SOURCE
    if sensor_data is None:
        errors["sensorData.temperature"] = "missing"
        errors["sensorData.humidity"] = "missing"
    elif not isinstance(sensor_data, Mapping):
        errors["sensorData"] = "must be an object"
    else:
        temperature = _validate_measurement(sensor_data, "temperature", errors)
        humidity = _validate_measurement(sensor_data, "humidity", errors)
        raw_source = sensor_data.get("source")
        if raw_source is None or (isinstance(raw_source, str) and not raw_source.strip()):
            source = DEFAULT_SOURCE
        elif isinstance(raw_source, str):
            source = raw_source.strip()
        else:
            errors["sensorData.source"] = "must be a string"

    location_name, latitude, longitude = _validate_location(raw.get("location"), errors)

    if errors:
        raise ValidationError(errors)

    return ReadingDraft(
        device_id=device_id.strip(),
        temperature=temperature,
        humidity=humidity,
        source=source,
        location_name=location_name,
        latitude=latitude,
        longitude=longitude,
    )
