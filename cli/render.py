from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _format_location(location: Dict[str, Any] | None) -> str:
    if not location:
        return "unknown"
    return (
        f"{location.get('name')} ({location.get('latitude')}, {location.get('longitude')})"
    )


def render_reading(reading: Dict[str, Any]) -> None:
    echo_key_values(
        [
            ("deviceId", reading.get("deviceId")),
            ("timestamp", reading.get("timestamp")),
            ("temperature", reading.get("temperature")),
            ("humidity", reading.get("humidity")),
            ("source", reading.get("source")),
            ("location", _format_location(reading.get("location"))),
        ]
    )


def render_readings(title: str, readings: List[Dict[str, Any]]) -> None:
    echo_heading(f"{title} ({len(readings)})")
    if not readings:
        typer.echo("No readings found.")
        return
    for reading in readings:
        typer.echo(
            f"  - {reading.get('timestamp')} {reading.get('deviceId')}: "
            f"{reading.get('temperature')} C, {reading.get('humidity')} %"
        )


def render_history(payload: Dict[str, Any]) -> None:
    meta = payload.get("meta") or {}
    timespan = meta.get("timespan") or {}
    echo_heading("Aggregated History")
    echo_key_values(
        [
            ("interval", meta.get("aggregationInterval")),
            ("start", timespan.get("start")),
            ("end", timespan.get("end")),
            ("buckets", payload.get("count")),
        ]
    )

    buckets = payload.get("data") or []
    typer.echo()
    if not buckets:
        typer.echo("No readings in range.")
        return
    for bucket in buckets:
        temperature = bucket.get("temperature") or {}
        humidity = bucket.get("humidity") or {}
        typer.echo(
            f"  - {bucket.get('bucketStart')} {bucket.get('deviceId')} "
            f"n={bucket.get('count')} "
            f"temp avg/min/max={temperature.get('avg')}/{temperature.get('min')}/{temperature.get('max')} "
            f"hum avg/min/max={humidity.get('avg')}/{humidity.get('min')}/{humidity.get('max')}"
        )
