from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig
from cli.render import echo_heading, render_history, render_reading, render_readings


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the sensor telemetry service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Telemetry API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each HTTP request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = CLIConfig.from_env(base_url=base_url, request_timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("send")
def send_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="Identifier of the reporting device."),
    temperature: float = typer.Option(..., "--temperature", "-t", help="Temperature reading."),
    humidity: float = typer.Option(..., "--humidity", "-H", help="Relative humidity in percent."),
    source: Optional[str] = typer.Option(None, "--source", help="Sensor or firmware tag."),
    location_name: Optional[str] = typer.Option(None, "--location", help="Location name."),
    latitude: Optional[float] = typer.Option(None, "--lat", help="Location latitude."),
    longitude: Optional[float] = typer.Option(None, "--lon", help="Location longitude."),
) -> None:
    """Send a single reading to the service."""
    state = _get_state(ctx)
    sensor_data: Dict[str, Any] = {"temperature": temperature, "humidity": humidity}
    if source:
        sensor_data["source"] = source
    payload: Dict[str, Any] = {"deviceId": device_id, "sensorData": sensor_data}
    if location_name is not None or latitude is not None or longitude is not None:
        payload["location"] = {
            key: value
            for key, value in (
                ("name", location_name),
                ("latitude", latitude),
                ("longitude", longitude),
            )
            if value is not None
        }

    saved = state.client.send_reading(payload)
    typer.secho(f"Reading accepted for {saved.get('deviceId')}.", fg=typer.colors.GREEN)
    render_reading(saved)


@app.command("latest")
def latest_command(
    ctx: typer.Context,
    device_id: Optional[str] = typer.Option(None, "--device-id", "-d", help="Only this device."),
) -> None:
    """Show the most recent reading per device."""
    state = _get_state(ctx)
    readings = state.client.latest(device_id)
    echo_heading(f"Latest Readings ({len(readings)})")
    if not readings:
        typer.echo("No readings found.")
    for reading in readings:
        typer.echo()
        render_reading(reading)


@app.command("readings")
def readings_command(
    ctx: typer.Context,
    device_id: Optional[str] = typer.Option(None, "--device-id", "-d", help="Only this device."),
    hours: Optional[int] = typer.Option(None, "--hours", help="Look back this many hours."),
    start_date: Optional[str] = typer.Option(None, "--start", help="Window start (ISO-8601)."),
    end_date: Optional[str] = typer.Option(None, "--end", help="Window end (ISO-8601)."),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum readings."),
) -> None:
    """List raw readings, most recent first."""
    state = _get_state(ctx)
    readings = state.client.readings(
        device_id=device_id,
        hours=hours,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )
    render_readings("Readings", readings)


@app.command("history")
def history_command(
    ctx: typer.Context,
    device_id: Optional[str] = typer.Option(None, "--device-id", "-d", help="Only this device."),
    hours: Optional[int] = typer.Option(None, "--hours", help="Look back this many hours."),
    start_date: Optional[str] = typer.Option(None, "--start", help="Window start (ISO-8601)."),
    end_date: Optional[str] = typer.Option(None, "--end", help="Window end (ISO-8601)."),
    interval: str = typer.Option("hour", "--interval", "-i", help="minute, hour or day."),
) -> None:
    """Show bucketed temperature and humidity statistics."""
    state = _get_state(ctx)
    payload = state.client.history(
        device_id=device_id,
        hours=hours,
        start_date=start_date,
        end_date=end_date,
        interval=interval,
    )
    render_history(payload)
