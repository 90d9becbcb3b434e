from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


def _drop_empty(params: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in params.items() if value is not None}


class ApiClient:
    """Minimal HTTP client for the telemetry service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.request_timeout)

    def close(self) -> None:
        self._client.close()

    def send_reading(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        body = self._request("POST", "/api/sensors/data", json=payload)
        saved = body.get("saved")
        if not isinstance(saved, dict):
            raise typer.BadParameter("Unexpected response payload when sending reading.")
        return saved

    def latest(self, device_id: Optional[str] = None) -> List[Dict[str, Any]]:
        body = self._request(
            "GET", "/api/sensors/latest", params=_drop_empty({"deviceId": device_id})
        )
        return list(body.get("data") or [])

    def readings(
        self,
        device_id: Optional[str] = None,
        hours: Optional[int] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params = _drop_empty(
            {
                "deviceId": device_id,
                "hours": hours,
                "startDate": start_date,
                "endDate": end_date,
                "limit": limit,
            }
        )
        body = self._request("GET", "/api/sensors/readings", params=params)
        return list(body.get("data") or [])

    def history(
        self,
        device_id: Optional[str] = None,
        hours: Optional[int] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        interval: Optional[str] = None,
    ) -> Dict[str, Any]:
        params = _drop_empty(
            {
                "deviceId": device_id,
                "hours": hours,
                "startDate": start_date,
                "endDate": end_date,
                "interval": interval,
            }
        )
        return self._request("GET", "/api/sensors/history", params=params)

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1) from exc
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: Any = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except ValueError:
            detail = exc.response.text.strip()
        if isinstance(detail, dict):
            fields = detail.get("fields") or {}
            detail = detail.get("message") or ", ".join(
                f"{name}: {reason}" for name, reason in fields.items()
            )
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
