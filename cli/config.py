"""Connection settings for the command-line client."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    request_timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(
        cls,
        base_url: Optional[str] = None,
        request_timeout: Optional[float] = None,
    ) -> CLIConfig:
        """Explicit options win over ``API_BASE_URL`` and ``CLI_REQUEST_TIMEOUT``."""
        url = base_url or os.getenv("API_BASE_URL", "").strip() or DEFAULT_BASE_URL
        if request_timeout is None:
            request_timeout = _timeout_from_env()
        return cls(base_url=url.rstrip("/"), request_timeout=request_timeout)


def _timeout_from_env() -> float:
    try:
        seconds = float(os.getenv("CLI_REQUEST_TIMEOUT", ""))
    except ValueError:
        return DEFAULT_TIMEOUT
    if not math.isfinite(seconds) or seconds <= 0:
        return DEFAULT_TIMEOUT
    return seconds
