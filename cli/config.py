from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from settings import get_settings

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_TIMEOUT = 120.0

_REGION_ENV = "AWS_REGION"
_POLL_INTERVAL_ENV = "CLI_POLL_INTERVAL"
_TIMEOUT_ENV = "CLI_POLL_TIMEOUT"


@dataclass(frozen=True)
class CLIConfig:
    stack_name: str
    region: Optional[str] = None
    poll_interval: float = DEFAULT_POLL_INTERVAL
    poll_timeout: float = DEFAULT_TIMEOUT


def _read_float(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def load_config(
    stack_name: Optional[str] = None,
    region: Optional[str] = None,
    poll_interval: Optional[float] = None,
    poll_timeout: Optional[float] = None,
) -> CLIConfig:
    stack = stack_name or get_settings().stack_name
    region_name = region or os.getenv(_REGION_ENV) or None
    if poll_interval is None:
        poll_interval = _read_float(os.getenv(_POLL_INTERVAL_ENV), DEFAULT_POLL_INTERVAL)
    if poll_timeout is None:
        poll_timeout = _read_float(os.getenv(_TIMEOUT_ENV), DEFAULT_TIMEOUT)
    return CLIConfig(
        stack_name=stack,
        region=region_name,
        poll_interval=poll_interval,
        poll_timeout=poll_timeout,
    )
