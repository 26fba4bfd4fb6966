"""Enumerations describing how the pipe is run."""

from __future__ import annotations

from enum import Enum


class PipeState(str, Enum):
    """Desired state accepted by EventBridge Pipes."""

    running = "RUNNING"
    stopped = "STOPPED"


class PipeInvocationType(str, Enum):
    """How the pipe starts executions of its Step Functions target."""

    request_response = "REQUEST_RESPONSE"
    fire_and_forget = "FIRE_AND_FORGET"
