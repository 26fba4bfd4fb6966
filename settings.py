from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from models.pipes import PipeInvocationType, PipeState


_STACK_NAME_ENV = "PIPES_TEST_STACK_NAME"
_TABLE_NAME_ENV = "PIPES_TEST_TABLE_NAME"
_QUEUE_NAME_ENV = "PIPES_TEST_QUEUE_NAME"
_TOPIC_NAME_ENV = "PIPES_TEST_TOPIC_NAME"
_STATE_MACHINE_NAME_ENV = "PIPES_TEST_STATE_MACHINE_NAME"
_LOG_GROUP_NAME_ENV = "PIPES_TEST_LOG_GROUP_NAME"
_PIPE_NAME_ENV = "PIPES_TEST_PIPE_NAME"
_PIPE_ROLE_NAME_ENV = "PIPES_TEST_PIPE_ROLE_NAME"
_BATCH_SIZE_ENV = "PIPE_BATCH_SIZE"
_BATCHING_WINDOW_ENV = "PIPE_BATCHING_WINDOW_SECONDS"
_DESIRED_STATE_ENV = "PIPE_DESIRED_STATE"
_INVOCATION_TYPE_ENV = "PIPE_INVOCATION_TYPE"
_VISIBILITY_TIMEOUT_ENV = "QUEUE_VISIBILITY_TIMEOUT_SECONDS"
_RETENTION_ENV = "QUEUE_RETENTION_SECONDS"
_EXECUTION_TIMEOUT_ENV = "STATE_MACHINE_TIMEOUT_SECONDS"
_LOG_RETENTION_ENV = "STATE_MACHINE_LOG_RETENTION_DAYS"
_RECORD_TTL_ENV = "RECORD_TTL_DAYS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

# Retention periods CloudWatch Logs accepts for a log group.
LOG_RETENTION_DAYS = (
    1, 3, 5, 7, 14, 30, 60, 90, 120, 150, 180, 365, 400, 545, 731,
    1096, 1827, 2192, 2557, 2922, 3288, 3653,
)


@dataclass(frozen=True)
class Settings:
    stack_name: str
    table_name: str
    queue_name: str
    topic_name: str
    state_machine_name: str
    log_group_name: str
    pipe_name: str
    pipe_role_name: str
    batch_size: int
    batching_window_seconds: int
    pipe_desired_state: PipeState
    pipe_invocation_type: PipeInvocationType
    visibility_timeout_seconds: int
    retention_period_seconds: int
    execution_timeout_seconds: int
    log_retention_days: int
    record_ttl_days: int
    log_level: str

    @property
    def record_ttl_seconds(self) -> int:
        return self.record_ttl_days * 86400


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_int_env(
    name: str,
    default: int,
    minimum: int = 0,
    maximum: Optional[int] = None,
) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    if parsed < minimum:
        return default
    if maximum is not None and parsed > maximum:
        return default
    return parsed


def _read_log_retention(default: int) -> int:
    parsed = _read_int_env(_LOG_RETENTION_ENV, default, minimum=1)
    return parsed if parsed in LOG_RETENTION_DAYS else default


def _read_pipe_state(default: PipeState) -> PipeState:
    candidate = _read_str_env(_DESIRED_STATE_ENV, default.value).upper()
    try:
        return PipeState(candidate)
    except ValueError:
        return default


def _read_invocation_type(default: PipeInvocationType) -> PipeInvocationType:
    candidate = _read_str_env(_INVOCATION_TYPE_ENV, default.value).upper()
    try:
        return PipeInvocationType(candidate)
    except ValueError:
        return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        stack_name=_read_str_env(_STACK_NAME_ENV, "PipesTestStack"),
        table_name=_read_str_env(_TABLE_NAME_ENV, "pipes-test-table"),
        queue_name=_read_str_env(_QUEUE_NAME_ENV, "pipes-test-queue"),
        topic_name=_read_str_env(_TOPIC_NAME_ENV, "pipes-test-sns"),
        state_machine_name=_read_str_env(_STATE_MACHINE_NAME_ENV, "pipes-test-state-machine"),
        log_group_name=_read_str_env(_LOG_GROUP_NAME_ENV, "pipes-test-state-machine"),
        pipe_name=_read_str_env(_PIPE_NAME_ENV, "pipes-test-pipe"),
        pipe_role_name=_read_str_env(_PIPE_ROLE_NAME_ENV, "EventBridgePipesTestRole"),
        batch_size=_read_int_env(_BATCH_SIZE_ENV, 10, minimum=1, maximum=10000),
        batching_window_seconds=_read_int_env(_BATCHING_WINDOW_ENV, 45, maximum=300),
        pipe_desired_state=_read_pipe_state(PipeState.running),
        pipe_invocation_type=_read_invocation_type(PipeInvocationType.request_response),
        visibility_timeout_seconds=_read_int_env(_VISIBILITY_TIMEOUT_ENV, 300, maximum=43200),
        retention_period_seconds=_read_int_env(
            _RETENTION_ENV, 600, minimum=60, maximum=1209600
        ),
        execution_timeout_seconds=_read_int_env(
            _EXECUTION_TIMEOUT_ENV, 60, minimum=1, maximum=300
        ),
        log_retention_days=_read_log_retention(7),
        record_ttl_days=_read_int_env(_RECORD_TTL_ENV, 7, minimum=1),
        log_level=_read_log_level("INFO"),
    )
