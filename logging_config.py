"""Process-wide logging for the CDK app and the operator CLI."""

from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Dict, Iterable

from settings import get_settings

LOG_FORMAT = "%(asctime)sZ %(levelname)-7s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Attributes passed through ``extra=`` that are worth printing.
CONTEXT_KEYS = (
    "stack_name",
    "construct_id",
    "topic_arn",
    "table_name",
    "pipe_name",
    "message_id",
    "location",
    "record_count",
    "state",
    "reason",
)

_configured = False


class ContextualFormatter(logging.Formatter):
    """Formatter that appends ``key=value`` pairs for known context attributes."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self.context_keys = tuple(extra_keys) if extra_keys is not None else CONTEXT_KEYS

    def _context(self, record: logging.LogRecord) -> str:
        pairs = (
            f"{key}={getattr(record, key)}"
            for key in self.context_keys
            if getattr(record, key, None) is not None
        )
        return " ".join(pairs)

    def format(self, record: logging.LogRecord) -> str:
        rendered = super().format(record)
        context = self._context(record)
        return f"{rendered} | {context}" if context else rendered


def _build_config(level: str | int) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "contextual": {
                "()": ContextualFormatter,
                "fmt": LOG_FORMAT,
                "datefmt": LOG_DATE_FORMAT,
            }
        },
        "handlers": {
            # stdout carries command output and synthesized templates.
            "stderr": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
                "formatter": "contextual",
            }
        },
        "root": {"handlers": ["stderr"], "level": level},
        # botocore logs every request at DEBUG.
        "loggers": {"botocore": {"level": "WARNING"}},
    }


def configure_logging(level: str | int | None = None) -> None:
    """Install the stderr handler once; later calls are ignored."""
    global _configured
    if _configured:
        return
    dictConfig(_build_config(level if level is not None else get_settings().log_level))
    _configured = True
