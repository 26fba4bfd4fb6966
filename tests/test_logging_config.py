from __future__ import annotations

import logging

import logging_config
from logging_config import ContextualFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="services.pipeline",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Requested pipe state change",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_appends_known_context_keys() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    rendered = formatter.format(_record(pipe_name="pipes-test-pipe", state="STOPPED", ignored="x"))

    assert rendered == "Requested pipe state change | pipe_name=pipes-test-pipe state=STOPPED"


def test_formatter_skips_missing_and_none_values() -> None:
    formatter = ContextualFormatter(fmt="%(message)s", extra_keys=["message_id", "location"])

    rendered = formatter.format(_record(location=None))

    assert rendered == "Requested pipe state change"


def test_configure_logging_installs_handler_once(monkeypatch) -> None:
    applied = []
    monkeypatch.setattr(logging_config, "_configured", False)
    monkeypatch.setattr(logging_config, "dictConfig", applied.append)

    logging_config.configure_logging("DEBUG")
    logging_config.configure_logging("INFO")

    assert len(applied) == 1
    assert applied[0]["root"]["level"] == "DEBUG"
    assert applied[0]["handlers"]["stderr"]["stream"] == "ext://sys.stderr"
