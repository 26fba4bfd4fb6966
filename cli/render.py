from __future__ import annotations

from typing import Any, Iterable, Sequence

import typer

from models.records import InspectionRecord
from services.pipeline import PipeStatus


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_record(record: InspectionRecord) -> None:
    echo_heading("Inspection Record")
    echo_key_values(
        [
            ("pk", record.pk),
            ("sk", record.sk),
            ("type", record.type),
            ("temperature", record.temperature),
            ("humidity", record.humidity),
            ("ttl", record.ttl),
        ]
    )


def render_records(location: str, date: str, records: Sequence[InspectionRecord]) -> None:
    echo_heading(f"Records for {location} on {date}")
    if not records:
        typer.echo("No records stored.")
        return
    for record in records:
        typer.echo(
            f"  - {record.sk}: temperature={record.temperature} "
            f"humidity={record.humidity} ttl={record.ttl}"
        )


def render_pipe_status(status: PipeStatus) -> None:
    echo_heading("Pipe")
    pairs = [
        ("name", status.name),
        ("desired_state", status.desired_state),
        ("current_state", status.current_state),
    ]
    if status.reason:
        pairs.append(("reason", status.reason))
    echo_key_values(pairs)
