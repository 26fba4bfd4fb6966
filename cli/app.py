from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, NoReturn, Optional

import typer
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from cli.config import CLIConfig, load_config
from cli.render import render_pipe_status, render_record, render_records
from infra.main import synth_template
from messaging.inspection_topic import PublishError
from models.pipes import PipeState
from models.records import InspectionMessage, InspectionRecord, parse_messages
from services.pipeline import (
    PipelineService,
    RecordNotFoundError,
    StackNotDeployedError,
    build_default_pipeline,
)
from settings import get_settings


@dataclass
class CLIState:
    config: CLIConfig
    service: Optional[PipelineService] = None


app = typer.Typer(
    help="Utilities for the EventBridge Pipes test pipeline.",
    context_settings={"help_option_names": ["-h", "--help"]},
)
pipe_app = typer.Typer(help="Inspect or change the pipe's running state.")
app.add_typer(pipe_app, name="pipe")


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.find_object(CLIState)
    if state is None:
        raise typer.Exit(code=1)
    return state


def _fail(message: str) -> NoReturn:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _get_service(ctx: typer.Context) -> PipelineService:
    state = _get_state(ctx)
    service = state.service
    if service is None:
        try:
            service = build_default_pipeline(
                stack_name=state.config.stack_name, region=state.config.region
            )
        except (StackNotDeployedError, ClientError, BotoCoreError) as exc:
            _fail(f"Unable to reach stack {state.config.stack_name}: {exc}")
        state.service = service
    return service


def _load_messages(path: Path) -> List[InspectionMessage]:
    try:
        payload: Any = json.loads(path.read_text(encoding="utf-8"))
    except UnicodeDecodeError as exc:
        _fail(f"{path} is not UTF-8 text: {exc}")
    except json.JSONDecodeError as exc:
        _fail(f"{path} is not valid JSON: {exc}")
    try:
        return parse_messages(payload)
    except ValidationError as exc:
        _fail(f"{path} contains an invalid message:\n{exc}")
    except ValueError as exc:
        _fail(str(exc))


@app.callback()
def main(
    ctx: typer.Context,
    stack_name: Optional[str] = typer.Option(
        None,
        "--stack-name",
        "-s",
        help="Deployed stack name (defaults to PIPES_TEST_STACK_NAME or PipesTestStack).",
    ),
    region: Optional[str] = typer.Option(
        None,
        "--region",
        "-r",
        help="AWS region (defaults to AWS_REGION or the configured profile).",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Seconds between table lookups when waiting for a record.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Maximum seconds to wait for a record.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        stack_name=stack_name,
        region=region,
        poll_interval=poll_interval,
        poll_timeout=timeout,
    )
    ctx.obj = CLIState(config=config)


@app.command("synth")
def synth_command(
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        dir_okay=False,
        help="Write the template to this file instead of stdout.",
    ),
) -> None:
    """Render the stack's CloudFormation template."""
    template = json.dumps(synth_template(), indent=2, sort_keys=True)
    if output is None:
        typer.echo(template)
        return
    output.write_text(template + "\n")
    typer.secho(f"Template written to {output}", fg=typer.colors.GREEN)


@app.command("preview")
def preview_command(
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="JSON file with message(s)."
    ),
) -> None:
    """Show the records the state machine would write for the given messages."""
    ttl_seconds = get_settings().record_ttl_seconds
    for index, message in enumerate(_load_messages(file)):
        if index:
            typer.echo()
        render_record(InspectionRecord.from_message(message, ttl_seconds))


@app.command("publish")
def publish_command(
    ctx: typer.Context,
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="JSON file with message(s)."
    ),
    wait: bool = typer.Option(
        False,
        "--wait/--no-wait",
        help="Wait for each record to be written and display it.",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Override poll interval while waiting.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Override timeout while waiting.",
    ),
) -> None:
    """Publish inspection messages to the pipeline's topic."""
    state = _get_state(ctx)
    messages = _load_messages(file)
    service = _get_service(ctx)

    typer.echo(f"Publishing {len(messages)} message(s) to stack {state.config.stack_name} ...")
    try:
        message_ids = service.publish(messages)
    except (ClientError, BotoCoreError, PublishError) as exc:
        _fail(f"Publish failed: {exc}")
    for message_id in message_ids:
        typer.secho(f"Published. message_id={message_id}", fg=typer.colors.GREEN)

    if not wait:
        return

    interval = poll_interval if poll_interval is not None else state.config.poll_interval
    poll_timeout = timeout if timeout is not None else state.config.poll_timeout
    typer.echo(f"Waiting for records (interval={interval}s, timeout={poll_timeout}s)...")
    for message in messages:
        try:
            record = service.wait_for_record(message, interval=interval, timeout=poll_timeout)
        except RecordNotFoundError as exc:
            _fail(f"Timed out waiting for record: {exc.args[0]}")
        except (ClientError, BotoCoreError) as exc:
            _fail(f"Lookup failed: {exc}")
        typer.echo()
        render_record(record)


@app.command("records")
def records_command(
    ctx: typer.Context,
    location: str = typer.Argument(..., help="Inspection location."),
    date: str = typer.Argument(..., help="Inspection date (YYYY-MM-DD)."),
) -> None:
    """List stored records for a location and date."""
    service = _get_service(ctx)
    try:
        records = service.fetch_records(location, date)
    except (ClientError, BotoCoreError) as exc:
        _fail(f"Query failed: {exc}")
    render_records(location, date, records)


@pipe_app.command("status")
def pipe_status_command(ctx: typer.Context) -> None:
    """Show the pipe's desired and current state."""
    service = _get_service(ctx)
    try:
        status = service.pipe_status()
    except (ClientError, BotoCoreError) as exc:
        _fail(f"Unable to describe pipe: {exc}")
    render_pipe_status(status)


def _change_pipe_state(ctx: typer.Context, desired: PipeState) -> None:
    service = _get_service(ctx)
    try:
        status = service.set_pipe_state(desired)
    except (ClientError, BotoCoreError) as exc:
        _fail(f"Unable to set pipe state to {desired.value}: {exc}")
    render_pipe_status(status)


@pipe_app.command("start")
def pipe_start_command(ctx: typer.Context) -> None:
    """Start the pipe."""
    _change_pipe_state(ctx, PipeState.running)


@pipe_app.command("stop")
def pipe_stop_command(ctx: typer.Context) -> None:
    """Stop the pipe."""
    _change_pipe_state(ctx, PipeState.stopped)
