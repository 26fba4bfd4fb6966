from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from botocore.exceptions import ClientError
from typer.testing import CliRunner

from cli.app import app
from models.pipes import PipeState
from models.records import InspectionMessage, InspectionRecord
from services.pipeline import PipeStatus, RecordNotFoundError, StackNotDeployedError

MESSAGE: Dict[str, Any] = {
    "location": "warehouse-7",
    "date": "2024-03-01",
    "inspectedAt": 1709280000,
    "temperature": "21.5",
    "humidity": "40",
}


class StubService:
    def __init__(self, missing: bool = False) -> None:
        self.missing = missing
        self.published: List[InspectionMessage] = []
        self.wait_calls: List[tuple[int, float, float]] = []
        self.queries: List[tuple[str, str]] = []
        self.state_changes: List[PipeState] = []

    def publish(self, messages) -> List[str]:
        self.published.extend(messages)
        return [f"msg-{index}" for index, _ in enumerate(messages)]

    def wait_for_record(self, message, interval: float, timeout: float) -> InspectionRecord:
        self.wait_calls.append((message.inspected_at, interval, timeout))
        if self.missing:
            raise RecordNotFoundError(f"No record for {message.location!r}")
        return InspectionRecord.from_message(message, 604800)

    def fetch_records(self, location: str, date: str) -> List[InspectionRecord]:
        self.queries.append((location, date))
        return [InspectionRecord.from_message(InspectionMessage.model_validate(MESSAGE), 604800)]

    def pipe_status(self) -> PipeStatus:
        return PipeStatus(
            name="pipes-test-pipe",
            desired_state="RUNNING",
            current_state="RUNNING",
        )

    def set_pipe_state(self, desired: PipeState) -> PipeStatus:
        self.state_changes.append(desired)
        return PipeStatus(
            name="pipes-test-pipe",
            desired_state=desired.value,
            current_state="STOPPING",
        )


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


def _install_stub(monkeypatch, stub: StubService) -> List[Dict[str, Optional[str]]]:
    calls: List[Dict[str, Optional[str]]] = []

    def factory(stack_name: Optional[str] = None, region: Optional[str] = None) -> StubService:
        calls.append({"stack_name": stack_name, "region": region})
        return stub

    monkeypatch.setattr("cli.app.build_default_pipeline", factory)
    return calls


def _write_messages(tmp_path: Path, payload: Any) -> Path:
    path = tmp_path / "messages.json"
    path.write_text(json.dumps(payload))
    return path


def test_publish_without_wait(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubService()
    calls = _install_stub(monkeypatch, stub)
    path = _write_messages(tmp_path, MESSAGE)

    result = runner.invoke(app, ["--stack-name", "MyStack", "--region", "eu-west-1", "publish", str(path)])

    assert result.exit_code == 0, result.output
    assert "message_id=msg-0" in result.stdout
    assert [message.location for message in stub.published] == ["warehouse-7"]
    assert not stub.wait_calls
    assert calls == [{"stack_name": "MyStack", "region": "eu-west-1"}]


def test_publish_with_wait(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubService()
    _install_stub(monkeypatch, stub)
    second = dict(MESSAGE, inspectedAt=1709280060)
    path = _write_messages(tmp_path, [MESSAGE, second])

    result = runner.invoke(
        app, ["publish", str(path), "--wait", "--poll-interval", "0.1", "--timeout", "5"]
    )

    assert result.exit_code == 0, result.output
    assert "Inspection Record" in result.stdout
    assert "pk: INSPECTION#warehouse-7#2024-03-01" in result.stdout
    assert stub.wait_calls == [(1709280000, 0.1, 5.0), (1709280060, 0.1, 5.0)]


def test_publish_wait_times_out(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubService(missing=True)
    _install_stub(monkeypatch, stub)
    path = _write_messages(tmp_path, MESSAGE)

    result = runner.invoke(app, ["publish", str(path), "--wait", "--timeout", "1"])

    assert result.exit_code == 1
    assert "Timed out waiting for record" in result.output


def test_publish_rejects_invalid_message(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubService()
    _install_stub(monkeypatch, stub)
    path = _write_messages(tmp_path, dict(MESSAGE, temperature="warm"))

    result = runner.invoke(app, ["publish", str(path)])

    assert result.exit_code == 1
    assert "invalid message" in result.output
    assert not stub.published


def test_publish_reports_undeployed_stack(monkeypatch, runner: CliRunner, tmp_path) -> None:
    def factory(stack_name=None, region=None):
        raise StackNotDeployedError(f"Stack {stack_name!r} is not deployed.")

    monkeypatch.setattr("cli.app.build_default_pipeline", factory)
    path = _write_messages(tmp_path, MESSAGE)

    result = runner.invoke(app, ["publish", str(path)])

    assert result.exit_code == 1
    assert "is not deployed" in result.output


def test_preview_renders_record_without_aws(monkeypatch, runner: CliRunner, tmp_path) -> None:
    def factory(stack_name=None, region=None):
        raise AssertionError("preview must not contact AWS")

    monkeypatch.setattr("cli.app.build_default_pipeline", factory)
    path = _write_messages(tmp_path, MESSAGE)

    result = runner.invoke(app, ["preview", str(path)])

    assert result.exit_code == 0, result.output
    assert "pk: INSPECTION#warehouse-7#2024-03-01" in result.stdout
    assert "sk: 1709280000" in result.stdout
    assert "type: Inspection" in result.stdout
    assert "temperature: 21.5" in result.stdout


def test_records_command(monkeypatch, runner: CliRunner) -> None:
    stub = StubService()
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["records", "warehouse-7", "2024-03-01"])

    assert result.exit_code == 0, result.output
    assert "Records for warehouse-7 on 2024-03-01" in result.stdout
    assert "1709280000: temperature=21.5 humidity=40" in result.stdout
    assert stub.queries == [("warehouse-7", "2024-03-01")]


def test_pipe_commands(monkeypatch, runner: CliRunner) -> None:
    stub = StubService()
    _install_stub(monkeypatch, stub)

    status = runner.invoke(app, ["pipe", "status"])
    stopped = runner.invoke(app, ["pipe", "stop"])

    assert status.exit_code == 0, status.output
    assert "current_state: RUNNING" in status.stdout
    assert stopped.exit_code == 0, stopped.output
    assert "desired_state: STOPPED" in stopped.stdout
    assert stub.state_changes == [PipeState.stopped]


def test_synth_writes_template(monkeypatch, runner: CliRunner, tmp_path) -> None:
    monkeypatch.setattr(
        "cli.app.synth_template",
        lambda: {"Resources": {"Pipe": {"Type": "AWS::Pipes::Pipe"}}},
    )
    output = tmp_path / "template.json"

    printed = runner.invoke(app, ["synth"])
    written = runner.invoke(app, ["synth", "--output", str(output)])

    assert printed.exit_code == 0, printed.output
    assert json.loads(printed.stdout)["Resources"]["Pipe"]["Type"] == "AWS::Pipes::Pipe"
    assert written.exit_code == 0, written.output
    assert json.loads(output.read_text()) == {"Resources": {"Pipe": {"Type": "AWS::Pipes::Pipe"}}}


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "request rejected"}}, operation)


class FailingService(StubService):
    def __init__(self, failing: str) -> None:
        super().__init__()
        self.failing = failing

    def publish(self, messages) -> List[str]:
        if self.failing == "publish":
            raise _client_error("AuthorizationError", "PublishBatch")
        return super().publish(messages)

    def wait_for_record(self, message, interval: float, timeout: float) -> InspectionRecord:
        raise _client_error("ResourceNotFoundException", "GetItem")

    def pipe_status(self) -> PipeStatus:
        raise _client_error("NotFoundException", "DescribePipe")

    def set_pipe_state(self, desired: PipeState) -> PipeStatus:
        raise _client_error("ConflictException", "StopPipe")


@pytest.mark.parametrize(
    ("args", "expected"),
    [
        (["pipe", "status"], "Unable to describe pipe"),
        (["pipe", "stop"], "Unable to set pipe state to STOPPED"),
        (["pipe", "start"], "Unable to set pipe state to RUNNING"),
    ],
)
def test_pipe_commands_report_aws_errors(monkeypatch, runner: CliRunner, args, expected) -> None:
    _install_stub(monkeypatch, FailingService(failing="pipe"))

    result = runner.invoke(app, args)

    assert result.exit_code == 1
    assert not isinstance(result.exception, ClientError)
    assert expected in result.output


def test_publish_reports_aws_errors(monkeypatch, runner: CliRunner, tmp_path) -> None:
    _install_stub(monkeypatch, FailingService(failing="publish"))
    path = _write_messages(tmp_path, MESSAGE)

    result = runner.invoke(app, ["publish", str(path)])

    assert result.exit_code == 1
    assert not isinstance(result.exception, ClientError)
    assert "Publish failed" in result.output


def test_publish_wait_reports_lookup_errors(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = FailingService(failing="wait")
    _install_stub(monkeypatch, stub)
    path = _write_messages(tmp_path, MESSAGE)

    result = runner.invoke(app, ["publish", str(path), "--wait"])

    assert result.exit_code == 1
    assert not isinstance(result.exception, ClientError)
    assert "Lookup failed" in result.output
    assert [message.location for message in stub.published] == ["warehouse-7"]


def test_preview_rejects_non_utf8_file(runner: CliRunner, tmp_path) -> None:
    path = tmp_path / "messages.json"
    path.write_bytes(b"\xff\xfe{")

    result = runner.invoke(app, ["preview", str(path)])

    assert result.exit_code == 1
    assert not isinstance(result.exception, UnicodeDecodeError)
    assert "is not UTF-8 text" in result.output
