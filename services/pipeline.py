"""Operator-side access to a deployed pipeline stack."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence

import boto3
from botocore.exceptions import ClientError

from datastore.inspection_table import InspectionTable
from messaging.inspection_topic import InspectionTopic
from models.pipes import PipeState
from models.records import InspectionMessage, InspectionRecord
from settings import get_settings

logger = logging.getLogger(__name__)

REQUIRED_OUTPUTS = ("TopicArn", "TableName", "PipeName")


class StackNotDeployedError(RuntimeError):
    """Raised when the stack, or one of its outputs, cannot be found."""


class RecordNotFoundError(KeyError):
    """Raised when a published message never shows up in the table."""


@dataclass(frozen=True)
class PipeStatus:
    name: str
    desired_state: str
    current_state: str
    reason: Optional[str] = None


def read_stack_outputs(stack_name: str, client: Optional[Any] = None) -> Dict[str, str]:
    """Return the stack outputs keyed by output name."""
    cloudformation = client or boto3.client("cloudformation")
    try:
        response = cloudformation.describe_stacks(StackName=stack_name)
    except ClientError as exc:
        if exc.response.get("Error", {}).get("Code") == "ValidationError":
            raise StackNotDeployedError(f"Stack {stack_name!r} is not deployed.") from exc
        raise

    stacks = response.get("Stacks") or []
    if not stacks:
        raise StackNotDeployedError(f"Stack {stack_name!r} is not deployed.")

    outputs = {
        output["OutputKey"]: output["OutputValue"] for output in stacks[0].get("Outputs") or []
    }
    missing = sorted(set(REQUIRED_OUTPUTS) - outputs.keys())
    if missing:
        raise StackNotDeployedError(
            f"Stack {stack_name!r} is missing outputs: {', '.join(missing)}"
        )
    return outputs


class PipelineService:
    """Publishes messages and inspects what the pipeline stored."""

    def __init__(
        self,
        topic: InspectionTopic,
        table: InspectionTable,
        pipe_name: str,
        pipes_client: Optional[Any] = None,
    ) -> None:
        self.topic = topic
        self.table = table
        self.pipe_name = pipe_name
        self._pipes = pipes_client or boto3.client("pipes")

    def publish(self, messages: Sequence[InspectionMessage]) -> List[str]:
        if not messages:
            raise ValueError("No messages to publish.")
        if len(messages) == 1:
            return [self.topic.publish(messages[0])]
        return self.topic.publish_batch(messages)

    def fetch_records(self, location: str, date: str) -> List[InspectionRecord]:
        return self.table.query(location, date)

    def wait_for_record(
        self,
        message: InspectionMessage,
        interval: float,
        timeout: float,
    ) -> InspectionRecord:
        """Poll the table until the record for ``message`` appears."""
        deadline = time.monotonic() + timeout
        while True:
            record = self.table.get_item(message.location, message.date, message.inspected_at)
            if record is not None:
                return record
            if time.monotonic() + interval > deadline:
                break
            time.sleep(interval)
        logger.warning(
            "Record did not arrive before timeout",
            extra={"location": message.location, "reason": f"timeout={timeout}s"},
        )
        raise RecordNotFoundError(
            f"No record for {message.location!r} on {message.date} at {message.inspected_at} "
            f"after {timeout}s."
        )

    def pipe_status(self) -> PipeStatus:
        response = self._pipes.describe_pipe(Name=self.pipe_name)
        return PipeStatus(
            name=response["Name"],
            desired_state=response["DesiredState"],
            current_state=response["CurrentState"],
            reason=response.get("StateReason"),
        )

    def set_pipe_state(self, desired: PipeState) -> PipeStatus:
        if desired is PipeState.running:
            response = self._pipes.start_pipe(Name=self.pipe_name)
        else:
            response = self._pipes.stop_pipe(Name=self.pipe_name)
        logger.info(
            "Requested pipe state change",
            extra={"pipe_name": self.pipe_name, "state": desired.value},
        )
        return PipeStatus(
            name=response["Name"],
            desired_state=response["DesiredState"],
            current_state=response["CurrentState"],
        )


@lru_cache
def build_default_pipeline(
    stack_name: Optional[str] = None,
    region: Optional[str] = None,
) -> PipelineService:
    """Factory that wires the service from the deployed stack's outputs."""
    settings = get_settings()
    session = boto3.Session(region_name=region)
    outputs = read_stack_outputs(
        stack_name or settings.stack_name, client=session.client("cloudformation")
    )
    return PipelineService(
        topic=InspectionTopic(outputs["TopicArn"], client=session.client("sns")),
        table=InspectionTable(outputs["TableName"], client=session.client("dynamodb")),
        pipe_name=outputs["PipeName"],
        pipes_client=session.client("pipes"),
    )
