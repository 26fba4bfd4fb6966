from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

import boto3

from models.records import InspectionMessage

logger = logging.getLogger(__name__)

# SNS PublishBatch accepts at most ten entries per request.
MAX_BATCH_ENTRIES = 10


class PublishError(RuntimeError):
    """Raised when the topic rejects one or more batch entries."""


class InspectionTopic:
    """Publishes inspection messages to the pipeline's entry topic."""

    def __init__(self, arn: str, client: Optional[Any] = None) -> None:
        self.arn = arn
        self._client = client or boto3.client("sns")

    def publish(self, message: InspectionMessage) -> str:
        response = self._client.publish(TopicArn=self.arn, Message=message.to_body())
        message_id = response["MessageId"]
        logger.info(
            "Published inspection",
            extra={"topic_arn": self.arn, "message_id": message_id, "location": message.location},
        )
        return message_id

    def publish_batch(self, messages: Sequence[InspectionMessage]) -> List[str]:
        message_ids: List[str] = []
        for start in range(0, len(messages), MAX_BATCH_ENTRIES):
            chunk = messages[start : start + MAX_BATCH_ENTRIES]
            entries = [
                {"Id": str(start + offset), "Message": message.to_body()}
                for offset, message in enumerate(chunk)
            ]
            response = self._client.publish_batch(
                TopicArn=self.arn, PublishBatchRequestEntries=entries
            )
            failed = response.get("Failed") or []
            if failed:
                reasons = ", ".join(
                    f"entry {entry.get('Id')}: {entry.get('Message') or entry.get('Code')}"
                    for entry in failed
                )
                raise PublishError(f"Topic rejected {len(failed)} message(s): {reasons}")

            ordered = sorted(response.get("Successful") or [], key=lambda entry: int(entry["Id"]))
            message_ids.extend(entry["MessageId"] for entry in ordered)

        logger.info(
            "Published inspection batch",
            extra={"topic_arn": self.arn, "record_count": len(message_ids)},
        )
        return message_ids
