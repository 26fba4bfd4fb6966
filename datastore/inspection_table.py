from __future__ import annotations

import logging
from typing import Any, List, Optional

import boto3

from models.records import PARTITION_KEY, SORT_KEY, InspectionRecord, partition_key

logger = logging.getLogger(__name__)


class InspectionTable:
    """Read access to the records the state machine writes."""

    def __init__(self, name: str, client: Optional[Any] = None) -> None:
        self.name = name
        self._client = client or boto3.client("dynamodb")

    def get_item(self, location: str, date: str, inspected_at: int) -> Optional[InspectionRecord]:
        response = self._client.get_item(
            TableName=self.name,
            Key={
                PARTITION_KEY: {"S": partition_key(location, date)},
                SORT_KEY: {"S": str(inspected_at)},
            },
            ConsistentRead=True,
        )
        item = response.get("Item")
        if item is None:
            return None
        return InspectionRecord.from_item(item)

    def query(self, location: str, date: str) -> List[InspectionRecord]:
        """Return every record for a location and date, ordered by inspection time."""
        paginator = self._client.get_paginator("query")
        pages = paginator.paginate(
            TableName=self.name,
            KeyConditionExpression="#pk = :pk",
            ExpressionAttributeNames={"#pk": PARTITION_KEY},
            ExpressionAttributeValues={":pk": {"S": partition_key(location, date)}},
        )
        # sk is a string attribute, so DynamoDB returns it in text order.
        records = sorted(
            (InspectionRecord.from_item(item) for page in pages for item in page.get("Items", [])),
            key=lambda record: record.inspected_at,
        )
        logger.debug(
            "Queried inspection records",
            extra={"table_name": self.name, "location": location, "record_count": len(records)},
        )
        return records
