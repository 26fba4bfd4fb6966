"""Inspection message and record models shared by the stack and the tooling."""

from __future__ import annotations

import json
from datetime import date as calendar_date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


PARTITION_KEY = "pk"
SORT_KEY = "sk"
TYPE_ATTRIBUTE = "type"
TTL_ATTRIBUTE = "ttl"
MEASUREMENT_FIELDS = ("temperature", "humidity")

RECORD_CATEGORY = "INSPECTION"
RECORD_TYPE = "Inspection"
KEY_SEPARATOR = "#"


def partition_key(location: str, date: str) -> str:
    """Build the composite partition key for a location and calendar date."""
    return KEY_SEPARATOR.join((RECORD_CATEGORY, location, date))


def partition_key_template() -> str:
    """Partition key layout with ``{}`` placeholders for location and date."""
    return partition_key("{}", "{}")


def _normalize_measurement(value: Any) -> str:
    if isinstance(value, bool):
        raise ValueError("measurement must be numeric")
    if isinstance(value, (int, float, Decimal)):
        value = str(value)
    if not isinstance(value, str):
        raise ValueError("measurement must be numeric")
    candidate = value.strip()
    try:
        parsed = Decimal(candidate)
    except InvalidOperation as exc:
        raise ValueError("measurement must be numeric") from exc
    if not parsed.is_finite():
        raise ValueError("measurement must be finite")
    return candidate


class InspectionMessage(BaseModel):
    """Message published to the topic; one message becomes one record."""

    model_config = ConfigDict(populate_by_name=True)

    location: str = Field(..., min_length=1)
    date: str = Field(..., description="Inspection date as YYYY-MM-DD.")
    inspected_at: int = Field(
        ..., alias="inspectedAt", ge=0, description="Inspection time in epoch seconds."
    )
    temperature: str
    humidity: str

    @field_validator("location")
    @classmethod
    def _check_location(cls, value: str) -> str:
        candidate = value.strip()
        if not candidate:
            raise ValueError("location must not be blank")
        if KEY_SEPARATOR in candidate:
            raise ValueError(f"location must not contain {KEY_SEPARATOR!r}")
        return candidate

    @field_validator("date")
    @classmethod
    def _check_date(cls, value: str) -> str:
        candidate = value.strip()
        try:
            parsed = calendar_date.fromisoformat(candidate)
        except ValueError as exc:
            raise ValueError("date must be formatted as YYYY-MM-DD") from exc
        # fromisoformat also takes basic and week forms; keys need the extended one.
        if parsed.isoformat() != candidate:
            raise ValueError("date must be formatted as YYYY-MM-DD")
        return candidate

    @field_validator("temperature", "humidity", mode="before")
    @classmethod
    def _check_measurement(cls, value: Any) -> str:
        return _normalize_measurement(value)

    def to_body(self) -> str:
        """Serialize the message the way it travels through the queue."""
        return json.dumps(self.model_dump(by_alias=True), separators=(",", ":"))


class InspectionRecord(BaseModel):
    """Item the record writer stores for each received message."""

    pk: str
    sk: str
    type: str = RECORD_TYPE
    temperature: Decimal
    humidity: Decimal
    ttl: int

    @classmethod
    def from_message(cls, message: InspectionMessage, ttl_seconds: int) -> "InspectionRecord":
        return cls(
            pk=partition_key(message.location, message.date),
            sk=str(message.inspected_at),
            temperature=Decimal(message.temperature),
            humidity=Decimal(message.humidity),
            ttl=message.inspected_at + ttl_seconds,
        )

    @property
    def location(self) -> str:
        return self.pk.split(KEY_SEPARATOR)[1]

    @property
    def date(self) -> str:
        return self.pk.split(KEY_SEPARATOR)[2]

    @property
    def inspected_at(self) -> int:
        return int(self.sk)

    def to_item(self) -> Dict[str, Dict[str, str]]:
        """Render the record in DynamoDB attribute-value form."""
        return {
            PARTITION_KEY: {"S": self.pk},
            SORT_KEY: {"S": self.sk},
            TYPE_ATTRIBUTE: {"S": self.type},
            "temperature": {"N": str(self.temperature)},
            "humidity": {"N": str(self.humidity)},
            TTL_ATTRIBUTE: {"N": str(self.ttl)},
        }

    @classmethod
    def from_item(cls, item: Dict[str, Dict[str, str]]) -> "InspectionRecord":
        try:
            return cls(
                pk=item[PARTITION_KEY]["S"],
                sk=item[SORT_KEY]["S"],
                type=item[TYPE_ATTRIBUTE]["S"],
                temperature=Decimal(item["temperature"]["N"]),
                humidity=Decimal(item["humidity"]["N"]),
                ttl=int(item[TTL_ATTRIBUTE]["N"]),
            )
        except KeyError as exc:
            raise ValueError(f"Item is missing attribute {exc.args[0]!r}.") from exc


def parse_messages(payload: Any) -> List[InspectionMessage]:
    """Validate a single message object or a list of them."""
    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list):
        raise ValueError("Expected a message object or a list of message objects.")
    if not payload:
        raise ValueError("No messages provided.")
    return [InspectionMessage.model_validate(entry) for entry in payload]
