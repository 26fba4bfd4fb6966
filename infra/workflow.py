"""State definition that turns a batch of queue messages into table records."""

from __future__ import annotations

from aws_cdk import aws_dynamodb as dynamodb
from aws_cdk import aws_stepfunctions as sfn
from aws_cdk import aws_stepfunctions_tasks as tasks
from constructs import Construct

from models.records import (
    MEASUREMENT_FIELDS,
    PARTITION_KEY,
    RECORD_TYPE,
    SORT_KEY,
    TTL_ATTRIBUTE,
    TYPE_ATTRIBUTE,
    partition_key_template,
)

DUPLICATE_RECORD_ERROR = "DynamoDB.ConditionalCheckFailedException"


def _message_path(field: str) -> str:
    return sfn.JsonPath.string_at(f"$.message.{field}")


def build_record_writer(
    scope: Construct,
    table: dynamodb.ITable,
    ttl_seconds: int,
) -> sfn.IChainable:
    """Chain the body selection, per-message shaping and conditional put."""

    select_body = sfn.Pass(
        scope,
        "SelectBodyFromInput",
        comment="Select body from input message",
        input_path="$..body",
    )

    shape_record = sfn.Pass(
        scope,
        "ShapeRecord",
        comment="Build key and attribute values from the message",
        parameters={
            PARTITION_KEY: sfn.JsonPath.format(
                partition_key_template(),
                _message_path("location"),
                _message_path("date"),
            ),
            SORT_KEY: sfn.JsonPath.format("{}", _message_path("inspectedAt")),
            **{field: _message_path(field) for field in MEASUREMENT_FIELDS},
            TTL_ATTRIBUTE: sfn.JsonPath.format(
                "{}",
                sfn.JsonPath.math_add(
                    sfn.JsonPath.number_at("$.message.inspectedAt"), ttl_seconds
                ),
            ),
        },
    )

    # DynamoAttributeValue.from_number cannot take a JSON path, so numbers
    # travel as strings and are coerced at the write.
    put_record = tasks.DynamoPutItem(
        scope,
        "PutInspectionRecord",
        table=table,
        item={
            PARTITION_KEY: tasks.DynamoAttributeValue.from_string(
                sfn.JsonPath.string_at(f"$.{PARTITION_KEY}")
            ),
            SORT_KEY: tasks.DynamoAttributeValue.from_string(
                sfn.JsonPath.string_at(f"$.{SORT_KEY}")
            ),
            TYPE_ATTRIBUTE: tasks.DynamoAttributeValue.from_string(RECORD_TYPE),
            **{
                field: tasks.DynamoAttributeValue.number_from_string(
                    sfn.JsonPath.string_at(f"$.{field}")
                )
                for field in MEASUREMENT_FIELDS
            },
            TTL_ATTRIBUTE: tasks.DynamoAttributeValue.number_from_string(
                sfn.JsonPath.string_at(f"$.{TTL_ATTRIBUTE}")
            ),
        },
        condition_expression=f"attribute_not_exists({PARTITION_KEY})",
        result_path=sfn.JsonPath.DISCARD,
    )
    put_record.add_catch(
        sfn.Pass(scope, "SkipDuplicateRecord", comment="Record already stored"),
        errors=[DUPLICATE_RECORD_ERROR],
        result_path=sfn.JsonPath.DISCARD,
    )

    write_each = sfn.Map(
        scope,
        "WriteEachRecord",
        comment="Write one record per message body",
        items_path=sfn.JsonPath.entire_payload,
        item_selector={
            "message": sfn.JsonPath.string_to_json(
                sfn.JsonPath.string_at("$$.Map.Item.Value")
            ),
        },
        result_path=sfn.JsonPath.DISCARD,
    )
    write_each.item_processor(shape_record.next(put_record))

    return select_body.next(write_each)
