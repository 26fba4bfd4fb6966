"""Topic → queue → pipe → state machine → table stack."""

from __future__ import annotations

import logging
from typing import Any

from aws_cdk import CfnOutput, Duration, RemovalPolicy, Stack
from aws_cdk import aws_dynamodb as dynamodb
from aws_cdk import aws_iam as iam
from aws_cdk import aws_logs as logs
from aws_cdk import aws_pipes as pipes
from aws_cdk import aws_sns as sns
from aws_cdk import aws_sns_subscriptions as subscriptions
from aws_cdk import aws_sqs as sqs
from aws_cdk import aws_stepfunctions as sfn
from constructs import Construct

from infra.workflow import build_record_writer
from models.records import PARTITION_KEY, SORT_KEY, TTL_ATTRIBUTE
from settings import Settings

logger = logging.getLogger(__name__)

PIPES_SERVICE_PRINCIPAL = "pipes.amazonaws.com"

QUEUE_ACTIONS = ("sqs:ReceiveMessage", "sqs:DeleteMessage", "sqs:GetQueueAttributes")
STATE_MACHINE_LIST_ACTIONS = ("states:ListStateMachines",)
STATE_MACHINE_RUN_ACTIONS = ("states:Start*", "states:Stop*")

_RETENTION_DAYS = {
    1: logs.RetentionDays.ONE_DAY,
    3: logs.RetentionDays.THREE_DAYS,
    5: logs.RetentionDays.FIVE_DAYS,
    7: logs.RetentionDays.ONE_WEEK,
    14: logs.RetentionDays.TWO_WEEKS,
    30: logs.RetentionDays.ONE_MONTH,
    60: logs.RetentionDays.TWO_MONTHS,
    90: logs.RetentionDays.THREE_MONTHS,
    120: logs.RetentionDays.FOUR_MONTHS,
    150: logs.RetentionDays.FIVE_MONTHS,
    180: logs.RetentionDays.SIX_MONTHS,
    365: logs.RetentionDays.ONE_YEAR,
    400: logs.RetentionDays.THIRTEEN_MONTHS,
    545: logs.RetentionDays.EIGHTEEN_MONTHS,
    731: logs.RetentionDays.TWO_YEARS,
    1096: logs.RetentionDays.THREE_YEARS,
    1827: logs.RetentionDays.FIVE_YEARS,
    2192: logs.RetentionDays.SIX_YEARS,
    2557: logs.RetentionDays.SEVEN_YEARS,
    2922: logs.RetentionDays.EIGHT_YEARS,
    3288: logs.RetentionDays.NINE_YEARS,
    3653: logs.RetentionDays.TEN_YEARS,
}


def retention_days(days: int) -> logs.RetentionDays:
    try:
        return _RETENTION_DAYS[days]
    except KeyError as exc:
        raise ValueError(f"CloudWatch Logs does not support a retention of {days} days.") from exc


class PipesTestStack(Stack):
    """Event pipeline wired entirely from managed services.

    Messages published to the topic land raw in the queue, the pipe batches
    them into executions of an EXPRESS state machine, and the state machine
    writes one table record per message.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        settings: Settings,
        **kwargs: Any,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.settings = settings
        logger.info("Defining pipeline stack", extra={"stack_name": construct_id})

        self.table = self._create_table()
        self.queue = self._create_queue()
        self.topic = self._create_topic()
        self.state_machine = self._create_state_machine()
        self.pipe_role = self._create_pipe_role()
        self.pipe = self._create_pipe()
        self._create_outputs()

    def _create_table(self) -> dynamodb.TableV2:
        return dynamodb.TableV2(
            self,
            "PipesTestTable",
            table_name=self.settings.table_name,
            partition_key=dynamodb.Attribute(
                name=PARTITION_KEY, type=dynamodb.AttributeType.STRING
            ),
            sort_key=dynamodb.Attribute(name=SORT_KEY, type=dynamodb.AttributeType.STRING),
            billing=dynamodb.Billing.on_demand(),
            deletion_protection=False,
            point_in_time_recovery_specification=dynamodb.PointInTimeRecoverySpecification(
                point_in_time_recovery_enabled=False
            ),
            table_class=dynamodb.TableClass.STANDARD,
            time_to_live_attribute=TTL_ATTRIBUTE,
            removal_policy=RemovalPolicy.DESTROY,
        )

    def _create_queue(self) -> sqs.Queue:
        return sqs.Queue(
            self,
            "PipesTestQueue",
            queue_name=self.settings.queue_name,
            visibility_timeout=Duration.seconds(self.settings.visibility_timeout_seconds),
            retention_period=Duration.seconds(self.settings.retention_period_seconds),
            removal_policy=RemovalPolicy.DESTROY,
        )

    def _create_topic(self) -> sns.Topic:
        topic = sns.Topic(
            self,
            "PipesTestSns",
            topic_name=self.settings.topic_name,
            display_name="Topic for EventBridge Pipes Test",
        )
        topic.add_subscription(
            subscriptions.SqsSubscription(self.queue, raw_message_delivery=True)
        )
        return topic

    def _create_state_machine(self) -> sfn.StateMachine:
        log_group = logs.LogGroup(
            self,
            "PipesTestStateMachineLogGroup",
            log_group_name=self.settings.log_group_name,
            removal_policy=RemovalPolicy.DESTROY,
            retention=retention_days(self.settings.log_retention_days),
        )

        definition = build_record_writer(
            self, self.table, ttl_seconds=self.settings.record_ttl_seconds
        )

        return sfn.StateMachine(
            self,
            "PipesTestStateMachine",
            definition_body=sfn.DefinitionBody.from_chainable(definition),
            state_machine_name=self.settings.state_machine_name,
            state_machine_type=sfn.StateMachineType.EXPRESS,
            timeout=Duration.seconds(self.settings.execution_timeout_seconds),
            logs=sfn.LogOptions(
                destination=log_group,
                include_execution_data=True,
                level=sfn.LogLevel.ALL,
            ),
        )

    def _create_pipe_role(self) -> iam.Role:
        role = iam.Role(
            self,
            "PipesTestRole",
            assumed_by=iam.ServicePrincipal(PIPES_SERVICE_PRINCIPAL),
            role_name=self.settings.pipe_role_name,
            description="Role assumed by EventBridge Pipes pipe",
        )
        role.add_to_policy(
            iam.PolicyStatement(
                actions=list(QUEUE_ACTIONS),
                resources=[self.queue.queue_arn],
            )
        )
        role.add_to_policy(
            iam.PolicyStatement(
                actions=list(STATE_MACHINE_LIST_ACTIONS),
                resources=["*"],
            )
        )
        role.add_to_policy(
            iam.PolicyStatement(
                actions=list(STATE_MACHINE_RUN_ACTIONS),
                resources=[self.state_machine.state_machine_arn],
            )
        )
        return role

    def _create_pipe(self) -> pipes.CfnPipe:
        pipe = pipes.CfnPipe(
            self,
            "PipesTestPipe",
            name=self.settings.pipe_name,
            description="EventBridge Pipes Test Pipe",
            desired_state=self.settings.pipe_desired_state.value,
            source=self.queue.queue_arn,
            source_parameters=pipes.CfnPipe.PipeSourceParametersProperty(
                sqs_queue_parameters=pipes.CfnPipe.PipeSourceSqsQueueParametersProperty(
                    batch_size=self.settings.batch_size,
                    maximum_batching_window_in_seconds=self.settings.batching_window_seconds,
                ),
            ),
            target=self.state_machine.state_machine_arn,
            target_parameters=pipes.CfnPipe.PipeTargetParametersProperty(
                step_function_state_machine_parameters=pipes.CfnPipe.PipeTargetStateMachineParametersProperty(
                    invocation_type=self.settings.pipe_invocation_type.value,
                ),
            ),
            role_arn=self.pipe_role.role_arn,
        )
        # Depending on the role construct covers its default policy resource.
        pipe.node.add_dependency(self.pipe_role)
        logger.info(
            "Pipe wired from queue to state machine",
            extra={"pipe_name": self.settings.pipe_name, "state": pipe.desired_state},
        )
        return pipe

    def _create_outputs(self) -> None:
        CfnOutput(self, "TopicArn", value=self.topic.topic_arn)
        CfnOutput(self, "QueueUrl", value=self.queue.queue_url)
        CfnOutput(self, "TableName", value=self.table.table_name)
        CfnOutput(self, "StateMachineArn", value=self.state_machine.state_machine_arn)
        CfnOutput(self, "PipeName", value=self.settings.pipe_name)
