"""Least-privilege service roles for the queue producers and consumers.

Each role is assumed by Lambda, carries the basic execution managed policy and
exactly one inline policy. Statements always name concrete queue or key ARNs.
"""
from typing import Any, List, Mapping, Optional

from attrs import define, field
from aws_cdk import aws_iam as iam, aws_kms as kms

import common.constants as constants
from common.stack_context import StackContext
from messaging.queues import QueueTopology


@define(slots=True, frozen=True)
class StatementSpec:
    actions: List[str]
    resources: List[str]
    conditions: Optional[Mapping[str, Any]] = None

    def to_statement(self) -> iam.PolicyStatement:
        return iam.PolicyStatement(
            effect=iam.Effect.ALLOW,
            actions=list(self.actions),
            resources=list(self.resources),
            conditions=dict(self.conditions) if self.conditions else None,
        )


@define(slots=True, frozen=True)
class RoleSpec:
    construct_id: str
    purpose: str
    policy_name: str
    statements: List[StatementSpec] = field(factory=list)


@define(slots=True, frozen=True)
class ServiceRoles:
    webhook: iam.Role
    worker: iam.Role
    feedback: iam.Role


def build_role(context: StackContext, spec: RoleSpec, key: kms.IKey) -> iam.Role:
    statements = [statement.to_statement() for statement in spec.statements]
    statements.append(
        iam.PolicyStatement(
            effect=iam.Effect.ALLOW,
            actions=list(constants.KMS_QUEUE_ACTIONS),
            resources=[key.key_arn],
        )
    )
    return iam.Role(
        context.scope,
        spec.construct_id,
        role_name=context.build_resource_name(f"{spec.purpose}-role"),
        assumed_by=iam.ServicePrincipal(constants.LAMBDA_SERVICE_PRINCIPAL),
        managed_policies=[
            iam.ManagedPolicy.from_aws_managed_policy_name(
                constants.LAMBDA_BASIC_EXECUTION_POLICY
            )
        ],
        inline_policies={
            spec.policy_name: iam.PolicyDocument(statements=statements),
        },
    )


def service_role_specs(context: StackContext, queues: QueueTopology) -> List[RoleSpec]:
    order_arn = queues.order_queue.queue_arn
    result_arn = queues.result_queue.queue_arn
    return [
        RoleSpec(
            construct_id="WebhookLambdaRole",
            purpose=constants.WEBHOOK,
            policy_name="OrderQueueProducer",
            statements=[
                StatementSpec(
                    actions=[*constants.SQS_PRODUCER_ACTIONS, "sqs:GetQueueUrl"],
                    resources=[order_arn],
                    conditions={
                        "StringEquals": {"aws:SourceAccount": context.aws_account_id}
                    },
                ),
            ],
        ),
        RoleSpec(
            construct_id="WorkerLambdaRole",
            purpose=constants.WORKER,
            policy_name="DualQueueWorkerAccess",
            statements=[
                StatementSpec(
                    actions=list(constants.SQS_CONSUMER_ACTIONS), resources=[order_arn]
                ),
                StatementSpec(
                    actions=list(constants.SQS_PRODUCER_ACTIONS), resources=[result_arn]
                ),
            ],
        ),
        # Feedback consumes results and may requeue work onto the order queue
        RoleSpec(
            construct_id="FeedbackLambdaRole",
            purpose=constants.FEEDBACK,
            policy_name="FeedbackDualQueueAccess",
            statements=[
                StatementSpec(
                    actions=list(constants.SQS_CONSUMER_ACTIONS), resources=[result_arn]
                ),
                StatementSpec(
                    actions=list(constants.SQS_PRODUCER_ACTIONS), resources=[order_arn]
                ),
            ],
        ),
    ]


def build_service_roles(
    context: StackContext, queues: QueueTopology, key: kms.IKey
) -> ServiceRoles:
    webhook, worker, feedback = (
        build_role(context, spec, key) for spec in service_role_specs(context, queues)
    )
    return ServiceRoles(webhook=webhook, worker=worker, feedback=feedback)
