"""Publish stable identifiers to the SSM parameter registry.

Every entry lives under ``/automation/{environment}/{category}`` so consumers
can look values up knowing only the environment name.
"""
import json
from typing import Iterable, List

from attrs import define, field
from attrs.validators import instance_of
from aws_cdk import aws_ssm as ssm

from common.environment_config import QueueSettings
from common.stack_context import StackContext

# Categories
ORDER_QUEUE_URL = "queues/order/url"
ORDER_QUEUE_ARN = "queues/order/arn"
RESULT_QUEUE_URL = "queues/result/url"
RESULT_QUEUE_ARN = "queues/result/arn"
QUEUE_CONFIG = "queues/config"
WEBHOOK_ROLE_ARN = "roles/webhook/arn"
WORKER_ROLE_ARN = "roles/worker/arn"
FEEDBACK_ROLE_ARN = "roles/feedback/arn"
QUEUE_ALERT_TOPIC_ARN = "monitoring/queue-alerts/topic-arn"
REST_API_ID = "api-gateway/rest-api-id"
REST_API_URL = "api-gateway/rest-api-url"
DOMAIN_NAME = "api-gateway/domain-name"
STAGE_NAME = "api-gateway/stage-name"
SOURCE_ARN = "api-gateway/source-arn"


@define(slots=True, frozen=True)
class ParameterEntry:
    id: str = field(validator=instance_of(str))
    category: str = field(validator=instance_of(str))
    value: str
    description: str = field(validator=instance_of(str))


def queue_config_snapshot(order: QueueSettings, result: QueueSettings) -> str:
    """Serialize queue settings the way the Lambda consumers parse them."""
    return json.dumps(
        {
            "orderQueue": {
                "visibilityTimeout": order.visibility_timeout_seconds,
                "maxReceiveCount": order.max_receive_count,
            },
            "resultQueue": {
                "visibilityTimeout": result.visibility_timeout_seconds,
                "maxReceiveCount": result.max_receive_count,
            },
        },
        separators=(",", ":"),
    )


def export_parameters(
    context: StackContext, entries: Iterable[ParameterEntry]
) -> List[ssm.StringParameter]:
    parameters = []
    seen = set()
    for entry in entries:
        parameter_name = context.build_parameter_name(entry.category)
        if parameter_name in seen:
            raise ValueError(f"Duplicate parameter path: {parameter_name}")
        seen.add(parameter_name)
        parameters.append(
            ssm.StringParameter(
                context.scope,
                entry.id,
                parameter_name=parameter_name,
                string_value=entry.value,
                description=entry.description,
            )
        )
    return parameters
