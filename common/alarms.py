from typing import List, Optional

from attrs import define, field
from attrs.validators import ge, instance_of
from aws_cdk import (
    aws_cloudwatch as cloudwatch,
    aws_cloudwatch_actions as cloudwatch_actions,
    aws_kms as kms,
    aws_sns as sns,
)

from common.stack_context import StackContext


@define(slots=True, frozen=True)
class AlarmDefinition:
    purpose: str = field(validator=instance_of(str))
    description: str = field(validator=instance_of(str))
    metric: cloudwatch.IMetric
    threshold: float
    evaluation_periods: int = field(validator=[instance_of(int), ge(1)])
    # None keeps the CloudWatch default (missing data treated as missing)
    treat_missing_data: Optional[cloudwatch.TreatMissingData] = None


def build_alert_topic(
    context: StackContext,
    purpose: str,
    display_name: str,
    master_key: Optional[kms.IKey] = None,
) -> sns.Topic:
    """Create the notification channel shared by all alarms of a stack."""
    return sns.Topic(
        context.scope,
        context.build_resource_id(purpose, "topic"),
        topic_name=context.build_resource_name(purpose),
        display_name=display_name,
        master_key=master_key,
    )


def build_alarm(
    context: StackContext, definition: AlarmDefinition, topic: sns.ITopic
) -> cloudwatch.Alarm:
    """Create an alarm that notifies ``topic`` on both ALARM and OK."""
    alarm = cloudwatch.Alarm(
        context.scope,
        context.build_resource_id(definition.purpose, "alarm"),
        alarm_name=context.build_resource_name(definition.purpose),
        alarm_description=definition.description,
        metric=definition.metric,
        threshold=definition.threshold,
        evaluation_periods=definition.evaluation_periods,
        comparison_operator=cloudwatch.ComparisonOperator.GREATER_THAN_OR_EQUAL_TO_THRESHOLD,
        treat_missing_data=definition.treat_missing_data,
    )
    action = cloudwatch_actions.SnsAction(topic)
    alarm.add_alarm_action(action)
    alarm.add_ok_action(action)
    return alarm


def build_alarms(
    context: StackContext, definitions: List[AlarmDefinition], topic: sns.ITopic
) -> List[cloudwatch.Alarm]:
    return [build_alarm(context, definition, topic) for definition in definitions]
