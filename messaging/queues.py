from attrs import define
from aws_cdk import Duration, aws_kms as kms, aws_sqs as sqs

import common.constants as constants
from common.environment_config import QueueSettings
from common.stack_context import StackContext


@define(slots=True, frozen=True)
class QueueTopology:
    order_queue: sqs.Queue
    order_dlq: sqs.Queue
    result_queue: sqs.Queue
    result_dlq: sqs.Queue
    order_settings: QueueSettings
    result_settings: QueueSettings


def build_dead_letter_queue(
    context: StackContext, construct_id: str, purpose: str, key: kms.IKey
) -> sqs.Queue:
    return sqs.Queue(
        context.scope,
        construct_id,
        queue_name=context.build_resource_name(purpose),
        retention_period=Duration.days(constants.DLQ_RETENTION_DAYS),
        encryption_master_key=key,
    )


def build_primary_queue(
    context: StackContext,
    construct_id: str,
    purpose: str,
    key: kms.IKey,
    dlq: sqs.IQueue,
    settings: QueueSettings,
    retention_days: int,
) -> sqs.Queue:
    """Create a long-polling queue that redrives to ``dlq``."""
    return sqs.Queue(
        context.scope,
        construct_id,
        queue_name=context.build_resource_name(purpose),
        visibility_timeout=Duration.seconds(settings.visibility_timeout_seconds),
        retention_period=Duration.days(retention_days),
        receive_message_wait_time=Duration.seconds(constants.RECEIVE_WAIT_SECONDS),
        dead_letter_queue=sqs.DeadLetterQueue(
            max_receive_count=settings.max_receive_count,
            queue=dlq,
        ),
        encryption_master_key=key,
    )


def build_queue_topology(
    context: StackContext,
    key: kms.IKey,
    order_settings: QueueSettings,
    result_settings: QueueSettings,
) -> QueueTopology:
    # DLQs first, the redrive policies need their ARNs
    order_dlq = build_dead_letter_queue(context, "OrderDLQ", constants.ORDER_DLQ, key)
    result_dlq = build_dead_letter_queue(
        context, "ResultDLQ", constants.RESULT_DLQ, key
    )

    order_queue = build_primary_queue(
        context,
        "OrderQueue",
        constants.ORDER,
        key,
        dlq=order_dlq,
        settings=order_settings,
        retention_days=constants.ORDER_RETENTION_DAYS,
    )
    result_queue = build_primary_queue(
        context,
        "ResultQueue",
        constants.RESULT,
        key,
        dlq=result_dlq,
        settings=result_settings,
        retention_days=constants.RESULT_RETENTION_DAYS,
    )
    return QueueTopology(
        order_queue=order_queue,
        order_dlq=order_dlq,
        result_queue=result_queue,
        result_dlq=result_dlq,
        order_settings=order_settings,
        result_settings=result_settings,
    )
