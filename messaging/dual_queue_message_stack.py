from typing import List

from aws_cdk import (
    Duration,
    Stack,
    aws_cloudwatch as cloudwatch,
    aws_sns as sns,
)
from constructs import Construct

import common.constants as constants
from common import parameters
from common.alarms import AlarmDefinition, build_alarms, build_alert_topic
from common.environment_config import QueueSettings
from common.parameters import ParameterEntry, export_parameters, queue_config_snapshot
from common.stack_context import StackContext
from messaging.encryption import build_queue_encryption_key
from messaging.queues import QueueTopology, build_queue_topology
from messaging.roles import ServiceRoles, build_service_roles


class DualQueueMessageStack(Stack):

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        environment: str,
        order_settings: QueueSettings,
        result_settings: QueueSettings,
        project_name: str = constants.PROJECT_NAME,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.context = StackContext(scope=self, env=environment, project=project_name)

        # KMS key shared by every queue and the alert topic
        self.queue_encryption_key = build_queue_encryption_key(self.context)

        # SQS dead letter queues, then the primary queues redriving into them
        self.queues: QueueTopology = build_queue_topology(
            self.context,
            key=self.queue_encryption_key,
            order_settings=order_settings,
            result_settings=result_settings,
        )
        self.order_queue = self.queues.order_queue
        self.order_dlq = self.queues.order_dlq
        self.result_queue = self.queues.result_queue
        self.result_dlq = self.queues.result_dlq

        # Permissions
        self.roles: ServiceRoles = build_service_roles(
            self.context, self.queues, self.queue_encryption_key
        )
        self.webhook_role = self.roles.webhook
        self.worker_role = self.roles.worker
        self.feedback_role = self.roles.feedback

        # Monitoring
        self.queue_alert_topic = build_alert_topic(
            self.context,
            constants.QUEUE_ALERTS,
            display_name="SQS Alerts for Watch Tower",
            master_key=self.queue_encryption_key,
        )
        self.alarms = build_alarms(
            self.context, self._alarm_definitions(), self.queue_alert_topic
        )

        # SSM exports
        self.parameters = export_parameters(
            self.context, self._parameter_entries(self.queue_alert_topic)
        )

    def _alarm_definitions(self) -> List[AlarmDefinition]:
        return [
            AlarmDefinition(
                purpose="order-message-age",
                description="Order messages aging in queue",
                metric=self.order_queue.metric_approximate_age_of_oldest_message(
                    period=Duration.minutes(5)
                ),
                threshold=constants.ORDER_AGE_THRESHOLD_SECONDS,
                evaluation_periods=2,
            ),
            AlarmDefinition(
                purpose="result-message-age",
                description="Result messages aging in queue",
                metric=self.result_queue.metric_approximate_age_of_oldest_message(
                    period=Duration.minutes(3)
                ),
                threshold=constants.RESULT_AGE_THRESHOLD_SECONDS,
                evaluation_periods=2,
            ),
            AlarmDefinition(
                purpose="order-dlq-messages",
                description="Failed orders in Dead Letter Queue",
                metric=self.order_dlq.metric_approximate_number_of_messages_visible(),
                threshold=1,
                evaluation_periods=1,
                treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
            ),
            AlarmDefinition(
                purpose="result-dlq-messages",
                description="Failed results in Dead Letter Queue",
                metric=self.result_dlq.metric_approximate_number_of_messages_visible(),
                threshold=1,
                evaluation_periods=1,
            ),
        ]

    def _parameter_entries(self, topic: sns.ITopic) -> List[ParameterEntry]:
        return [
            ParameterEntry(
                id="OrderQueueUrl",
                category=parameters.ORDER_QUEUE_URL,
                value=self.order_queue.queue_url,
                description="Order Queue URL for task distribution and requeue operations",
            ),
            ParameterEntry(
                id="OrderQueueArn",
                category=parameters.ORDER_QUEUE_ARN,
                value=self.order_queue.queue_arn,
                description="Order Queue ARN for IAM permissions and monitoring",
            ),
            ParameterEntry(
                id="ResultQueueUrl",
                category=parameters.RESULT_QUEUE_URL,
                value=self.result_queue.queue_url,
                description="Result Queue URL for processing results and feedback",
            ),
            ParameterEntry(
                id="ResultQueueArn",
                category=parameters.RESULT_QUEUE_ARN,
                value=self.result_queue.queue_arn,
                description="Result Queue ARN for IAM permissions and monitoring",
            ),
            ParameterEntry(
                id="QueueConfiguration",
                category=parameters.QUEUE_CONFIG,
                value=queue_config_snapshot(
                    self.queues.order_settings, self.queues.result_settings
                ),
                description="Queue configuration parameters for Lambda integration",
            ),
            ParameterEntry(
                id="WebhookRoleArn",
                category=parameters.WEBHOOK_ROLE_ARN,
                value=self.webhook_role.role_arn,
                description="Webhook Lambda IAM Role ARN",
            ),
            ParameterEntry(
                id="WorkerRoleArn",
                category=parameters.WORKER_ROLE_ARN,
                value=self.worker_role.role_arn,
                description="Worker Lambda IAM Role ARN",
            ),
            ParameterEntry(
                id="FeedbackRoleArn",
                category=parameters.FEEDBACK_ROLE_ARN,
                value=self.feedback_role.role_arn,
                description="Feedback Lambda IAM Role ARN",
            ),
            ParameterEntry(
                id="QueueAlertTopicArn",
                category=parameters.QUEUE_ALERT_TOPIC_ARN,
                value=topic.topic_arn,
                description="SNS Topic ARN for queue alerts integration with Watch Tower",
            ),
        ]
