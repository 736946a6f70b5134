import json
import re
from typing import Any, Mapping

import pytest
from aws_cdk.assertions import Match, Template
from stack_test_helpers import (
    AlarmTestCase,
    QueueTestCase,
    RolePolicyTestCase,
    as_list,
    build_messaging_template,
    find_resources_by_type,
    get_single_resource_id,
    json_template,
    parameter_names,
    resource_properties,
    role_statements,
    template,
)
from governance_checks import assert_no_wildcard_resources, assert_sqs_encrypted_with_key

from common.environment_config import QueueConfig

# ----------------------------- Resource count smoke test ------------------------

RESOURCES = [
    ("AWS::CloudWatch::Alarm", 4),
    ("AWS::IAM::Policy", 0),
    ("AWS::IAM::Role", 3),
    ("AWS::KMS::Key", 1),
    ("AWS::SNS::Topic", 1),
    ("AWS::SQS::Queue", 4),
    ("AWS::SSM::Parameter", 9),
]


@pytest.mark.parametrize("resource_type,expected", RESOURCES)
def test_resource_count(template: Template, resource_type: str, expected: int):
    template.resource_count_is(resource_type, expected)


# -------------------- KMS tests ----------------------------


def test_encryption_key_rotates(template: Template):
    template.has_resource_properties(
        "AWS::KMS::Key",
        {
            "EnableKeyRotation": True,
            "Description": "tg-assistant-dev SQS encryption key",
        },
    )


def test_queues_and_topic_use_environment_key(template: Template):
    assert_sqs_encrypted_with_key(template)
    key_id = get_single_resource_id(find_resources_by_type(template, "AWS::KMS::Key"))
    template.has_resource_properties(
        "AWS::SNS::Topic", {"KmsMasterKeyId": {"Fn::GetAtt": [key_id, "Arn"]}}
    )


# -------------------- SQS tests ----------------------------

QUEUE_TEST_CASES = (
    QueueTestCase(
        id="order_dlq",
        queue_name="tg-assistant-dev-order-dlq",
        retention_seconds=604800,
    ),
    QueueTestCase(
        id="result_dlq",
        queue_name="tg-assistant-dev-result-dlq",
        retention_seconds=604800,
    ),
    QueueTestCase(
        id="order_queue",
        queue_name="tg-assistant-dev-order",
        retention_seconds=1209600,
        visibility_timeout=300,
        dlq_id="OrderDLQ",
        max_receive_count=3,
    ),
    QueueTestCase(
        id="result_queue",
        queue_name="tg-assistant-dev-result",
        retention_seconds=604800,
        visibility_timeout=180,
        dlq_id="ResultDLQ",
        max_receive_count=3,
    ),
)


@pytest.mark.parametrize("case", QUEUE_TEST_CASES, ids=lambda test: test.id)
def test_queue_properties(template: Template, case: QueueTestCase):
    expected: dict = {
        "QueueName": case.queue_name,
        "MessageRetentionPeriod": case.retention_seconds,
        "KmsMasterKeyId": Match.any_value(),
    }
    if case.dlq_id:
        expected.update(
            {
                "VisibilityTimeout": case.visibility_timeout,
                "ReceiveMessageWaitTimeSeconds": 6,
                "RedrivePolicy": {
                    "deadLetterTargetArn": {
                        "Fn::GetAtt": [
                            Match.string_like_regexp(rf"^{case.dlq_id}.*"),
                            "Arn",
                        ]
                    },
                    "maxReceiveCount": case.max_receive_count,
                },
            }
        )
    template.has_resource_properties("AWS::SQS::Queue", expected)


def test_dead_letter_queues_are_terminal(template: Template):
    dlqs = find_resources_by_type(
        template,
        "AWS::SQS::Queue",
        props={"Properties": {"QueueName": Match.string_like_regexp(r".*-dlq$")}},
    )
    assert len(dlqs) == 2
    for dlq in dlqs.values():
        assert "RedrivePolicy" not in dlq["Properties"]


def test_queues_depend_on_their_dead_letter_queue(json_template: Mapping[str, Any]):
    resources = json_template["Resources"]
    for logical_id, resource in resources.items():
        if resource["Type"] != "AWS::SQS::Queue":
            continue
        redrive = resource["Properties"].get("RedrivePolicy")
        if redrive is None:
            continue
        dlq_id = redrive["deadLetterTargetArn"]["Fn::GetAtt"][0]
        assert resources[dlq_id]["Type"] == "AWS::SQS::Queue"
        assert resources[dlq_id]["Properties"]["QueueName"].endswith("-dlq")


@pytest.mark.parametrize(
    "order_queue,result_queue,expected_order,expected_result",
    [
        (QueueConfig(), QueueConfig(), 3, 3),
        (QueueConfig(max_receive_count=5), QueueConfig(), 5, 3),
        (QueueConfig(), QueueConfig(max_receive_count=1), 3, 1),
        (QueueConfig(max_receive_count=7), QueueConfig(max_receive_count=2), 7, 2),
    ],
)
def test_max_receive_count_override(
    order_queue: QueueConfig,
    result_queue: QueueConfig,
    expected_order: int,
    expected_result: int,
):
    template = build_messaging_template(order_queue=order_queue, result_queue=result_queue)
    for queue_name, expected in (
        ("tg-assistant-dev-order", expected_order),
        ("tg-assistant-dev-result", expected_result),
    ):
        template.has_resource_properties(
            "AWS::SQS::Queue",
            {
                "QueueName": queue_name,
                "RedrivePolicy": Match.object_like({"maxReceiveCount": expected}),
            },
        )


def test_visibility_timeout_override():
    template = build_messaging_template(
        order_queue=QueueConfig(visibility_timeout_seconds=600),
        result_queue=QueueConfig(visibility_timeout_seconds=90),
    )
    template.has_resource_properties(
        "AWS::SQS::Queue", {"QueueName": "tg-assistant-dev-order", "VisibilityTimeout": 600}
    )
    template.has_resource_properties(
        "AWS::SQS::Queue", {"QueueName": "tg-assistant-dev-result", "VisibilityTimeout": 90}
    )


# -------------------- IAM tests ----------------------------

ROLE_TEST_CASES = (
    RolePolicyTestCase(
        id="webhook",
        role_id="WebhookLambdaRole",
        grants={
            "OrderQueue": ["sqs:SendMessage", "sqs:GetQueueAttributes", "sqs:GetQueueUrl"],
            "QueueEncryptionKey": ["kms:Decrypt", "kms:GenerateDataKey"],
        },
    ),
    RolePolicyTestCase(
        id="worker",
        role_id="WorkerLambdaRole",
        grants={
            "OrderQueue": [
                "sqs:ReceiveMessage",
                "sqs:DeleteMessage",
                "sqs:ChangeMessageVisibility",
                "sqs:GetQueueAttributes",
            ],
            "ResultQueue": ["sqs:SendMessage", "sqs:GetQueueAttributes"],
            "QueueEncryptionKey": ["kms:Decrypt", "kms:GenerateDataKey"],
        },
    ),
    RolePolicyTestCase(
        id="feedback",
        role_id="FeedbackLambdaRole",
        grants={
            "ResultQueue": [
                "sqs:ReceiveMessage",
                "sqs:DeleteMessage",
                "sqs:ChangeMessageVisibility",
                "sqs:GetQueueAttributes",
            ],
            "OrderQueue": ["sqs:SendMessage", "sqs:GetQueueAttributes"],
            "QueueEncryptionKey": ["kms:Decrypt", "kms:GenerateDataKey"],
        },
    ),
)


@pytest.mark.parametrize("case", ROLE_TEST_CASES, ids=lambda test: test.id)
def test_role_grants_match_least_privilege_table(
    template: Template, case: RolePolicyTestCase
):
    granted = {}
    for statement in role_statements(template, case.role_id):
        assert statement["Effect"] == "Allow"
        for resource in as_list(statement["Resource"]):
            logical_id = resource["Fn::GetAtt"][0]
            prefix = next(p for p in case.grants if re.match(rf"^{p}[0-9A-F]{{8}}$", logical_id))
            granted.setdefault(prefix, set()).update(as_list(statement["Action"]))

    assert granted == {prefix: set(actions) for prefix, actions in case.grants.items()}
    assert_no_wildcard_resources(template, case.role_id, case.grants.keys())


@pytest.mark.parametrize("case", ROLE_TEST_CASES, ids=lambda test: test.id)
def test_role_trust_and_baseline_policy(template: Template, case: RolePolicyTestCase):
    template.has_resource_properties(
        "AWS::IAM::Role",
        {
            "RoleName": f"tg-assistant-dev-{case.id}-role",
            "AssumeRolePolicyDocument": Match.object_like(
                {
                    "Statement": [
                        Match.object_like(
                            {
                                "Action": "sts:AssumeRole",
                                "Principal": {"Service": "lambda.amazonaws.com"},
                            }
                        )
                    ]
                }
            ),
            "ManagedPolicyArns": [
                {
                    "Fn::Join": [
                        "",
                        Match.array_with(
                            [
                                Match.string_like_regexp(
                                    r".*service-role/AWSLambdaBasicExecutionRole$"
                                )
                            ]
                        ),
                    ]
                }
            ],
        },
    )


def test_producer_send_is_scoped_to_account(template: Template):
    statements = role_statements(template, "WebhookLambdaRole")
    send = next(s for s in statements if "sqs:SendMessage" in as_list(s["Action"]))
    assert send["Condition"] == {
        "StringEquals": {"aws:SourceAccount": "123456789012"}
    }


# -------------------- Monitoring tests ----------------------------

ALARM_TEST_CASES = (
    AlarmTestCase(
        id="order_age",
        alarm_name="tg-assistant-dev-order-message-age",
        threshold=900,
        evaluation_periods=2,
        extra_props={"MetricName": "ApproximateAgeOfOldestMessage", "Period": 300},
    ),
    AlarmTestCase(
        id="result_age",
        alarm_name="tg-assistant-dev-result-message-age",
        threshold=600,
        evaluation_periods=2,
        extra_props={"MetricName": "ApproximateAgeOfOldestMessage", "Period": 180},
    ),
    AlarmTestCase(
        id="order_dlq",
        alarm_name="tg-assistant-dev-order-dlq-messages",
        threshold=1,
        evaluation_periods=1,
        extra_props={
            "MetricName": "ApproximateNumberOfMessagesVisible",
            "TreatMissingData": "notBreaching",
        },
    ),
    AlarmTestCase(
        id="result_dlq",
        alarm_name="tg-assistant-dev-result-dlq-messages",
        threshold=1,
        evaluation_periods=1,
        extra_props={"MetricName": "ApproximateNumberOfMessagesVisible"},
    ),
)


@pytest.mark.parametrize("case", ALARM_TEST_CASES, ids=lambda test: test.id)
def test_alarm_properties(template: Template, case: AlarmTestCase):
    topic_id = get_single_resource_id(find_resources_by_type(template, "AWS::SNS::Topic"))
    template.has_resource_properties(
        "AWS::CloudWatch::Alarm",
        {
            "AlarmName": case.alarm_name,
            "Namespace": "AWS/SQS",
            "Threshold": case.threshold,
            "EvaluationPeriods": case.evaluation_periods,
            "ComparisonOperator": "GreaterThanOrEqualToThreshold",
            "AlarmActions": [{"Ref": topic_id}],
            "OKActions": [{"Ref": topic_id}],
            **case.extra_props,
        },
    )


def test_only_order_dlq_alarm_ignores_missing_data(template: Template):
    treat_missing = {
        props["AlarmName"]: props.get("TreatMissingData")
        for props in resource_properties(template, "AWS::CloudWatch::Alarm")
    }
    assert treat_missing == {
        "tg-assistant-dev-order-message-age": None,
        "tg-assistant-dev-result-message-age": None,
        "tg-assistant-dev-order-dlq-messages": "notBreaching",
        "tg-assistant-dev-result-dlq-messages": None,
    }


def test_alert_topic_properties(template: Template):
    template.has_resource_properties(
        "AWS::SNS::Topic",
        {
            "TopicName": "tg-assistant-dev-queue-alerts",
            "DisplayName": "SQS Alerts for Watch Tower",
        },
    )


# -------------------- SSM parameter tests ----------------------------

MESSAGING_PARAMETERS = {
    "/automation/dev/queues/order/url",
    "/automation/dev/queues/order/arn",
    "/automation/dev/queues/result/url",
    "/automation/dev/queues/result/arn",
    "/automation/dev/queues/config",
    "/automation/dev/roles/webhook/arn",
    "/automation/dev/roles/worker/arn",
    "/automation/dev/roles/feedback/arn",
    "/automation/dev/monitoring/queue-alerts/topic-arn",
}


def test_parameter_paths(template: Template):
    names = parameter_names(template)
    assert len(names) == len(set(names))
    assert set(names) == MESSAGING_PARAMETERS


def test_queue_config_parameter():
    template = build_messaging_template(order_queue=QueueConfig(max_receive_count=5))
    config = next(
        props
        for props in resource_properties(template, "AWS::SSM::Parameter")
        if props["Name"] == "/automation/dev/queues/config"
    )
    assert json.loads(config["Value"]) == {
        "orderQueue": {"visibilityTimeout": 300, "maxReceiveCount": 5},
        "resultQueue": {"visibilityTimeout": 180, "maxReceiveCount": 3},
    }


def test_topic_parameter_references_alert_topic(template: Template):
    topic_id = get_single_resource_id(find_resources_by_type(template, "AWS::SNS::Topic"))
    template.has_resource_properties(
        "AWS::SSM::Parameter",
        {
            "Name": "/automation/dev/monitoring/queue-alerts/topic-arn",
            "Type": "String",
            "Value": {"Ref": topic_id},
        },
    )


# -------------------- Naming and determinism ----------------------------

NAMED_PROPERTIES = [
    ("AWS::SQS::Queue", "QueueName"),
    ("AWS::IAM::Role", "RoleName"),
    ("AWS::SNS::Topic", "TopicName"),
    ("AWS::CloudWatch::Alarm", "AlarmName"),
]


@pytest.mark.parametrize("env_name", ["dev", "staging", "prod"])
def test_resource_names_follow_convention(env_name: str):
    template = build_messaging_template(env_name=env_name, project_name="proj")
    pattern = re.compile(rf"^proj-{env_name}-[a-z0-9]+(-[a-z0-9]+)*$")
    for resource_type, name_property in NAMED_PROPERTIES:
        for props in resource_properties(template, resource_type):
            assert pattern.match(props[name_property]), props[name_property]


def test_dev_scenario_queue_names():
    template = build_messaging_template(env_name="dev", project_name="proj")
    queue_names = {props["QueueName"] for props in resource_properties(template, "AWS::SQS::Queue")}
    assert queue_names == {
        "proj-dev-order",
        "proj-dev-order-dlq",
        "proj-dev-result",
        "proj-dev-result-dlq",
    }


def test_template_is_deterministic():
    first = build_messaging_template(order_queue=QueueConfig(visibility_timeout_seconds=420))
    second = build_messaging_template(order_queue=QueueConfig(visibility_timeout_seconds=420))
    assert json.dumps(first.to_json(), sort_keys=True) == json.dumps(
        second.to_json(), sort_keys=True
    )
