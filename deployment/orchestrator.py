"""Resolve the target environment and assemble its stacks.

``app.py`` reads the CDK context and the ``AWS_ACCOUNT_ID`` and ``LOG_LEVEL``
variables and hands them to :func:`provision`; nothing below reads process
state on its own.
"""
from typing import Any, Mapping, Optional

import aws_cdk as cdk
from attrs import define
from aws_lambda_powertools.logging.logger import Logger

import common.constants as constants
from api_gateway.api_gateway_stack import ApiGatewayStack
from common.environment_config import (
    EnvironmentConfig,
    FunctionReference,
    load_environment_config,
    verify_account,
)
from messaging.dual_queue_message_stack import DualQueueMessageStack

logger: Logger = Logger(service="tg-assistant-infra")


@define(slots=True, frozen=True)
class Deployment:
    config: EnvironmentConfig
    messaging_stack: DualQueueMessageStack
    api_stack: Optional[ApiGatewayStack] = None


def messaging_stack_id(env: str) -> str:
    return f"{constants.MESSAGING_STACK_PREFIX}-{env}"


def api_gateway_stack_id(env: str) -> str:
    return f"{constants.API_GATEWAY_STACK_PREFIX}-{env}"


def resolve_config(
    environments: Optional[Mapping[str, Mapping[str, Any]]],
    environment_name: Optional[str] = None,
    default_environment: Optional[str] = None,
    provided_account_id: Optional[str] = None,
) -> EnvironmentConfig:
    config = load_environment_config(environments, environment_name, default_environment)
    verify_account(config, provided_account_id)
    return config


def apply_tags(stack: cdk.Stack, config: EnvironmentConfig) -> None:
    tags = cdk.Tags.of(stack)
    for key, value in sorted(config.tags.items()):
        tags.add(key, value)
    tags.add(constants.APP_TAG_KEY, constants.APP_TAG_VALUE)
    tags.add(constants.ENV_TAG_KEY, config.environment_name)


def build_stacks(app: cdk.App, config: EnvironmentConfig) -> Deployment:
    env_name = config.environment_name
    aws_env = cdk.Environment(account=config.account_id, region=config.region)

    messaging_stack = DualQueueMessageStack(
        app,
        messaging_stack_id(env_name),
        env=aws_env,
        description=f"Dual SQS queues for TG Assistant ({env_name})",
        environment=env_name,
        order_settings=config.order_queue_settings,
        result_settings=config.result_queue_settings,
    )
    apply_tags(messaging_stack, config)
    logger.info("Messaging stack defined", extra={"stack": messaging_stack.stack_name})

    if config.domain is None:
        logger.info(
            "Domain configuration incomplete, skipping API Gateway stack",
            extra={"environment": env_name},
        )
        return Deployment(config=config, messaging_stack=messaging_stack)

    api_stack = ApiGatewayStack(
        app,
        api_gateway_stack_id(env_name),
        env=aws_env,
        description=f"API Gateway for TG Assistant ({env_name})",
        environment=env_name,
        domain=config.domain,
        webhook_function=FunctionReference.webhook(env_name),
        base_path=env_name,
        throttling=config.throttling,
    )
    # Deploy ordering only, the API holds no references into the queue stack
    api_stack.add_dependency(messaging_stack)
    apply_tags(api_stack, config)
    logger.info(
        "API Gateway stack defined",
        extra={
            "stack": api_stack.stack_name,
            "domain_binding": type(config.domain.binding).__name__,
        },
    )
    return Deployment(config=config, messaging_stack=messaging_stack, api_stack=api_stack)


def provision(
    app: cdk.App,
    environments: Optional[Mapping[str, Mapping[str, Any]]],
    environment_name: Optional[str] = None,
    default_environment: Optional[str] = None,
    provided_account_id: Optional[str] = None,
    log_level: Optional[str] = None,
) -> Deployment:
    """Validate the configuration, then define every stack for it on ``app``."""
    if log_level:
        logger.setLevel(log_level.upper())
    config = resolve_config(
        environments, environment_name, default_environment, provided_account_id
    )
    return build_stacks(app, config)
