"""Typed deployment configuration resolved from the CDK context registry.

Each entry of the ``environments`` context map is converted into an immutable
:class:`EnvironmentConfig`. Optional domain settings are folded into a single
:class:`DomainConfig` whose ``binding`` decides, once, whether the custom
domain is created or imported.
"""
from typing import Any, Mapping, Optional, Union

from attrs import define, field
from attrs.validators import ge, instance_of, le, optional
from aws_lambda_powertools.logging.logger import Logger

import common.constants as constants

logger: Logger = Logger(service="tg-assistant-infra", child=True)


class ConfigurationError(ValueError):
    """Raised when the deployment configuration cannot be resolved."""


def _section(raw: Optional[Mapping[str, Any]], key: str) -> Mapping[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise TypeError(f"'{key}' must be a mapping, got {type(raw).__name__}")
    return raw


def _positive_int(max_value: Optional[int] = None):
    validators = [instance_of(int), ge(1)]
    if max_value is not None:
        validators.append(le(max_value))
    return optional(validators)


@define(slots=True, frozen=True)
class QueueConfig:
    visibility_timeout_seconds: Optional[int] = field(
        default=None,
        validator=_positive_int(constants.MAX_VISIBILITY_TIMEOUT_SECONDS),
    )
    max_receive_count: Optional[int] = field(
        default=None, validator=_positive_int()
    )

    @classmethod
    def from_context(
        cls, raw: Optional[Mapping[str, Any]], key: str = "queue"
    ) -> "QueueConfig":
        raw = _section(raw, key)
        return cls(
            visibility_timeout_seconds=raw.get("visibilityTimeoutSeconds"),
            max_receive_count=raw.get("maxReceiveCount"),
        )


@define(slots=True, frozen=True)
class QueueSettings:
    """Queue overrides with defaults applied."""

    visibility_timeout_seconds: int
    max_receive_count: int

    @classmethod
    def resolve(cls, config: QueueConfig, default_visibility: int) -> "QueueSettings":
        visibility = config.visibility_timeout_seconds
        max_receive = config.max_receive_count
        return cls(
            visibility_timeout_seconds=(
                default_visibility if visibility is None else visibility
            ),
            max_receive_count=(
                constants.DEFAULT_MAX_RECEIVE_COUNT
                if max_receive is None
                else max_receive
            ),
        )


@define(slots=True, frozen=True)
class ThrottlingConfig:
    rate_limit: int = field(
        default=constants.DEFAULT_THROTTLING_RATE_LIMIT, validator=[instance_of(int), ge(1)]
    )
    burst_limit: int = field(
        default=constants.DEFAULT_THROTTLING_BURST_LIMIT, validator=[instance_of(int), ge(1)]
    )

    @classmethod
    def from_context(cls, raw: Optional[Mapping[str, Any]]) -> "ThrottlingConfig":
        raw = _section(raw, "throttling")
        return cls(
            rate_limit=raw.get("rateLimit", constants.DEFAULT_THROTTLING_RATE_LIMIT),
            burst_limit=raw.get("burstLimit", constants.DEFAULT_THROTTLING_BURST_LIMIT),
        )


# ---------- domain binding ----------
@define(slots=True, frozen=True)
class CreateDomain:
    """Provision a new custom domain bound to an ACM certificate."""

    certificate_arn: str = field(validator=instance_of(str))
    create_dns_record: bool = field(default=True, validator=instance_of(bool))


@define(slots=True, frozen=True)
class ImportDomain:
    """Bind to a custom domain that already exists outside this app."""

    alias_target: str = field(validator=instance_of(str))
    alias_hosted_zone_id: str = field(validator=instance_of(str))


DomainBinding = Union[CreateDomain, ImportDomain]


@define(slots=True, frozen=True)
class DomainConfig:
    domain_name: str
    hosted_zone_id: str
    hosted_zone_name: str
    binding: DomainBinding

    @classmethod
    def from_context(cls, raw: Mapping[str, Any]) -> Optional["DomainConfig"]:
        """Return the domain config, or ``None`` when it is incomplete.

        An import is selected when both regional alias attributes are present,
        otherwise a certificate ARN is required to create the domain.
        """
        domain_name = raw.get("domainName")
        hosted_zone_id = raw.get("hostedZoneId")
        hosted_zone_name = raw.get("hostedZoneName")
        if not (domain_name and hosted_zone_id and hosted_zone_name):
            return None

        alias_target = raw.get("existingDomainRegionalDomainName")
        alias_zone = raw.get("existingDomainRegionalHostedZoneId")
        certificate_arn = raw.get("certificateArn")
        binding: DomainBinding
        if alias_target and alias_zone:
            binding = ImportDomain(
                alias_target=alias_target, alias_hosted_zone_id=alias_zone
            )
        elif certificate_arn:
            binding = CreateDomain(
                certificate_arn=certificate_arn,
                create_dns_record=raw.get("createDnsRecord", False),
            )
        else:
            return None

        return cls(
            domain_name=domain_name,
            hosted_zone_id=hosted_zone_id,
            hosted_zone_name=hosted_zone_name,
            binding=binding,
        )


@define(slots=True, frozen=True)
class FunctionReference:
    """A Lambda function owned elsewhere and referenced only by its name."""

    function_name: str = field(validator=instance_of(str))

    @classmethod
    def webhook(cls, env: str) -> "FunctionReference":
        return cls(function_name=constants.WEBHOOK_FUNCTION_NAME.format(env=env))


@define(slots=True, frozen=True, kw_only=True)
class EnvironmentConfig:
    account_id: str = field(validator=instance_of(str))
    region: str = field(validator=instance_of(str))
    environment_name: str = field(
        validator=instance_of(str),
        metadata={"description": "Deployment environment (dev, staging, prod)"},
    )
    tags: Mapping[str, str] = field(factory=dict)
    order_queue: QueueConfig = field(factory=QueueConfig)
    result_queue: QueueConfig = field(factory=QueueConfig)
    throttling: ThrottlingConfig = field(factory=ThrottlingConfig)
    domain: Optional[DomainConfig] = None

    @property
    def order_queue_settings(self) -> QueueSettings:
        return QueueSettings.resolve(
            self.order_queue, constants.ORDER_VISIBILITY_TIMEOUT_SECONDS
        )

    @property
    def result_queue_settings(self) -> QueueSettings:
        return QueueSettings.resolve(
            self.result_queue, constants.RESULT_VISIBILITY_TIMEOUT_SECONDS
        )

    @classmethod
    def from_context(cls, name: str, raw: Mapping[str, Any]) -> "EnvironmentConfig":
        missing = [key for key in ("account", "region", "envName") if not raw.get(key)]
        if missing:
            raise ConfigurationError(
                f"Environment '{name}' is missing required keys: {', '.join(missing)}"
            )
        try:
            return cls(
                account_id=str(raw["account"]),
                region=raw["region"],
                environment_name=raw["envName"],
                tags=dict(raw.get("tags") or {}),
                order_queue=QueueConfig.from_context(raw.get("orderQueue"), "orderQueue"),
                result_queue=QueueConfig.from_context(raw.get("resultQueue"), "resultQueue"),
                throttling=ThrottlingConfig.from_context(raw.get("throttling")),
                domain=DomainConfig.from_context(raw),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid configuration for environment '{name}': {e}"
            ) from e


def resolve_environment_name(
    environment_name: Optional[str], default_environment: Optional[str]
) -> str:
    if environment_name is not None:
        return environment_name
    if default_environment is not None:
        return default_environment
    return constants.DEFAULT_ENV


def load_environment_config(
    environments: Optional[Mapping[str, Mapping[str, Any]]],
    environment_name: Optional[str] = None,
    default_environment: Optional[str] = None,
) -> EnvironmentConfig:
    """Pick the named entry from the registry and convert it."""
    if not environments:
        raise ConfigurationError(
            "CDK context missing. Ensure cdk.json has context.environments configured."
        )
    resolved = resolve_environment_name(environment_name, default_environment)
    raw = environments.get(resolved)
    if raw is None:
        raise ConfigurationError(
            f"Unknown environment '{resolved}'. Available: {', '.join(environments)}"
        )
    logger.info(
        "Resolved deployment environment",
        extra={"environment": resolved, "explicit": environment_name is not None},
    )
    return EnvironmentConfig.from_context(resolved, raw)


def verify_account(config: EnvironmentConfig, provided_account_id: Optional[str]) -> None:
    """Fail fast when the caller's account does not match the configuration."""
    if not provided_account_id:
        logger.info(
            "Account check skipped, no account id provided",
            extra={"environment": config.environment_name},
        )
        return
    if provided_account_id != config.account_id:
        raise ConfigurationError(
            f"AWS account mismatch: AWS_ACCOUNT_ID={provided_account_id} does not "
            f"match CDK context account={config.account_id} for environment "
            f"'{config.environment_name}'."
        )
    logger.info(
        "Account check passed",
        extra={"environment": config.environment_name, "account": config.account_id},
    )
