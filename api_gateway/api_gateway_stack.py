from typing import List, Optional

from aws_cdk import (
    Arn,
    ArnComponents,
    Duration,
    Stack,
    aws_apigateway as apigw,
    aws_certificatemanager as acm,
    aws_cloudwatch as cloudwatch,
    aws_lambda as _lambda,
    aws_route53 as route53,
    aws_route53_targets as route53_targets,
)
from constructs import Construct

import common.constants as constants
from common import parameters
from common.alarms import AlarmDefinition, build_alarms, build_alert_topic
from common.environment_config import (
    CreateDomain,
    DomainConfig,
    FunctionReference,
    ImportDomain,
    ThrottlingConfig,
)
from common.parameters import ParameterEntry, export_parameters
from common.stack_context import StackContext


class ApiGatewayStack(Stack):
    """Public REST entry point forwarding webhook calls to an existing Lambda."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        environment: str,
        domain: DomainConfig,
        webhook_function: FunctionReference,
        base_path: Optional[str] = None,
        throttling: Optional[ThrottlingConfig] = None,
        project_name: str = constants.PROJECT_NAME,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.context = StackContext(scope=self, env=environment, project=project_name)
        self.domain = domain
        self.stage_name = environment
        throttling = throttling or ThrottlingConfig()

        # Referenced by name only, the function's lifecycle is owned elsewhere
        self.webhook_function = _lambda.Function.from_function_name(
            self, "WebhookLambda", webhook_function.function_name
        )

        self.rest_api = self._build_rest_api(throttling)
        self._build_listener(self.rest_api, self.webhook_function)

        self.custom_domain = self._build_custom_domain(domain)
        self.base_path_mapping = apigw.BasePathMapping(
            self,
            "BasePathMapping",
            domain_name=self.custom_domain,
            rest_api=self.rest_api,
            base_path=base_path or environment,
            stage=self.rest_api.deployment_stage,
        )
        self.dns_record = self._build_dns_record(domain, self.custom_domain)

        # Monitoring
        self.api_alert_topic = build_alert_topic(
            self.context, constants.API_ALERTS, display_name="API Gateway Alerts"
        )
        self.alarms = build_alarms(
            self.context, self._alarm_definitions(), self.api_alert_topic
        )

        self.source_arn = Arn.format(
            ArnComponents(
                service="execute-api",
                resource=self.rest_api.rest_api_id,
                resource_name="*",
            ),
            self,
        )

        # SSM exports
        self.parameters = export_parameters(self.context, self._parameter_entries())

    # Resource creation

    def _build_rest_api(self, throttling: ThrottlingConfig) -> apigw.RestApi:
        return apigw.RestApi(
            self,
            "RestApi",
            rest_api_name=self.context.build_resource_name("api"),
            description=f"Telegram bot API Gateway for {self.context.env}",
            endpoint_configuration=apigw.EndpointConfiguration(
                types=[apigw.EndpointType.REGIONAL]
            ),
            disable_execute_api_endpoint=True,
            deploy_options=apigw.StageOptions(
                stage_name=self.stage_name,
                throttling_rate_limit=throttling.rate_limit,
                throttling_burst_limit=throttling.burst_limit,
                logging_level=apigw.MethodLoggingLevel.INFO,
                data_trace_enabled=False,
                metrics_enabled=True,
            ),
        )

    def _build_listener(
        self, rest_api: apigw.RestApi, function: _lambda.IFunction
    ) -> apigw.Method:
        """Expose ``POST /qlibin-assistant-listener`` as a Lambda proxy."""
        listener = rest_api.root.add_resource(constants.LISTENER_RESOURCE_PATH)
        integration = apigw.LambdaIntegration(
            function,
            proxy=True,
            timeout=Duration.seconds(constants.INTEGRATION_TIMEOUT_SECONDS),
        )
        return listener.add_method("POST", integration)

    def _build_custom_domain(self, domain: DomainConfig) -> apigw.IDomainName:
        binding = domain.binding
        if isinstance(binding, ImportDomain):
            return apigw.DomainName.from_domain_name_attributes(
                self,
                "CustomDomain",
                domain_name=domain.domain_name,
                domain_name_alias_target=binding.alias_target,
                domain_name_alias_hosted_zone_id=binding.alias_hosted_zone_id,
            )

        certificate = acm.Certificate.from_certificate_arn(
            self, "Certificate", binding.certificate_arn
        )
        return apigw.DomainName(
            self,
            "CustomDomain",
            domain_name=domain.domain_name,
            certificate=certificate,
            endpoint_type=apigw.EndpointType.REGIONAL,
            security_policy=apigw.SecurityPolicy.TLS_1_2,
        )

    def _build_dns_record(
        self, domain: DomainConfig, custom_domain: apigw.IDomainName
    ) -> Optional[route53.ARecord]:
        """Alias the domain in Route 53, only for domains created here."""
        binding = domain.binding
        if not (isinstance(binding, CreateDomain) and binding.create_dns_record):
            return None

        hosted_zone = route53.HostedZone.from_hosted_zone_attributes(
            self,
            "HostedZone",
            hosted_zone_id=domain.hosted_zone_id,
            zone_name=domain.hosted_zone_name,
        )
        return route53.ARecord(
            self,
            "ApiAliasRecord",
            zone=hosted_zone,
            record_name=domain.domain_name,
            target=route53.RecordTarget.from_alias(
                route53_targets.ApiGatewayDomain(custom_domain)
            ),
        )

    def _alarm_definitions(self) -> List[AlarmDefinition]:
        return [
            AlarmDefinition(
                purpose="api-5xx-errors",
                description="API Gateway 5XX errors detected",
                metric=self.rest_api.metric_server_error(
                    period=Duration.minutes(5), statistic="Sum"
                ),
                threshold=constants.API_5XX_THRESHOLD,
                evaluation_periods=2,
                treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
            ),
            AlarmDefinition(
                purpose="api-latency",
                description="API Gateway latency exceeds threshold",
                metric=self.rest_api.metric_latency(
                    period=Duration.minutes(5), statistic="p95"
                ),
                threshold=constants.API_LATENCY_THRESHOLD_MS,
                evaluation_periods=3,
                treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
            ),
        ]

    def _parameter_entries(self) -> List[ParameterEntry]:
        return [
            ParameterEntry(
                id="RestApiId",
                category=parameters.REST_API_ID,
                value=self.rest_api.rest_api_id,
                description="REST API ID for API Gateway",
            ),
            ParameterEntry(
                id="RestApiUrl",
                category=parameters.REST_API_URL,
                value=self.rest_api.url,
                description="REST API URL (execute-api endpoint)",
            ),
            ParameterEntry(
                id="DomainNameParam",
                category=parameters.DOMAIN_NAME,
                value=self.domain.domain_name,
                description="Custom domain name for API Gateway",
            ),
            ParameterEntry(
                id="StageName",
                category=parameters.STAGE_NAME,
                value=self.stage_name,
                description="API Gateway stage name",
            ),
            ParameterEntry(
                id="SourceArn",
                category=parameters.SOURCE_ARN,
                value=self.source_arn,
                description="API Gateway source ARN for Lambda resource-based permissions",
            ),
        ]
