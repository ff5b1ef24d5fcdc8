import os

from aws_cdk import (
    Aws,
    CfnOutput,
    Duration,
    RemovalPolicy,
    Stack,
    aws_cloudwatch as cloudwatch,
    aws_events as events,
    aws_events_targets as events_targets,
    aws_iam as iam,
    aws_lambda as _lambda,
    aws_logs as logs,
    aws_secretsmanager as secretsmanager,
)
from constructs import Construct

from stacks.identity_catalog import DEFAULT_SHARED_CREDENTIAL_SECRET_NAME
from stacks.lambda_source import LAMBDA_DIR, load_pattern, normalize_contact_prefix


def _event_pattern(doc: dict) -> events.EventPattern:
    return events.EventPattern(
        source=doc.get("source"),
        detail_type=doc.get("detail-type"),
        detail=doc.get("detail"),
    )


class IdentityNotificationStack(Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        shared_credential_secret_name: str | None = None,
        contact_parameter_prefix: str | None = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        stage_name = os.getenv("STAGE", "prod")
        data_retention_mode = os.getenv("DATA_RETENTION_MODE", "destroy").strip().lower()
        if data_retention_mode not in {"destroy", "retain"}:
            raise ValueError(
                "DATA_RETENTION_MODE must be 'destroy' or 'retain' (case-insensitive)"
            )
        stateful_removal_policy = (
            RemovalPolicy.DESTROY
            if data_retention_mode == "destroy"
            else RemovalPolicy.RETAIN
        )
        schema_version = "2026-10-19"

        secret_name = (
            shared_credential_secret_name
            or os.getenv("SHARED_CREDENTIAL_SECRET_NAME")
            or DEFAULT_SHARED_CREDENTIAL_SECRET_NAME
        ).strip()
        if not secret_name:
            raise ValueError("SHARED_CREDENTIAL_SECRET_NAME must not be empty")
        contact_prefix = normalize_contact_prefix(
            contact_parameter_prefix or os.getenv("CONTACT_PARAMETER_PREFIX")
        )
        include_credential = (
            os.getenv("NOTIFY_INCLUDE_CREDENTIAL", "true").strip().lower()
        )
        if include_credential not in {"true", "false"}:
            raise ValueError("NOTIFY_INCLUDE_CREDENTIAL must be 'true' or 'false'")

        name_prefix = f"{construct_id}-{stage_name}"

        # Provisioned elsewhere (IdentityProvisioningStack or by hand); read-only here.
        shared_credential = secretsmanager.Secret.from_secret_name_v2(
            self,
            "SharedCredentialSecret",
            secret_name,
        )

        notifier_fn = _lambda.Function(
            self,
            "UserCreatedNotifier",
            runtime=_lambda.Runtime.PYTHON_3_12,
            handler="user_created_notifier.handler",
            code=_lambda.Code.from_asset(str(LAMBDA_DIR)),
            timeout=Duration.seconds(30),
            environment={
                "CONTACT_PARAMETER_PREFIX": contact_prefix,
                "SHARED_CREDENTIAL_SECRET_ID": secret_name,
                "NOTIFY_INCLUDE_CREDENTIAL": include_credential,
                "LOOKUP_TIMEOUT_SECONDS": "20",
                "SCHEMA_VERSION": schema_version,
            },
            description="Reports contact address and one-time credential for newly created IAM users.",
        )
        notifier_fn.add_to_role_policy(
            iam.PolicyStatement(
                actions=["ssm:GetParameter"],
                resources=[
                    f"arn:aws:ssm:{Aws.REGION}:{Aws.ACCOUNT_ID}:parameter{contact_prefix}/*"
                ],
            )
        )
        shared_credential.grant_read(notifier_fn)

        # IAM is global; its CloudTrail management events reach EventBridge in us-east-1.
        rule = events.Rule(
            self,
            "IdentityCreationRule",
            rule_name=f"{name_prefix}-identity-created",
            description="Rule to detect IAM user creation events",
            event_pattern=_event_pattern(load_pattern()),
        )
        # The target adds the Lambda permission: events.amazonaws.com, scoped to this rule.
        rule.add_target(events_targets.LambdaFunction(notifier_fn))

        log_group = logs.LogGroup(
            self,
            "UserCreatedNotifierLogGroup",
            log_group_name=f"/aws/lambda/{notifier_fn.function_name}",
            retention=logs.RetentionDays.ONE_WEEK,
            removal_policy=stateful_removal_policy,
        )

        logs.MetricFilter(
            self,
            "NotificationFailureMetricFilter",
            log_group=log_group,
            metric_namespace="IdentityNotifier",
            metric_name="NotificationFailures",
            filter_pattern=logs.FilterPattern.string_value("$.status", "=", "failure"),
            metric_value="1",
        )

        cloudwatch.Alarm(
            self,
            "NotificationFailuresAlarm",
            metric=cloudwatch.Metric(
                namespace="IdentityNotifier",
                metric_name="NotificationFailures",
                statistic="Sum",
                period=Duration.minutes(5),
            ),
            threshold=1,
            evaluation_periods=1,
            datapoints_to_alarm=1,
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
        )

        CfnOutput(
            self,
            "NotifierFunctionName",
            value=notifier_fn.function_name,
        )

        CfnOutput(
            self,
            "NotifierLogGroupName",
            value=log_group.log_group_name,
        )

        CfnOutput(
            self,
            "IdentityCreationRuleArn",
            value=rule.rule_arn,
        )

        CfnOutput(
            self,
            "SharedCredentialSecretName",
            value=secret_name,
        )

        CfnOutput(
            self,
            "ContactParameterPrefix",
            value=contact_prefix,
        )

        CfnOutput(
            self,
            "SchemaVersion",
            value=schema_version,
        )
