import os
from typing import Optional

from aws_cdk import (
    Stack,
    Duration,
    RemovalPolicy,
    aws_chatbot as chatbot,
    aws_cloudtrail as cloudtrail,
    aws_cloudwatch as cloudwatch,
    aws_cloudwatch_actions as cloudwatch_actions,
    aws_config as config,
    aws_events as events,
    aws_events_targets as targets,
    aws_iam as iam,
    aws_logs as logs,
    aws_s3 as s3,
    aws_sns as sns,
    cloudformation_include as cfn_inc,
    CfnOutput
)
from constructs import Construct

from account_hardening.conformance_packs import (
    DEFAULT_CONFORMANCE_PACK,
    require_template_file,
    resolve_template
)
from account_hardening.settings import (
    SLACK_CHANNEL_ID_VAR,
    SLACK_WORKSPACE_ID_VAR,
    MissingConfigurationError,
    SlackSettings
)

# Audit log retention: https://dev.classmethod.jp/articles/aws-baseline-setting-202206/
ONE_MONTH = Duration.days(30)
ONE_YEAR = Duration.days(365)
THREE_YEARS = Duration.days(365 * 3)

INSIGHTS_METRIC_NAMESPACE = "Hardening"
INSIGHTS_METRIC_NAME = "CloudTrailInsights"
INSIGHTS_FILTER_PATTERN = "{ ( $.eventType=AwsCloudTrailInsight ) }"

BUCKET_OWNER_FULL_CONTROL = {
    "StringEquals": {
        "s3:x-amz-acl": "bucket-owner-full-control"
    }
}


def _require_slack_settings(slack_settings: Optional[SlackSettings]) -> SlackSettings:
    if slack_settings is None:
        return SlackSettings.from_env()

    workspace_id = (slack_settings.workspace_id or "").strip()
    channel_id = (slack_settings.channel_id or "").strip()

    missing = []
    if not workspace_id:
        missing.append(SLACK_WORKSPACE_ID_VAR)
    if not channel_id:
        missing.append(SLACK_CHANNEL_ID_VAR)
    if missing:
        raise MissingConfigurationError(missing)
    return SlackSettings(workspace_id=workspace_id, channel_id=channel_id)


class AuditLoggingStack(Stack):
    """Audit-log bucket and a multi-region CloudTrail trail writing into it."""

    def __init__(self, scope: Construct, construct_id: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self._create_log_bucket()
        self._create_trail()
        self._create_audit_outputs()

    def _create_log_bucket(self):
        print("🪣 Setting up audit log bucket...")

        self.log_bucket = s3.Bucket(
            self, "Bucket",
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            encryption=s3.BucketEncryption.S3_MANAGED,
            removal_policy=RemovalPolicy.RETAIN,
            enforce_ssl=True,
            # Object Lock needs versioning
            versioned=True,
            object_lock_enabled=True,
            object_ownership=s3.ObjectOwnership.BUCKET_OWNER_ENFORCED,
            server_access_logs_prefix="access-logs/",
            lifecycle_rules=[
                s3.LifecycleRule(
                    id="AuditLogLifecycle",
                    transitions=[
                        s3.Transition(
                            storage_class=s3.StorageClass.INFREQUENT_ACCESS,
                            transition_after=ONE_MONTH
                        ),
                        s3.Transition(
                            storage_class=s3.StorageClass.GLACIER,
                            transition_after=ONE_YEAR
                        )
                    ],
                    expiration=THREE_YEARS,
                    enabled=True
                )
            ]
        )

    def _create_trail(self):
        print("📝 Setting up CloudTrail audit logging...")

        self.trail = cloudtrail.Trail(
            self, "CloudTrail",
            enable_file_validation=True,
            is_multi_region_trail=True,
            include_global_service_events=True,
            insight_types=[
                cloudtrail.InsightType.API_CALL_RATE,
                cloudtrail.InsightType.API_ERROR_RATE
            ],
            bucket=self.log_bucket,
            send_to_cloud_watch_logs=True,
            cloud_watch_logs_retention=logs.RetentionDays.ONE_WEEK
        )

    def _create_audit_outputs(self):
        CfnOutput(self, "AuditLogBucketName",
            value=self.log_bucket.bucket_name,
            description="S3 bucket holding CloudTrail and Config logs"
        )

        CfnOutput(self, "CloudTrailArn",
            value=self.trail.trail_arn,
            description="Multi-region CloudTrail trail"
        )


class InsightsAlertingStack(AuditLoggingStack):
    """Adds a CloudTrail Insights alarm that notifies Slack through AWS Chatbot.

    The Slack workspace must already be authorized for AWS Chatbot in the
    console; only the channel configuration is declared here.
    """

    def __init__(self, scope: Construct, construct_id: str,
                 slack_settings: Optional[SlackSettings] = None,
                 **kwargs) -> None:
        # Fail before any resource is declared
        slack_settings = _require_slack_settings(slack_settings)

        super().__init__(scope, construct_id, **kwargs)
        self.slack_settings = slack_settings

        self._create_insights_alarm()
        self._create_alerts_topic()
        self._create_slack_channel()
        self._create_alerting_outputs()

    def _create_insights_alarm(self):
        print("🚨 Setting up CloudTrail Insights alarm...")

        # https://dev.classmethod.jp/articles/cloudtrail-insights-unusual-activity-alert/
        self.metric_filter = self.trail.log_group.add_metric_filter(
            "MetricFilter",
            metric_namespace=INSIGHTS_METRIC_NAMESPACE,
            metric_name=INSIGHTS_METRIC_NAME,
            metric_value="1",
            filter_pattern=logs.FilterPattern.literal(INSIGHTS_FILTER_PATTERN)
        )

        self.alarm = cloudwatch.Alarm(
            self, "Alarm",
            alarm_name="CloudTrailInsightsAlarm",
            alarm_description="CloudTrail Insights Alarm",
            metric=self.metric_filter.metric(),
            threshold=1,
            comparison_operator=cloudwatch.ComparisonOperator.GREATER_THAN_OR_EQUAL_TO_THRESHOLD,
            evaluation_periods=5,
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING
        )

    def _create_alerts_topic(self):
        self.alerts_topic = sns.Topic(
            self, "SnsTopic",
            display_name="CloudTrail SNS Topic"
        )

        self.alarm.add_alarm_action(cloudwatch_actions.SnsAction(self.alerts_topic))

    def _create_slack_channel(self):
        print("💬 Setting up Slack notifications...")

        # https://dev.classmethod.jp/articles/aws-chatbot-slack-notification-cdk/
        self.chatbot_role = iam.Role(
            self, "ChatBotRole",
            assumed_by=iam.ServicePrincipal("chatbot.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("ReadOnlyAccess")
            ]
        )

        self.slack_channel = chatbot.SlackChannelConfiguration(
            self, "ChatBot",
            slack_channel_configuration_name="CloudTrailInsights",
            slack_workspace_id=self.slack_settings.workspace_id,
            slack_channel_id=self.slack_settings.channel_id,
            notification_topics=[self.alerts_topic],
            role=self.chatbot_role,
            guardrail_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("ReadOnlyAccess")
            ]
        )

    def _create_alerting_outputs(self):
        CfnOutput(self, "AlertsTopicArn",
            value=self.alerts_topic.topic_arn,
            description="SNS topic for CloudTrail Insights and Config compliance alerts"
        )


class HardeningStack(InsightsAlertingStack):
    """Full account baseline: audit logging, Slack alerting and AWS Config.

    Config and the conformance pack service both deliver into the audit log
    bucket, each restricted to ``AWSLogs/<account>/Config/*``.
    """

    def __init__(self, scope: Construct, construct_id: str,
                 conformance_pack: str = DEFAULT_CONFORMANCE_PACK,
                 conformance_pack_template: Optional[str] = None,
                 **kwargs) -> None:
        if conformance_pack_template is None:
            conformance_pack_template = resolve_template(conformance_pack)
        else:
            conformance_pack_template = require_template_file(conformance_pack_template)

        super().__init__(scope, construct_id, **kwargs)
        self.conformance_pack_template = conformance_pack_template

        self._create_config_recorder()
        self._create_conformance_pack_access()
        self._create_compliance_notifications()
        self._include_conformance_pack()
        self._create_config_outputs()

    @property
    def config_objects_arn(self) -> str:
        return self.log_bucket.arn_for_objects(f"AWSLogs/{self.account}/Config/*")

    def _allow_config_delivery(self, principal: iam.IPrincipal):
        self.log_bucket.add_to_resource_policy(
            iam.PolicyStatement(
                effect=iam.Effect.ALLOW,
                principals=[principal],
                actions=["s3:GetBucketAcl"],
                resources=[self.log_bucket.bucket_arn]
            )
        )
        self.log_bucket.add_to_resource_policy(
            iam.PolicyStatement(
                effect=iam.Effect.ALLOW,
                principals=[principal],
                actions=["s3:PutObject"],
                resources=[self.config_objects_arn],
                conditions=BUCKET_OWNER_FULL_CONTROL
            )
        )

    def _create_config_recorder(self):
        print("⚙️  Setting up Config compliance monitoring...")

        # https://github.com/aws/aws-cdk/issues/3492#issuecomment-617706845
        self.config_role = iam.Role(
            self, "ConfigRole",
            assumed_by=iam.ServicePrincipal("config.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AWS_ConfigRole")
            ]
        )

        self.config_recorder = config.CfnConfigurationRecorder(
            self, "ConfigurationRecorder",
            name="Default",
            role_arn=self.config_role.role_arn,
            recording_group=config.CfnConfigurationRecorder.RecordingGroupProperty(
                all_supported=True,
                include_global_resource_types=True
            )
        )

        self._allow_config_delivery(self.config_role)

        self.delivery_channel = config.CfnDeliveryChannel(
            self, "ConfigDeliveryChannel",
            s3_bucket_name=self.log_bucket.bucket_name
        )
        self.delivery_channel.add_dependency(self.config_recorder)

    def _create_conformance_pack_access(self):
        # https://aws.amazon.com/blogs/aws/aws-config-conformance-packs/
        self.conformance_pack_role = iam.Role(
            self, "ConformancePackRole",
            assumed_by=iam.ServicePrincipal("config-conforms.amazonaws.com")
        )

        self._allow_config_delivery(self.conformance_pack_role)
        self.log_bucket.add_to_resource_policy(
            iam.PolicyStatement(
                effect=iam.Effect.ALLOW,
                principals=[self.conformance_pack_role],
                actions=["s3:GetObject"],
                resources=[self.config_objects_arn]
            )
        )

    def _create_compliance_notifications(self):
        print("📢 Routing Config compliance changes to SNS...")

        self.compliance_rule = events.Rule(
            self, "ConfigRuleComplianceNotifications",
            rule_name="ConfigRuleComplianceNotifications",
            description="Config Rule Compliance Notifications",
            enabled=True,
            event_pattern=events.EventPattern(
                source=["aws.config"],
                detail_type=["Config Rules Compliance Change"],
                detail={
                    "messageType": ["ComplianceChangeNotification"],
                    "newEvaluationResult": {
                        "complianceType": ["NON_COMPLIANT"]
                    }
                }
            ),
            targets=[targets.SnsTopic(self.alerts_topic)]
        )

    def _include_conformance_pack(self):
        print(f"📋 Including conformance pack: {os.path.basename(self.conformance_pack_template)}")

        self.conformance_pack = cfn_inc.CfnInclude(
            self, "ConformancePack",
            template_file=self.conformance_pack_template
        )
        # Config rules need a running recorder
        self.conformance_pack.node.add_dependency(self.config_recorder)

    def _create_config_outputs(self):
        CfnOutput(self, "ConfigRecorderName",
            value=self.config_recorder.ref,
            description="AWS Config configuration recorder"
        )

        print("✅ Account hardening stack declared!")


def create_stack(app, construct_id: str,
                 conformance_pack_template: Optional[str] = None,
                 **kwargs) -> Stack:
    """Declare the variant named by the ``variant`` context value (default 3).

    Slack ids are read from the environment for variants 2 and 3.
    """
    variant = str(app.node.try_get_context("variant") or "3")

    if variant == "1":
        return AuditLoggingStack(app, construct_id, **kwargs)
    if variant == "2":
        return InsightsAlertingStack(app, construct_id,
            slack_settings=SlackSettings.from_env(),
            **kwargs
        )
    if variant == "3":
        return HardeningStack(app, construct_id,
            slack_settings=SlackSettings.from_env(),
            conformance_pack=app.node.try_get_context("conformance_pack") or DEFAULT_CONFORMANCE_PACK,
            conformance_pack_template=conformance_pack_template,
            **kwargs
        )
    raise ValueError(f"Unknown stack variant {variant!r}; expected 1, 2 or 3")
