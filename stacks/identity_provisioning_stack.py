import os

from aws_cdk import (
    CfnOutput,
    RemovalPolicy,
    Stack,
    Tags,
    aws_iam as iam,
    aws_secretsmanager as secretsmanager,
    aws_ssm as ssm,
)
from constructs import Construct

from stacks.identity_catalog import (
    DEFAULT_SHARED_CREDENTIAL_SECRET_NAME,
    IdentityCatalog,
    load_identity_catalog,
    logical_name,
    validate_catalog,
)
from stacks.lambda_source import contact_parameter_name, normalize_contact_prefix


class IdentityProvisioningStack(Stack):
    """
    Declarative side of the system: shared one-time credential, access-scope
    groups, users and their contact parameters.

    Every user creation here emits the CloudTrail CreateUser event that the
    notification stack reacts to.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        catalog: IdentityCatalog | None = None,
        shared_credential_secret_name: str | None = None,
        contact_parameter_prefix: str | None = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

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

        catalog = (
            validate_catalog(catalog)
            if catalog is not None
            else load_identity_catalog(os.getenv("IDENTITY_CATALOG_FILE"))
        )
        secret_name = (
            shared_credential_secret_name
            or os.getenv("SHARED_CREDENTIAL_SECRET_NAME")
            or DEFAULT_SHARED_CREDENTIAL_SECRET_NAME
        ).strip()
        contact_prefix = normalize_contact_prefix(
            contact_parameter_prefix or os.getenv("CONTACT_PARAMETER_PREFIX")
        )

        shared_credential = secretsmanager.Secret(
            self,
            "SharedCredentialSecret",
            secret_name=secret_name,
            description="One time password for generated users",
            generate_secret_string=secretsmanager.SecretStringGenerator(
                password_length=12,
                exclude_lowercase=False,
                exclude_numbers=False,
                exclude_punctuation=False,
                exclude_uppercase=False,
                include_space=False,
                require_each_included_type=True,
            ),
            removal_policy=stateful_removal_policy,
        )

        groups: dict[str, iam.Group] = {}
        for group_name, policy_names in catalog.groups.items():
            groups[group_name] = iam.Group(
                self,
                f"{logical_name(group_name)}Group",
                group_name=group_name,
                managed_policies=[
                    iam.ManagedPolicy.from_aws_managed_policy_name(policy_name)
                    for policy_name in policy_names
                ],
            )

        for identity in catalog.identities:
            base_id = logical_name(identity.name)

            email_parameter = ssm.StringParameter(
                self,
                f"{base_id}EmailParameter",
                parameter_name=contact_parameter_name(contact_prefix, identity.name),
                string_value=identity.email,
                description=f"Email for {identity.name}",
            )

            user = iam.User(
                self,
                f"{base_id}User",
                user_name=identity.name,
                groups=[groups[identity.group]],
                password=shared_credential.secret_value,
                password_reset_required=True,
            )
            Tags.of(user).add("Email", identity.email)
            # The notifier reads the contact record as soon as CreateUser lands.
            user.node.add_dependency(email_parameter)

            CfnOutput(
                self,
                f"{base_id}UserName",
                value=user.user_name,
                description=f"Name of the {identity.name} user",
            )

            CfnOutput(
                self,
                f"{base_id}EmailParameterName",
                value=email_parameter.parameter_name,
                description=f"Contact parameter of the {identity.name} user",
            )

        CfnOutput(
            self,
            "SharedCredentialSecretArn",
            value=shared_credential.secret_arn,
            description="ARN of the one-time password secret",
        )
