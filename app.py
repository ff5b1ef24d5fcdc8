#!/usr/bin/env python3
import os

import aws_cdk as cdk

from stacks.identity_notification_stack import IdentityNotificationStack
from stacks.identity_provisioning_stack import IdentityProvisioningStack

app = cdk.App()

stack_name = os.getenv("CDK_STACK_NAME", "IdentityNotificationStack")
shared_credential_secret_name = (os.getenv("SHARED_CREDENTIAL_SECRET_NAME") or "").strip() or None

# IAM CloudTrail events are delivered to EventBridge in us-east-1 only.
env = cdk.Environment(
    account=os.getenv("CDK_DEFAULT_ACCOUNT"),
    region=os.getenv("CDK_DEFAULT_REGION", "us-east-1"),
)

notification_stack = IdentityNotificationStack(
    app,
    stack_name,
    shared_credential_secret_name=shared_credential_secret_name,
    env=env,
)

provisioning_enabled = (os.getenv("IDENTITY_PROVISIONING_ENABLED") or "").strip().lower() in {
    "1",
    "true",
    "yes",
}
if provisioning_enabled:
    provisioning_stack_name = os.getenv(
        "IDENTITY_PROVISIONING_STACK_NAME", "IdentityProvisioningStack"
    )
    provisioning_stack = IdentityProvisioningStack(
        app,
        provisioning_stack_name,
        shared_credential_secret_name=shared_credential_secret_name,
        env=env,
    )
    # Users must be created only once the rule is listening.
    provisioning_stack.add_dependency(notification_stack)

app.synth()
