import os
import secrets
import string
from dataclasses import dataclass
from typing import Callable, Iterator

import boto3
import pytest


def _rand_suffix(n: int = 8) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(n))


def pytest_collection_modifyitems(config, items):
    if os.environ.get("RUN_SYSTEM") == "1":
        return
    skip = pytest.mark.skip(reason="system tests require RUN_SYSTEM=1")
    for item in items:
        if item.nodeid.startswith("tests/system/"):
            item.add_marker(skip)


@dataclass(frozen=True)
class SystemEnv:
    aws_profile: str
    aws_region: str
    stack_name: str


@dataclass(frozen=True)
class SystemStackOutputs:
    stack_name: str
    function_name: str
    contact_prefix: str
    secret_name: str


@pytest.fixture(scope="session")
def system_env() -> SystemEnv:
    # Require explicit opt-in.
    if os.environ.get("RUN_SYSTEM") != "1":
        pytest.skip("set RUN_SYSTEM=1 to run system tests")

    aws_profile = (os.environ.get("SYSTEM_AWS_PROFILE") or os.environ.get("AWS_PROFILE") or "").strip()
    aws_region = (os.environ.get("SYSTEM_AWS_REGION") or os.environ.get("AWS_REGION") or "").strip()
    stack_name = (os.environ.get("SYSTEM_STACK_NAME") or os.environ.get("STACK") or "").strip()

    if not aws_profile:
        raise RuntimeError("missing required env var: AWS_PROFILE (or SYSTEM_AWS_PROFILE)")
    if not aws_region:
        raise RuntimeError("missing required env var: AWS_REGION (or SYSTEM_AWS_REGION)")
    if not stack_name:
        raise RuntimeError("missing required env var: SYSTEM_STACK_NAME (or STACK)")

    return SystemEnv(aws_profile=aws_profile, aws_region=aws_region, stack_name=stack_name)


@pytest.fixture(scope="session")
def system_admin_session(system_env: SystemEnv) -> boto3.session.Session:
    return boto3.session.Session(profile_name=system_env.aws_profile, region_name=system_env.aws_region)


@pytest.fixture(scope="session")
def system_stack_outputs(system_admin_session: boto3.session.Session, system_env: SystemEnv) -> SystemStackOutputs:
    cfn = system_admin_session.client("cloudformation")
    desc = cfn.describe_stacks(StackName=system_env.stack_name)["Stacks"][0]
    outputs = {o["OutputKey"]: o["OutputValue"] for o in desc.get("Outputs", [])}

    def require_output(key: str) -> str:
        val = (outputs.get(key) or "").strip()
        if not val:
            raise RuntimeError(f"missing required CloudFormation output {key} on stack {system_env.stack_name}")
        return val

    return SystemStackOutputs(
        stack_name=system_env.stack_name,
        function_name=require_output("NotifierFunctionName"),
        contact_prefix=require_output("ContactParameterPrefix"),
        secret_name=require_output("SharedCredentialSecretName"),
    )


@pytest.fixture(scope="session")
def system_contact_factory(
    system_admin_session: boto3.session.Session,
    system_stack_outputs: SystemStackOutputs,
) -> Iterator[Callable[..., tuple[str, str]]]:
    """Seeds <prefix>/<name>/email for a throwaway identity name; no IAM user is created."""

    ssm = system_admin_session.client("ssm")
    created: list[str] = []

    def create_contact(*, name_prefix: str = "notifier-system") -> tuple[str, str]:
        name = f"{name_prefix}-{_rand_suffix(10)}"
        email = f"{name}@example.com"
        param = f"{system_stack_outputs.contact_prefix}/{name}/email"
        ssm.put_parameter(Name=param, Value=email, Type="String")
        created.append(param)
        return name, email

    yield create_contact

    # Best-effort cleanup.
    for param in created:
        try:
            ssm.delete_parameter(Name=param)
        except Exception:
            pass
