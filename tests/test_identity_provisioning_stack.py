import json
import sys
from pathlib import Path

import pytest
from aws_cdk import App
from aws_cdk import assertions

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from stacks.identity_catalog import IdentityCatalog, IdentitySpec
from stacks.identity_provisioning_stack import IdentityProvisioningStack


def _synth_template(monkeypatch, catalog=None, **env) -> dict:
    for name in (
        "DATA_RETENTION_MODE",
        "SHARED_CREDENTIAL_SECRET_NAME",
        "CONTACT_PARAMETER_PREFIX",
        "IDENTITY_CATALOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    app = App()
    stack = IdentityProvisioningStack(app, "IdentityProvisioningTestStack", catalog=catalog)
    return assertions.Template.from_stack(stack).to_json()


def _resources(template: dict, resource_type: str) -> dict[str, dict]:
    return {
        logical_id: resource
        for logical_id, resource in template["Resources"].items()
        if resource.get("Type") == resource_type
    }


def test_shared_secret_is_generated_once(monkeypatch):
    template = _synth_template(monkeypatch)
    secrets = _resources(template, "AWS::SecretsManager::Secret")

    assert len(secrets) == 1
    props = next(iter(secrets.values()))["Properties"]
    assert props["Name"] == "OneTimePassword"
    generate = props["GenerateSecretString"]
    assert generate["PasswordLength"] == 12
    assert generate["RequireEachIncludedType"] is True
    assert generate["IncludeSpace"] is False


def test_groups_attach_managed_read_only_policies(monkeypatch):
    template = _synth_template(monkeypatch)
    groups = {
        r["Properties"]["GroupName"]: json.dumps(r["Properties"]["ManagedPolicyArns"])
        for r in _resources(template, "AWS::IAM::Group").values()
    }

    assert set(groups) == {"s3-user-group", "ec2-user-group"}
    assert "policy/AmazonS3ReadOnlyAccess" in groups["s3-user-group"]
    assert "policy/AmazonEC2ReadOnlyAccess" in groups["ec2-user-group"]


def test_each_user_has_one_group_shared_password_and_reset(monkeypatch):
    template = _synth_template(monkeypatch)
    secret_id = next(iter(_resources(template, "AWS::SecretsManager::Secret")))
    group_ids = {
        r["Properties"]["GroupName"]: logical_id
        for logical_id, r in _resources(template, "AWS::IAM::Group").items()
    }
    users = {
        r["Properties"]["UserName"]: r for r in _resources(template, "AWS::IAM::User").values()
    }

    assert set(users) == {"s3-user", "ec2-user"}
    expected_groups = {"s3-user": "s3-user-group", "ec2-user": "ec2-user-group"}
    expected_emails = {"s3-user": "s3user@example.com", "ec2-user": "ec2user@example.com"}
    for name, user in users.items():
        props = user["Properties"]
        assert props["Groups"] == [{"Ref": group_ids[expected_groups[name]]}]
        assert props["LoginProfile"]["PasswordResetRequired"] is True
        assert secret_id in json.dumps(props["LoginProfile"]["Password"])
        assert {"Key": "Email", "Value": expected_emails[name]} in props["Tags"]


def test_contact_parameters_exist_before_users(monkeypatch):
    template = _synth_template(monkeypatch)
    params = _resources(template, "AWS::SSM::Parameter")
    by_name = {r["Properties"]["Name"]: (logical_id, r) for logical_id, r in params.items()}

    assert set(by_name) == {"/identity/s3-user/email", "/identity/ec2-user/email"}
    assert by_name["/identity/s3-user/email"][1]["Properties"]["Value"] == "s3user@example.com"
    assert by_name["/identity/s3-user/email"][1]["Properties"]["Type"] == "String"

    for user in _resources(template, "AWS::IAM::User").values():
        name = user["Properties"]["UserName"]
        param_id = by_name[f"/identity/{name}/email"][0]
        assert param_id in user.get("DependsOn", [])


def test_explicit_catalog_and_prefix(monkeypatch):
    catalog = IdentityCatalog(
        groups={"auditors": ("SecurityAudit",)},
        identities=(IdentitySpec(name="alice", group="auditors", email="alice@example.com"),),
    )
    template = _synth_template(monkeypatch, catalog=catalog, CONTACT_PARAMETER_PREFIX="/iam")

    users = _resources(template, "AWS::IAM::User")
    assert [u["Properties"]["UserName"] for u in users.values()] == ["alice"]
    params = _resources(template, "AWS::SSM::Parameter")
    assert [p["Properties"]["Name"] for p in params.values()] == ["/iam/alice/email"]


def test_catalog_file_from_env(monkeypatch, tmp_path):
    path = tmp_path / "identities.json"
    path.write_text(
        json.dumps(
            {
                "groups": {"readers": "ReadOnlyAccess"},
                "identities": [
                    {"name": "bob", "group": "readers", "email": "bob@example.com"},
                    {"name": "carol", "group": "readers", "email": "carol@example.com"},
                ],
            }
        )
    )
    template = _synth_template(monkeypatch, IDENTITY_CATALOG_FILE=str(path))

    names = sorted(u["Properties"]["UserName"] for u in _resources(template, "AWS::IAM::User").values())
    assert names == ["bob", "carol"]
    assert len(_resources(template, "AWS::IAM::Group")) == 1


def test_retain_mode_retains_secret(monkeypatch):
    template = _synth_template(monkeypatch, DATA_RETENTION_MODE="retain")
    secret = next(iter(_resources(template, "AWS::SecretsManager::Secret").values()))
    assert secret["DeletionPolicy"] == "Retain"


def test_identity_with_unknown_group_fails_fast(monkeypatch):
    catalog = IdentityCatalog(
        groups={"readers": ("ReadOnlyAccess",)},
        identities=(IdentitySpec(name="dave", group="writers", email="dave@example.com"),),
    )
    with pytest.raises(ValueError, match="unknown group"):
        _synth_template(monkeypatch, catalog=catalog)
