import json
import re
from dataclasses import dataclass
from pathlib import Path

DEFAULT_SHARED_CREDENTIAL_SECRET_NAME = "OneTimePassword"


@dataclass(frozen=True)
class IdentitySpec:
    name: str
    group: str
    email: str


@dataclass(frozen=True)
class IdentityCatalog:
    # group name -> AWS managed policy names attached to it
    groups: dict[str, tuple[str, ...]]
    identities: tuple[IdentitySpec, ...]


DEFAULT_CATALOG = IdentityCatalog(
    groups={
        "s3-user-group": ("AmazonS3ReadOnlyAccess",),
        "ec2-user-group": ("AmazonEC2ReadOnlyAccess",),
    },
    identities=(
        IdentitySpec(name="s3-user", group="s3-user-group", email="s3user@example.com"),
        IdentitySpec(name="ec2-user", group="ec2-user-group", email="ec2user@example.com"),
    ),
)

# IAM user names: up to 64 of [A-Za-z0-9+=,.@_-]
_IAM_NAME_RE = re.compile(r"^[A-Za-z0-9+=,.@_-]{1,64}$")


def logical_name(name: str) -> str:
    parts = [p for p in re.split(r"[^A-Za-z0-9]+", name) if p]
    return "".join(p[:1].upper() + p[1:] for p in parts) or "Identity"


def validate_catalog(catalog: IdentityCatalog) -> IdentityCatalog:
    if not catalog.identities:
        raise ValueError("identity catalog has no identities")
    for group, policies in catalog.groups.items():
        if not _IAM_NAME_RE.match(group):
            raise ValueError(f"invalid group name: {group!r}")
        if not policies:
            raise ValueError(f"group {group!r} has no managed policies")

    seen: set[str] = set()
    for identity in catalog.identities:
        if not _IAM_NAME_RE.match(identity.name):
            raise ValueError(f"invalid identity name: {identity.name!r}")
        if identity.name in seen:
            raise ValueError(f"duplicate identity name: {identity.name!r}")
        seen.add(identity.name)
        if identity.group not in catalog.groups:
            raise ValueError(f"identity {identity.name!r} references unknown group {identity.group!r}")
        if "@" not in identity.email:
            raise ValueError(f"identity {identity.name!r} has no usable email")
    return catalog


def load_identity_catalog(path: str | Path | None) -> IdentityCatalog:
    """
    Read an identity catalog file, or return the default catalog.

    File shape:

      {"groups": {"<group>": ["<AwsManagedPolicyName>", ...]},
       "identities": [{"name": "...", "group": "...", "email": "..."}]}
    """

    if not path:
        return validate_catalog(DEFAULT_CATALOG)

    doc = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(doc, dict):
        raise ValueError(f"identity catalog must be a JSON object: {path}")

    raw_groups = doc.get("groups") or {}
    raw_identities = doc.get("identities") or []
    if not isinstance(raw_groups, dict) or not isinstance(raw_identities, list):
        raise ValueError(f"identity catalog has invalid groups/identities: {path}")

    groups: dict[str, tuple[str, ...]] = {}
    for group, policies in raw_groups.items():
        if isinstance(policies, str):
            policies = [policies]
        if not isinstance(policies, list):
            raise ValueError(f"group {group!r} policies must be a list")
        groups[str(group).strip()] = tuple(str(p).strip() for p in policies if str(p).strip())

    identities: list[IdentitySpec] = []
    for item in raw_identities:
        if not isinstance(item, dict):
            raise ValueError(f"identity entries must be objects: {item!r}")
        identities.append(
            IdentitySpec(
                name=str(item.get("name") or "").strip(),
                group=str(item.get("group") or "").strip(),
                email=str(item.get("email") or "").strip(),
            )
        )

    return validate_catalog(IdentityCatalog(groups=groups, identities=tuple(identities)))
