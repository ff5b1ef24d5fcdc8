from __future__ import annotations

import re
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

_NOT_FOUND_CODES = {"ParameterNotFound", "ResourceNotFoundException"}


class StoreLookupError(Exception):
    kind = "StoreLookupError"


class LookupNotFound(StoreLookupError):
    kind = "LookupNotFound"

    def __init__(self, key: str) -> None:
        super().__init__(f"not found: {key}")
        self.key = key


class StoreUnavailable(StoreLookupError):
    kind = "StoreUnavailable"


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code") or "")


def _translate(exc: Exception, *, store: str, key: str) -> StoreLookupError:
    if isinstance(exc, ClientError):
        code = _error_code(exc)
        if code in _NOT_FOUND_CODES:
            return LookupNotFound(key)
        return StoreUnavailable(f"{store} lookup failed for {key!r}: {code or exc}")
    return StoreUnavailable(f"{store} lookup failed for {key!r}: {type(exc).__name__}: {exc}")


DEFAULT_CONTACT_PARAMETER_PREFIX = "/identity"
_PREFIX_RE = re.compile(r"^(/[A-Za-z0-9_.-]+)+$")


def normalize_contact_prefix(raw: str | None) -> str:
    """Blank means the default prefix; otherwise one leading slash, no trailing slash."""
    prefix = "/" + ((raw or "").strip().strip("/") or DEFAULT_CONTACT_PARAMETER_PREFIX.strip("/"))
    if not _PREFIX_RE.match(prefix):
        raise ValueError(
            f"CONTACT_PARAMETER_PREFIX must look like /segment[/segment...]: {raw!r}"
        )
    return prefix


def contact_parameter_name(prefix: str | None, identity_name: str) -> str:
    return f"{normalize_contact_prefix(prefix)}/{identity_name}/email"


class ParameterStoreContacts:
    """Contact addresses kept as SSM String parameters at <prefix>/<name>/email."""

    def __init__(self, ssm_client: Any, *, prefix: str | None) -> None:
        self._ssm = ssm_client
        self.prefix = normalize_contact_prefix(prefix)

    def key_for(self, identity_name: str) -> str:
        return contact_parameter_name(self.prefix, identity_name)

    def get_contact(self, identity_name: str) -> str:
        name = self.key_for(identity_name)
        try:
            out = self._ssm.get_parameter(Name=name)
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, store="ssm", key=name) from exc
        value = (out.get("Parameter") or {}).get("Value")
        if value is None:
            raise LookupNotFound(name)
        return str(value)


class SecretsManagerCredential:
    """The one shared one-time credential, read by its fixed secret id."""

    def __init__(self, secrets_client: Any, *, secret_id: str) -> None:
        self._secrets = secrets_client
        self.secret_id = secret_id

    def get_credential(self) -> str:
        try:
            out = self._secrets.get_secret_value(SecretId=self.secret_id)
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, store="secretsmanager", key=self.secret_id) from exc
        # Binary secrets are not usable as a login password.
        value = out.get("SecretString")
        if value is None:
            raise LookupNotFound(self.secret_id)
        return str(value)
