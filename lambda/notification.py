from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

STATUS_SUCCESS = "success"
STATUS_FAILURE = "failure"
STATUS_SKIPPED = "skipped"

ERROR_MALFORMED_EVENT = "MalformedEvent"
ERROR_LOOKUP_NOT_FOUND = "LookupNotFound"
ERROR_STORE_UNAVAILABLE = "StoreUnavailable"
ERROR_INTERNAL_FAULT = "InternalFault"

LOG_EVENT_NAME = "identity_credential_notification"
MASKED_CREDENTIAL = "********"


@dataclass(frozen=True)
class NotificationResult:
    status: str
    identity: str = ""
    email: str | None = None
    credential: str | None = None
    error_kind: str | None = None
    error: str | None = None
    event_id: str = ""

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS

    @classmethod
    def success(cls, identity: str, *, email: str, credential: str, event_id: str = "") -> "NotificationResult":
        return cls(
            status=STATUS_SUCCESS,
            identity=identity,
            email=email,
            credential=credential,
            event_id=event_id,
        )

    @classmethod
    def failure(cls, identity: str, *, error_kind: str, error: str, event_id: str = "") -> "NotificationResult":
        return cls(
            status=STATUS_FAILURE,
            identity=identity,
            error_kind=error_kind,
            error=error,
            event_id=event_id,
        )

    @classmethod
    def skipped(cls, reason: str, *, event_id: str = "") -> "NotificationResult":
        return cls(
            status=STATUS_SKIPPED,
            error_kind=ERROR_MALFORMED_EVENT,
            error=reason,
            event_id=event_id,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"status": self.status, "identity": self.identity}
        if self.email is not None:
            out["email"] = self.email
        if self.credential is not None:
            out["credential"] = self.credential
        if self.error_kind is not None:
            out["errorKind"] = self.error_kind
        if self.error is not None:
            out["error"] = self.error
        if self.event_id:
            out["eventId"] = self.event_id
        return out


class NotificationSink(Protocol):
    def record(self, result: NotificationResult) -> None:
        ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class LogNotificationSink:
    """
    Writes one structured JSON line per result to stdout (CloudWatch Logs).

    SECURITY REVIEW: with include_credential=True the plaintext one-time
    credential lands in the log group. That is the long-standing behavior of
    this notifier; NOTIFY_INCLUDE_CREDENTIAL=false masks it.
    """

    def __init__(self, *, schema_version: str, include_credential: bool = True, write=print) -> None:
        self.schema_version = schema_version
        self.include_credential = include_credential
        self._write = write

    def log_record(self, result: NotificationResult) -> dict[str, Any]:
        log: dict[str, Any] = {
            "event": LOG_EVENT_NAME,
            "schema_version": self.schema_version,
            "ts": _now_iso(),
            "event_id": result.event_id,
            "status": result.status,
            "identity": result.identity,
            "level": "info" if result.ok else "error",
        }
        if result.email is not None:
            log["email"] = result.email
        if result.credential is not None:
            log["credential"] = result.credential if self.include_credential else MASKED_CREDENTIAL
        if result.error_kind is not None:
            log["error_kind"] = result.error_kind
        if result.error is not None:
            log["error"] = result.error
        return log

    def record(self, result: NotificationResult) -> None:
        log = self.log_record(result)
        self._write(json.dumps(log, separators=(",", ":"), sort_keys=True))
