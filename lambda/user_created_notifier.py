import json
import os
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any

import boto3
from botocore.config import Config
from identity_event import MalformedIdentityEvent, parse_identity_event
from lookup_stores import (
    ParameterStoreContacts,
    SecretsManagerCredential,
    StoreLookupError,
    StoreUnavailable,
)
from notification import (
    ERROR_INTERNAL_FAULT,
    LOG_EVENT_NAME,
    LogNotificationSink,
    NotificationResult,
    NotificationSink,
)

_ssm_client = None
_secrets_client = None

CONTACT_PARAMETER_PREFIX = os.environ.get("CONTACT_PARAMETER_PREFIX", "/identity")
SHARED_CREDENTIAL_SECRET_ID = os.environ.get("SHARED_CREDENTIAL_SECRET_ID", "")
NOTIFY_INCLUDE_CREDENTIAL = os.environ.get("NOTIFY_INCLUDE_CREDENTIAL", "true").strip().lower() not in {
    "0",
    "false",
    "no",
}
# Parsed in build_notification_handler.
LOOKUP_TIMEOUT_SECONDS = os.environ.get("LOOKUP_TIMEOUT_SECONDS", "20")
DEFAULT_LOOKUP_TIMEOUT_SECONDS = 20.0
SCHEMA_VERSION = os.environ.get("SCHEMA_VERSION", "2026-10-19")
# Leave time to record the result before the Lambda timeout fires.
DEADLINE_MARGIN_MS = 2000

_BOTO_CONFIG = Config(
    connect_timeout=5,
    read_timeout=10,
    retries={"max_attempts": 2, "mode": "standard"},
)


def _aws_region() -> str | None:
    return os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION")


def _ssm():
    global _ssm_client
    if _ssm_client is None:
        _ssm_client = boto3.client("ssm", region_name=_aws_region(), config=_BOTO_CONFIG)
    return _ssm_client


def _secretsmanager():
    global _secrets_client
    if _secrets_client is None:
        _secrets_client = boto3.client("secretsmanager", region_name=_aws_region(), config=_BOTO_CONFIG)
    return _secrets_client


def _record_safely(sink: NotificationSink, result: NotificationResult) -> None:
    try:
        sink.record(result)
    except Exception as exc:
        # The sink is the only observability channel; fall back to a bare line.
        print(
            json.dumps(
                {
                    "event": LOG_EVENT_NAME,
                    "outcome": "sink_error",
                    "status": result.status,
                    "identity": result.identity,
                    "error": {"type": type(exc).__name__, "message": str(exc)},
                },
                separators=(",", ":"),
                sort_keys=True,
            )
        )


class NotificationHandler:
    """
    Turns one identity-creation event into one NotificationResult.

    Stores and sink are injected; the handler keeps no state between calls and
    never raises past handle().
    """

    def __init__(
        self,
        contacts: ParameterStoreContacts,
        credential: SecretsManagerCredential,
        sink: NotificationSink,
        *,
        lookup_timeout_seconds: float = DEFAULT_LOOKUP_TIMEOUT_SECONDS,
    ) -> None:
        self._contacts = contacts
        self._credential = credential
        self._sink = sink
        self.lookup_timeout_seconds = lookup_timeout_seconds

    def handle(self, event: Any, *, deadline_seconds: float | None = None) -> NotificationResult:
        identity = ""
        event_id = ""
        try:
            parsed = parse_identity_event(event)
            event_id = parsed.event_id
            if isinstance(parsed, MalformedIdentityEvent):
                result = NotificationResult.skipped(parsed.reason, event_id=event_id)
            else:
                identity = parsed.identity_name
                email, credential = self._lookup(identity, deadline_seconds)
                result = NotificationResult.success(
                    identity, email=email, credential=credential, event_id=event_id
                )
        except StoreLookupError as exc:
            result = NotificationResult.failure(
                identity, error_kind=exc.kind, error=str(exc), event_id=event_id
            )
        except Exception as exc:
            result = NotificationResult.failure(
                identity,
                error_kind=ERROR_INTERNAL_FAULT,
                error=f"{type(exc).__name__}: {exc}",
                event_id=event_id,
            )
        _record_safely(self._sink, result)
        return result

    def _lookup(self, identity: str, deadline_seconds: float | None) -> tuple[str, str]:
        timeout = self.lookup_timeout_seconds
        if deadline_seconds is not None:
            timeout = min(timeout, max(deadline_seconds, 0.0))

        # Independent reads: fan out, join, fail on the first error.
        pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="lookup")
        try:
            contact_future = pool.submit(self._contacts.get_contact, identity)
            credential_future = pool.submit(self._credential.get_credential)
            done, pending = wait(
                [contact_future, credential_future],
                timeout=timeout,
                return_when=FIRST_EXCEPTION,
            )
            for future in (contact_future, credential_future):
                if future in done and future.exception() is not None:
                    raise future.exception()
            if pending:
                raise StoreUnavailable(f"lookups for {identity!r} did not finish within {timeout:g}s")
            return contact_future.result(), credential_future.result()
        finally:
            # Abandon whatever is still in flight; nothing here holds state.
            pool.shutdown(wait=False, cancel_futures=True)


def _deadline_seconds(context: Any) -> float | None:
    remaining = getattr(context, "get_remaining_time_in_millis", None)
    if not callable(remaining):
        return None
    try:
        millis = int(remaining())
    except (TypeError, ValueError):
        return None
    return max(millis - DEADLINE_MARGIN_MS, 0) / 1000.0


def _event_id(event: Any) -> str:
    if isinstance(event, dict):
        return str(event.get("id") or "").strip()
    return ""


def _parse_lookup_timeout(raw: str) -> float:
    try:
        seconds = float(raw)
    except (TypeError, ValueError):
        raise ValueError(f"LOOKUP_TIMEOUT_SECONDS must be a number: {raw!r}") from None
    if not seconds > 0:
        raise ValueError(f"LOOKUP_TIMEOUT_SECONDS must be positive: {raw!r}")
    return seconds


def build_notification_handler(sink: NotificationSink) -> NotificationHandler:
    if not SHARED_CREDENTIAL_SECRET_ID:
        raise ValueError("SHARED_CREDENTIAL_SECRET_ID missing")
    return NotificationHandler(
        ParameterStoreContacts(_ssm(), prefix=CONTACT_PARAMETER_PREFIX),
        SecretsManagerCredential(_secretsmanager(), secret_id=SHARED_CREDENTIAL_SECRET_ID),
        sink,
        lookup_timeout_seconds=_parse_lookup_timeout(LOOKUP_TIMEOUT_SECONDS),
    )


def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    sink = LogNotificationSink(
        schema_version=SCHEMA_VERSION,
        include_credential=NOTIFY_INCLUDE_CREDENTIAL,
    )
    try:
        notifier = build_notification_handler(sink)
    except Exception as exc:
        result = NotificationResult.failure(
            "",
            error_kind=ERROR_INTERNAL_FAULT,
            error=f"misconfigured: {exc}",
            event_id=_event_id(event),
        )
        _record_safely(sink, result)
        return result.to_dict()

    return notifier.handle(event, deadline_seconds=_deadline_seconds(context)).to_dict()
