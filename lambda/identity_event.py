from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ValidIdentityEvent:
    identity_name: str
    event_id: str = ""
    event_time: str = ""


@dataclass(frozen=True)
class MalformedIdentityEvent:
    reason: str
    event_id: str = ""


ParsedIdentityEvent = ValidIdentityEvent | MalformedIdentityEvent


def _text(val: Any) -> str:
    if isinstance(val, str):
        return val.strip()
    return ""


def parse_identity_event(event: Any) -> ParsedIdentityEvent:
    """
    Extract the created identity's name from a CloudTrail CreateUser event.

    Never raises: every shape problem, at any nesting level, becomes a
    MalformedIdentityEvent with a short reason.
    """

    if not isinstance(event, dict):
        return MalformedIdentityEvent(reason="event is not an object")

    event_id = _text(event.get("id"))
    detail = event.get("detail")
    if detail is None:
        return MalformedIdentityEvent(reason="detail missing", event_id=event_id)
    if not isinstance(detail, dict):
        return MalformedIdentityEvent(reason="detail is not an object", event_id=event_id)

    params = detail.get("requestParameters")
    if params is None:
        return MalformedIdentityEvent(reason="detail.requestParameters missing", event_id=event_id)
    if not isinstance(params, dict):
        return MalformedIdentityEvent(
            reason="detail.requestParameters is not an object", event_id=event_id
        )

    raw_name = params.get("userName")
    if raw_name is not None and not isinstance(raw_name, str):
        return MalformedIdentityEvent(
            reason="detail.requestParameters.userName is not a string", event_id=event_id
        )
    name = _text(raw_name)
    if not name:
        return MalformedIdentityEvent(
            reason="detail.requestParameters.userName missing", event_id=event_id
        )

    return ValidIdentityEvent(
        identity_name=name,
        event_id=event_id,
        event_time=_text(event.get("time")),
    )
