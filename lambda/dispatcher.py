from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from event_pattern import identity_creation_pattern, matches

EVENTS_PRINCIPAL = "events.amazonaws.com"


class UnauthorizedInvocation(Exception):
    pass


@dataclass
class DispatchSummary:
    matched: int = 0
    dropped: int = 0
    results: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"matched": self.matched, "dropped": self.dropped, "results": list(self.results)}


class Dispatcher:
    """
    Local stand-in for the EventBridge rule target.

    The deployed equivalent is the rule's Lambda target plus the function's
    resource policy, which only lets events.amazonaws.com invoke it from that
    rule. Used for replaying captured events and in tests.
    """

    def __init__(
        self,
        handle: Callable[[dict[str, Any]], dict[str, Any]],
        *,
        pattern: dict[str, Any] | None = None,
        allowed_principal: str = EVENTS_PRINCIPAL,
    ) -> None:
        self._handle = handle
        self._pattern = pattern if pattern is not None else identity_creation_pattern()
        self.allowed_principal = allowed_principal

    def dispatch(self, event: Any, *, principal: str) -> dict[str, Any] | None:
        if principal != self.allowed_principal:
            raise UnauthorizedInvocation(
                f"principal {principal!r} may not invoke the notifier (allowed: {self.allowed_principal})"
            )
        if not matches(self._pattern, event):
            return None
        return self._handle(event)

    def dispatch_all(self, events: Iterable[Any], *, principal: str) -> DispatchSummary:
        summary = DispatchSummary()
        for event in events:
            out = self.dispatch(event, principal=principal)
            if out is None:
                summary.dropped += 1
                continue
            summary.matched += 1
            summary.results.append(out)
        return summary
