from __future__ import annotations

import json
from pathlib import Path
from typing import Any

PATTERN_PATH = Path(__file__).resolve().with_name("identity_event_pattern.json")


def load_pattern(path: str | Path | None = None) -> dict[str, Any]:
    """
    Load an EventBridge event pattern document.

    The same file backs the deployed rule (stacks/) and local evaluation, so
    the two cannot drift apart.
    """

    raw = Path(path or PATTERN_PATH).read_text(encoding="utf-8")
    pattern = json.loads(raw)
    if not isinstance(pattern, dict) or not pattern:
        raise ValueError(f"event pattern must be a non-empty JSON object: {path or PATTERN_PATH}")
    return pattern


def matches(pattern: dict[str, Any], event: Any) -> bool:
    # Subset of EventBridge semantics: lists hold allowed exact values,
    # objects recurse. Anything else in the pattern never matches.
    if not isinstance(event, dict):
        return False
    for key, expected in pattern.items():
        if key not in event:
            return False
        actual = event[key]
        if isinstance(expected, dict):
            if not matches(expected, actual):
                return False
            continue
        if not isinstance(expected, list):
            return False
        if isinstance(actual, (dict, list)) or actual is None:
            return False
        if not any(type(actual) is type(allowed) and actual == allowed for allowed in expected):
            return False
    return True


_IDENTITY_CREATION_PATTERN: dict[str, Any] | None = None


def identity_creation_pattern() -> dict[str, Any]:
    global _IDENTITY_CREATION_PATTERN
    if _IDENTITY_CREATION_PATTERN is None:
        _IDENTITY_CREATION_PATTERN = load_pattern()
    return _IDENTITY_CREATION_PATTERN


def matches_identity_creation(event: Any) -> bool:
    return matches(identity_creation_pattern(), event)
