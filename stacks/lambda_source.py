"""
Shared view of the Lambda sources for the stacks.

The handler modules in lambda/ import each other by bare name, so the
directory goes on sys.path once here. Stacks take the event pattern and the
contact-parameter naming rule from those modules instead of restating them.
"""

import sys
from pathlib import Path

LAMBDA_DIR = Path(__file__).resolve().parents[1] / "lambda"

if str(LAMBDA_DIR) not in sys.path:
    sys.path.insert(0, str(LAMBDA_DIR))

from event_pattern import PATTERN_PATH, load_pattern  # noqa: E402
from lookup_stores import (  # noqa: E402
    DEFAULT_CONTACT_PARAMETER_PREFIX,
    contact_parameter_name,
    normalize_contact_prefix,
)

__all__ = [
    "DEFAULT_CONTACT_PARAMETER_PREFIX",
    "LAMBDA_DIR",
    "PATTERN_PATH",
    "contact_parameter_name",
    "load_pattern",
    "normalize_contact_prefix",
]
