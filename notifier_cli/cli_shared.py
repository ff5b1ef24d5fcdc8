from __future__ import annotations

import importlib
import importlib.util
import json
import os
import sys
from pathlib import Path
from types import ModuleType
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

# Installed wheels ship lambda/ as the notifier_lambda package.
LAMBDA_PACKAGE = "notifier_lambda"
REPO_LAMBDA_DIR = Path(__file__).resolve().parents[1] / "lambda"

DEFAULT_STACK_NAME = "IdentityNotificationStack"
DEFAULT_SECRET_ID = "OneTimePassword"


class NotifierOpsError(Exception):
    pass


class UsageError(NotifierOpsError):
    pass


class OpError(NotifierOpsError):
    pass


def _eprint(msg: str) -> None:
    print(msg, file=sys.stderr)


def _print_json(obj: Any, *, pretty: bool = False) -> None:
    if pretty:
        text = json.dumps(obj, indent=2, sort_keys=True)
    else:
        text = json.dumps(obj, separators=(",", ":"), sort_keys=True)
    sys.stdout.write(text + "\n")


def _lambda_dir() -> Path:
    spec = importlib.util.find_spec(LAMBDA_PACKAGE)
    if spec is not None and spec.submodule_search_locations:
        return Path(list(spec.submodule_search_locations)[0])
    if REPO_LAMBDA_DIR.is_dir():
        return REPO_LAMBDA_DIR
    raise OpError(f"handler modules not found: no {LAMBDA_PACKAGE} package and no {REPO_LAMBDA_DIR}")


def _lambda_module(name: str) -> ModuleType:
    # The handler modules import each other by bare name, as they do inside Lambda.
    lambda_dir = str(_lambda_dir())
    if lambda_dir not in sys.path:
        sys.path.insert(0, lambda_dir)
    return importlib.import_module(name)


def _account_session() -> Any:
    """
    boto3 session for live commands. AWS_PROFILE is optional (the default
    credential chain applies without it); a region is required.
    """

    profile = (os.environ.get("AWS_PROFILE") or "").strip() or None
    region = (os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION") or "").strip()
    if not region:
        raise UsageError("missing AWS_REGION (set env or .env)")
    return boto3.session.Session(profile_name=profile, region_name=region)


def _stack_outputs(session: Any, *, stack: str) -> dict[str, str]:
    try:
        resp = session.client("cloudformation").describe_stacks(StackName=stack)
    except (ClientError, BotoCoreError) as e:
        raise OpError(f"cannot describe stack {stack!r}: {e}") from e
    found = resp.get("Stacks") or []
    if not found:
        raise OpError(f"stack not found: {stack}")
    return {
        str(o.get("OutputKey", "")).strip(): str(o.get("OutputValue", "")).strip()
        for o in found[0].get("Outputs") or []
        if isinstance(o, dict)
    }


def _load_events(path: str) -> list[Any]:
    """
    Read captured events from a file: a JSON object, a JSON array, or one
    JSON object per line.
    """

    try:
        raw = Path(path).expanduser().read_text(encoding="utf-8")
    except OSError as e:
        raise UsageError(f"cannot read events file {path!r}: {e}") from e
    text = raw.strip()
    if not text:
        raise UsageError(f"events file is empty: {path}")
    try:
        doc = json.loads(text)
    except json.JSONDecodeError:
        doc = None
    if isinstance(doc, list):
        return doc
    if doc is not None:
        return [doc]

    out: list[Any] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            out.append(json.loads(line))
        except json.JSONDecodeError as e:
            raise UsageError(f"invalid JSON on line {lineno} of {path}: {e}") from e
    return out
