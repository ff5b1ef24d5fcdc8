from __future__ import annotations

import contextlib
import io
import os
import sys
from typing import Any

import click
import typer
from dotenv import load_dotenv
from rich.console import Console

from . import __version__
from .cli_shared import (
    DEFAULT_SECRET_ID,
    DEFAULT_STACK_NAME,
    OpError,
    UsageError,
    _account_session,
    _eprint,
    _lambda_module,
    _load_events,
    _print_json,
    _stack_outputs,
)

_ERROR_CONSOLE = Console(stderr=True)


def _rich_error(msg: str) -> None:
    _ERROR_CONSOLE.print(f"[bold red]error:[/bold red] {msg}")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"identity-notifier {__version__}")
        raise typer.Exit(code=0)


app = typer.Typer(
    name="identity-notifier",
    help="Check, replay and run identity-creation notifications.",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def app_callback(
    ctx: typer.Context,
    pretty: bool = typer.Option(False, "--pretty", help="Pretty-print JSON output"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True),
) -> None:
    del version
    ctx.obj = {"pretty": bool(pretty)}


def _pretty(ctx: typer.Context) -> bool:
    obj = ctx.obj if isinstance(ctx.obj, dict) else {}
    return bool(obj.get("pretty"))


def _live_handler(*, secret_id: str | None, prefix: str | None) -> Any:
    notifier = _lambda_module("user_created_notifier")
    stores = _lambda_module("lookup_stores")
    notification = _lambda_module("notification")

    session = _account_session()
    try:
        contacts = stores.ParameterStoreContacts(
            session.client("ssm"),
            prefix=prefix or os.environ.get("CONTACT_PARAMETER_PREFIX"),
        )
    except ValueError as e:
        raise UsageError(str(e)) from e
    return notifier.NotificationHandler(
        contacts,
        stores.SecretsManagerCredential(
            session.client("secretsmanager"),
            secret_id=(secret_id or os.environ.get("SHARED_CREDENTIAL_SECRET_ID") or "").strip()
            or DEFAULT_SECRET_ID,
        ),
        # Keep stdout for the command payload; the log line goes to stderr.
        notification.LogNotificationSink(
            schema_version=f"identity-notifier-cli/{__version__}",
            write=_eprint,
        ),
    )


@app.command("match", help="Report whether each event in a file matches the identity-creation rule.")
def match(
    ctx: typer.Context,
    events_file: str = typer.Argument(..., help="JSON object, JSON array or JSON-lines file"),
) -> None:
    event_pattern = _lambda_module("event_pattern")
    events = _load_events(events_file)
    rows = []
    for index, event in enumerate(events):
        event_id = event.get("id", "") if isinstance(event, dict) else ""
        rows.append(
            {
                "index": index,
                "id": event_id,
                "matched": event_pattern.matches_identity_creation(event),
            }
        )
    _print_json(
        {
            "kind": "identity-notifier.match.v1",
            "matched": sum(1 for r in rows if r["matched"]),
            "total": len(rows),
            "events": rows,
        },
        pretty=_pretty(ctx),
    )


@app.command("replay", help="Replay captured events through the rule and the notification handler.")
def replay(
    ctx: typer.Context,
    events_file: str = typer.Argument(..., help="JSON object, JSON array or JSON-lines file"),
    principal: str = typer.Option(
        "events.amazonaws.com", "--principal", help="Invoking principal to present to the dispatcher"
    ),
    secret_id: str | None = typer.Option(None, "--secret-id", help="Shared credential secret id"),
    prefix: str | None = typer.Option(None, "--prefix", help="Contact parameter prefix"),
) -> int:
    dispatcher = _lambda_module("dispatcher")
    events = _load_events(events_file)
    notifier = _live_handler(secret_id=secret_id, prefix=prefix)
    dispatch = dispatcher.Dispatcher(lambda event: notifier.handle(event).to_dict())
    try:
        summary = dispatch.dispatch_all(events, principal=principal)
    except dispatcher.UnauthorizedInvocation as e:
        raise UsageError(str(e)) from e
    _print_json({"kind": "identity-notifier.replay.v1", **summary.to_dict()}, pretty=_pretty(ctx))
    failed = sum(1 for r in summary.results if r.get("status") == "failure")
    return 1 if failed else 0


@app.command("handle", help="Run one event through the notification handler against live stores.")
def handle(
    ctx: typer.Context,
    event_file: str = typer.Argument(..., help="File holding one event JSON object"),
    secret_id: str | None = typer.Option(None, "--secret-id", help="Shared credential secret id"),
    prefix: str | None = typer.Option(None, "--prefix", help="Contact parameter prefix"),
) -> int:
    events = _load_events(event_file)
    if len(events) != 1:
        raise UsageError(f"expected exactly one event in {event_file}, found {len(events)}")
    notifier = _live_handler(secret_id=secret_id, prefix=prefix)
    result = notifier.handle(events[0])
    _print_json(result.to_dict(), pretty=_pretty(ctx))
    return 1 if result.status == "failure" else 0


@app.command("stack-output", help="Print CloudFormation stack outputs or a single output value.")
def stack_output(
    ctx: typer.Context,
    output_key: str | None = typer.Argument(None, help="Optional CloudFormation output key"),
    stack: str = typer.Option(
        DEFAULT_STACK_NAME, "--stack", envvar="CDK_STACK_NAME", help="CloudFormation stack name"
    ),
) -> None:
    outputs = _stack_outputs(_account_session(), stack=stack)
    key = str(output_key or "").strip()
    if not key:
        _print_json(outputs, pretty=_pretty(ctx))
        return
    if key not in outputs:
        raise OpError(f"output key not found: {key}")
    sys.stdout.write(outputs[key] + "\n")


def _root_help_text(prog_name: str) -> str:
    buf = io.StringIO()
    with contextlib.redirect_stdout(buf):
        try:
            app(args=["--help"], prog_name=prog_name, standalone_mode=False)
        except (typer.Exit, click.ClickException):
            pass
    return str(buf.getvalue() or "").strip()


def _run_cli(*, prog_name: str, argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    # Discover .env without overriding exported values.
    load_dotenv()
    try:
        result = app(args=argv, prog_name=prog_name, standalone_mode=False)
        if result is None:
            return 0
        return int(result)
    except typer.Exit as e:
        return int(e.exit_code)
    except click.ClickException as e:
        _rich_error(e.format_message())
        return int(e.exit_code)
    except UsageError as e:
        _rich_error(str(e))
        help_text = _root_help_text(prog_name)
        if help_text:
            _eprint("")
            _eprint(help_text)
        return 2
    except OpError as e:
        _rich_error(str(e))
        return 1


def main(argv: list[str] | None = None) -> int:
    return _run_cli(prog_name="identity-notifier", argv=argv)


if __name__ == "__main__":
    raise SystemExit(main())
