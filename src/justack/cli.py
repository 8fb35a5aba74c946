"""Justack CLI.

Usage:
    justack sessions list                      # List sessions
    justack sessions get <id>                  # Show session details
    justack sessions create "Deploy" -r ops@example.com
    justack sessions delete <id>               # Delete a session

    justack recipients list                    # List recipients
    justack recipients create "Ana" --email ana@example.com
    justack recipients invite-url <id>         # Get a sign-in link

    justack log <session-id> "Build finished"  # Post a notification
    justack ask <session-id> "Deploy?" --confirm approved --text notes

The API key is read from --api-key or JUSTACK_API_KEY.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

import click
from pydantic import BaseModel

from .client import JustackClient
from .errors import JustackError
from .pagination import collect
from .types import dump_json

T = TypeVar("T")

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"

format_option = click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)


def format_datetime(dt: datetime | str | None) -> str:
    """Format datetime for display."""
    if dt is None:
        return "N/A"
    if isinstance(dt, str):
        try:
            dt = datetime.fromisoformat(dt.rstrip("Z"))
        except ValueError:
            return dt
    return dt.strftime("%Y-%m-%d %H:%M")


def truncate(text: str | None, max_len: int = 50) -> str:
    """Truncate text for display."""
    if not text:
        return ""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def parse_choice(value: str) -> tuple[str, list[str]]:
    """Parse NAME=opt1,opt2 into ("NAME", ["opt1", "opt2"])."""
    name, sep, options = value.partition("=")
    choices = [o.strip() for o in options.split(",") if o.strip()]
    if not sep or not name or not choices:
        raise click.BadParameter(f"expected NAME=opt1,opt2, got {value!r}")
    return name, choices


def _run(ctx: click.Context, action: Callable[[JustackClient], Awaitable[T]]) -> T:
    """Run `action` with a client, reporting API failures and exiting 1."""

    try:
        client = JustackClient(api_key=ctx.obj.get("api_key"), base_url=ctx.obj.get("base_url"))
    except ValueError as e:
        raise click.UsageError(f"{e} (use --api-key or set JUSTACK_API_KEY)") from e

    async def execute() -> T:
        async with client:
            return await action(client)

    try:
        return asyncio.run(execute())
    except JustackError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _echo_json(value: Any) -> None:
    if isinstance(value, BaseModel):
        click.echo(dump_json(value))
    else:
        click.echo(json.dumps(value, indent=2, ensure_ascii=False, default=str))


@click.group()
@click.option("--api-key", envvar="JUSTACK_API_KEY", help="API key (default: $JUSTACK_API_KEY)")
@click.option("--base-url", envvar="JUSTACK_API_URL", help="API base URL (default: $JUSTACK_API_URL)")
@click.option("--verbose", "-v", is_flag=True, help="Log connection activity to stderr")
@click.pass_context
def main(ctx: click.Context, api_key: str | None, base_url: str | None, verbose: bool) -> None:
    """Justack - human-in-the-loop sessions for AI agents."""
    ctx.ensure_object(dict)
    ctx.obj["api_key"] = api_key
    ctx.obj["base_url"] = base_url
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )


# =============================================================================
# Sessions
# =============================================================================


@main.group()
def sessions() -> None:
    """Manage sessions."""


@sessions.command("list")
@click.option("--limit", "-n", type=click.IntRange(1, 100), default=None, help="Page size")
@format_option
@click.pass_context
def sessions_list(ctx: click.Context, limit: int | None, output_format: str) -> None:
    """List sessions.

    Examples:

        justack sessions list

        justack sessions list --format json
    """
    items = _run(ctx, lambda client: collect(client.sessions.list(limit=limit)))

    if output_format == FORMAT_JSON:
        _echo_json([s.model_dump(mode="json") for s in items])
        return

    if not items:
        click.echo("No sessions found.")
        return

    click.echo(f"{'ID':<28} {'Name':<30} {'Recipients':>10} {'Last message':<17}")
    click.echo("-" * 88)
    for s in items:
        click.echo(
            f"{s.session_id[:28]:<28} {truncate(s.name, 30):<30} "
            f"{len(s.recipients):>10} {format_datetime(s.last_message_at):<17}"
        )
    click.echo(f"\nTotal: {len(items)} session(s)")


@sessions.command("get")
@click.argument("session_id")
@format_option
@click.pass_context
def sessions_get(ctx: click.Context, session_id: str, output_format: str) -> None:
    """Show session details."""
    data = _run(ctx, lambda client: client.sessions.get(session_id))

    if output_format == FORMAT_JSON:
        _echo_json(data)
        return

    click.echo(f"Session: {data.session_id}")
    click.echo(f"Name: {data.name}")
    click.echo(f"Created: {format_datetime(data.created_at)}")
    click.echo(f"Expires: {format_datetime(data.expires_at)}")
    click.echo(f"Last message: {format_datetime(data.last_message_at)}")
    if data.recipients:
        click.echo("Recipients:")
        for r in data.recipients:
            click.echo(f"  {r.recipient_id}  {r.name}  {r.email or r.external_id or ''}")


@sessions.command("create")
@click.argument("name")
@click.option(
    "--recipient", "-r", "recipients", multiple=True, help="Recipient email or external id"
)
@click.option("--retention", type=click.IntRange(1, 12), default=None, help="Retention (months)")
@click.option("--notify/--no-notify", default=None, help="Notify recipients")
@click.option("--callback-url", default=None, help="Webhook URL")
@click.pass_context
def sessions_create(
    ctx: click.Context,
    name: str,
    recipients: tuple[str, ...],
    retention: int | None,
    notify: bool | None,
    callback_url: str | None,
) -> None:
    """Create a session and print its id."""

    async def create(client: JustackClient) -> str:
        session = await client.sessions.create(
            name,
            recipients=list(recipients) or None,
            retention_months=retention,
            notify=notify,
            callback_url=callback_url,
        )
        return session.id

    click.echo(_run(ctx, create))


@sessions.command("delete")
@click.argument("session_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def sessions_delete(ctx: click.Context, session_id: str, yes: bool) -> None:
    """Delete a session.

    Examples:

        justack sessions delete sess_abc123 --yes
    """
    if not yes and not click.confirm(f"Delete session {session_id}?"):
        click.echo("Cancelled.")
        return

    _run(ctx, lambda client: client.sessions.delete(session_id))
    click.echo(f"Deleted session {session_id}")


# =============================================================================
# Recipients
# =============================================================================


@main.group()
def recipients() -> None:
    """Manage recipients."""


@recipients.command("list")
@click.option("--limit", "-n", type=click.IntRange(1, 100), default=None, help="Page size")
@format_option
@click.pass_context
def recipients_list(ctx: click.Context, limit: int | None, output_format: str) -> None:
    """List recipients."""
    items = _run(ctx, lambda client: collect(client.recipients.list(limit=limit)))

    if output_format == FORMAT_JSON:
        _echo_json([r.model_dump(mode="json") for r in items])
        return

    if not items:
        click.echo("No recipients found.")
        return

    click.echo(f"{'ID':<28} {'Name':<24} {'Email / external id':<34}")
    click.echo("-" * 88)
    for r in items:
        contact = r.email or r.external_id or ""
        click.echo(f"{r.recipient_id[:28]:<28} {truncate(r.name, 24):<24} {truncate(contact, 34):<34}")
    click.echo(f"\nTotal: {len(items)} recipient(s)")


@recipients.command("create")
@click.argument("name")
@click.option("--email", default=None, help="Email address")
@click.option("--external-id", default=None, help="Your own identifier for the recipient")
@click.pass_context
def recipients_create(
    ctx: click.Context, name: str, email: str | None, external_id: str | None
) -> None:
    """Create a recipient and print its id."""
    if not email and not external_id:
        raise click.UsageError("--email or --external-id is required")

    recipient = _run(
        ctx, lambda client: client.recipients.create(name, email=email, external_id=external_id)
    )
    click.echo(recipient.recipient_id)


@recipients.command("invite-url")
@click.argument("recipient_id")
@click.pass_context
def recipients_invite_url(ctx: click.Context, recipient_id: str) -> None:
    """Print a sign-in link for a recipient."""
    result = _run(ctx, lambda client: client.recipients.get_invite_url(recipient_id))
    click.echo(result.url)


# =============================================================================
# Messaging
# =============================================================================


@main.command("log")
@click.argument("session_id")
@click.argument("message")
@click.option("--no-persist", is_flag=True, help="Do not keep the message on the server")
@click.pass_context
def log_message(ctx: click.Context, session_id: str, message: str, no_persist: bool) -> None:
    """Post a notification to a session."""

    async def send(client: JustackClient) -> None:
        async with await client.sessions.resume(session_id) as session:
            await session.log(message, persist=not no_persist)

    _run(ctx, send)


@main.command("ask")
@click.argument("session_id")
@click.argument("question")
@click.option("--confirm", "confirms", multiple=True, metavar="NAME", help="Yes/no input")
@click.option("--text", "texts", multiple=True, metavar="NAME", help="Free text input")
@click.option("--select", "selects", multiple=True, metavar="NAME=a,b", help="Single choice")
@click.option(
    "--multi-select", "multi_selects", multiple=True, metavar="NAME=a,b", help="Multiple choice"
)
@click.option("--timeout", type=float, default=None, help="Seconds to wait for the answer")
@click.pass_context
def ask_question(
    ctx: click.Context,
    session_id: str,
    question: str,
    confirms: tuple[str, ...],
    texts: tuple[str, ...],
    selects: tuple[str, ...],
    multi_selects: tuple[str, ...],
    timeout: float | None,
) -> None:
    """Ask a question and print the answer as JSON.

    Examples:

        justack ask sess_abc123 "Deploy to production?" --confirm approved --text notes

        justack ask sess_abc123 "Which env?" --select env=staging,production
    """
    inputs: list[dict[str, Any]] = []
    inputs += [{"type": "confirm", "name": name} for name in confirms]
    inputs += [{"type": "text", "name": name} for name in texts]
    for value in selects:
        name, options = parse_choice(value)
        inputs.append({"type": "select", "name": name, "options": options})
    for value in multi_selects:
        name, options = parse_choice(value)
        inputs.append({"type": "select", "name": name, "options": options, "multiple": True})

    if not inputs:
        raise click.UsageError("at least one of --confirm, --text, --select, --multi-select")

    async def ask(client: JustackClient) -> Any:
        async with await client.sessions.resume(session_id) as session:
            return await session.ask(question, inputs, timeout=timeout)

    answer = _run(ctx, ask)
    if isinstance(answer, BaseModel):
        click.echo(json.dumps(answer.model_dump(by_alias=True), indent=2, ensure_ascii=False))
    else:
        click.echo(answer)


if __name__ == "__main__":
    main()
