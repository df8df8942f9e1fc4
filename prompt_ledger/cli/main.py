"""PromptLedger CLI, the ledger command."""

from __future__ import annotations

import json
from contextlib import contextmanager
from typing import Any, Iterator

import click

from prompt_ledger.cli.client import COLLECTIONS, LedgerAPIError, LedgerClient

ENTITY_CHOICE = click.Choice(sorted(COLLECTIONS))


@contextmanager
def _api_errors() -> Iterator[None]:
    """Report API failures as CLI errors instead of tracebacks."""
    try:
        yield
    except LedgerAPIError as e:
        raise click.ClickException(str(e)) from e


def _format_table(rows: list[dict], columns: list[str]) -> str:
    """Simple table formatter."""
    if not rows:
        return "No results."
    widths = {c: len(c) for c in columns}
    for row in rows:
        for c in columns:
            val = str(row.get(c, ""))
            widths[c] = max(widths[c], len(val))

    header = "  ".join(c.upper().ljust(widths[c]) for c in columns)
    separator = "  ".join("-" * widths[c] for c in columns)
    lines = [header, separator]
    for row in rows:
        line = "  ".join(str(row.get(c, "")).ljust(widths[c]) for c in columns)
        lines.append(line)
    return "\n".join(lines)


def _short(value: Any, width: int = 40) -> str:
    text = json.dumps(value, default=str) if not isinstance(value, str) else value
    return text if len(text) <= width else text[: width - 3] + "..."


def _diff_rows(diffs: list[dict]) -> list[dict]:
    return [
        {
            "field": d["field"],
            "change": d.get("change", ""),
            "before": _short(d["before"]) if "before" in d else "-",
            "after": _short(d["after"]) if "after" in d else "-",
        }
        for d in diffs
    ]


@click.group()
@click.option("--api", default="http://localhost:8400", envvar="LEDGER_API", help="API base URL")
@click.option("--format", "output_format", type=click.Choice(["table", "json"]), default="table")
@click.option("--token", default=None, envvar="LEDGER_TOKEN", help="Auth token")
@click.pass_context
def cli(ctx: click.Context, api: str, output_format: str, token: str | None) -> None:
    """PromptLedger CLI: browse the audit log, diff events and restore entities."""
    ctx.ensure_object(dict)
    ctx.obj = LedgerClient(base_url=api, auth_token=token)
    ctx.meta["output_format"] = output_format


def _output(ctx: click.Context, data: Any, columns: list[str] | None = None) -> None:
    fmt = ctx.meta.get("output_format", "table")
    if fmt == "json":
        click.echo(json.dumps(data, indent=2, default=str))
    elif isinstance(data, list) and columns:
        click.echo(_format_table(data, columns))
    else:
        click.echo(json.dumps(data, indent=2, default=str))


# --- Audit log ---


@cli.group()
def logs() -> None:
    """Browse the audit log."""


@logs.command("list")
@click.option("--entity-type", default=None)
@click.option("--entity-id", default=None)
@click.option("--project", "project_id", default=None)
@click.option("--action", "action_type", default=None)
@click.option("--actor", default=None)
@click.option("--since", default=None, help="ISO-8601 timestamp")
@click.option("--limit", type=int, default=None)
@click.option("--cursor", default=None, help="next_cursor from a previous page")
@click.pass_context
def logs_list(
    ctx: click.Context,
    entity_type: str | None,
    entity_id: str | None,
    project_id: str | None,
    action_type: str | None,
    actor: str | None,
    since: str | None,
    limit: int | None,
    cursor: str | None,
) -> None:
    """List audit events, newest first."""
    client: LedgerClient = ctx.obj
    with _api_errors():
        page = client.list_logs(
            entity_type=entity_type,
            entity_id=entity_id,
            project_id=project_id,
            action_type=action_type,
            actor=actor,
            since=since,
            limit=limit,
            cursor=cursor,
        )
    if ctx.meta.get("output_format") == "json":
        _output(ctx, page)
        return
    _output(ctx, page["logs"], ["id", "created_at", "entity_type", "entity_id", "action_type", "actor"])
    if page.get("has_more"):
        click.echo(f"\nMore results: --cursor {page['next_cursor']}")


@logs.command("show")
@click.argument("event_id")
@click.pass_context
def logs_show(ctx: click.Context, event_id: str) -> None:
    """Show one event with its snapshots."""
    client: LedgerClient = ctx.obj
    with _api_errors():
        data = client.get_log(event_id)
    _output(ctx, data)


@logs.command("delete")
@click.argument("event_id")
@click.confirmation_option(prompt="Delete this audit event? Entities are not affected.")
@click.pass_context
def logs_delete(ctx: click.Context, event_id: str) -> None:
    """Purge one audit event."""
    client: LedgerClient = ctx.obj
    with _api_errors():
        client.delete_log(event_id)
    click.echo(f"Deleted event {event_id}")


# --- Diff / restore ---


@cli.command()
@click.argument("event_id")
@click.pass_context
def diff(ctx: click.Context, event_id: str) -> None:
    """Field-level diff of an event."""
    client: LedgerClient = ctx.obj
    with _api_errors():
        data = client.diff(event_id)
    if ctx.meta.get("output_format") == "json":
        _output(ctx, data)
        return
    click.echo(f"{data['entity_type']} {data['entity_id']} ({data['action_type']})")
    click.echo(_format_table(_diff_rows(data["diffs"]), ["field", "change", "before", "after"]))


@cli.command()
@click.argument("event_id")
@click.option("--force", is_flag=True, help="Overwrite conflicting changes without asking")
@click.pass_context
def restore(ctx: click.Context, event_id: str, force: bool) -> None:
    """Restore the entity touched by an event to its earlier state."""
    client: LedgerClient = ctx.obj
    try:
        result = client.restore(event_id, force=force)
    except LedgerAPIError as e:
        if not e.is_conflict:
            raise click.ClickException(str(e)) from e
        conflicts = [
            {"field": c["field"], "expected": c.get("before"), "current": c.get("after")}
            for c in e.payload.get("conflicts", [])
        ]
        click.echo(f"{e.payload['entity_type']} {e.payload['entity_id']} changed since this event:")
        click.echo(
            _format_table(
                [
                    {"field": c["field"], "expected": _short(c["expected"]), "current": _short(c["current"])}
                    for c in conflicts
                ],
                ["field", "expected", "current"],
            )
        )
        if not click.confirm("Overwrite these changes?", default=False):
            click.echo("Restore cancelled.")
            return
        with _api_errors():
            result = client.restore(event_id, force=True)

    if ctx.meta.get("output_format") == "json":
        _output(ctx, result)
        return
    forced = " (forced)" if result["forced"] else ""
    click.echo(f"Restored {result['entity_type']} {result['entity_id']}{forced}")


# --- Trash ---


@cli.group()
def trash() -> None:
    """Manage trashed entities."""


@trash.command("list")
@click.argument("entity_type", type=ENTITY_CHOICE)
@click.option("--project", "project_id", default=None, help="Only prompts from this project")
@click.pass_context
def trash_list(ctx: click.Context, entity_type: str, project_id: str | None) -> None:
    """List trashed entities of one type."""
    client: LedgerClient = ctx.obj
    with _api_errors():
        data = client.list_deleted(entity_type, project_id=project_id)
    name = "title" if entity_type == "prompt" else "name"
    _output(ctx, data, ["id", name, "deleted_at"])


@trash.command("restore")
@click.argument("entity_type", type=ENTITY_CHOICE)
@click.argument("entity_id")
@click.pass_context
def trash_restore(ctx: click.Context, entity_type: str, entity_id: str) -> None:
    """Take an entity out of the trash."""
    client: LedgerClient = ctx.obj
    with _api_errors():
        client.restore_from_trash(entity_type, entity_id)
    click.echo(f"Restored {entity_type} {entity_id}")


@trash.command("purge")
@click.argument("entity_type", type=ENTITY_CHOICE)
@click.argument("entity_id")
@click.confirmation_option(prompt="Permanently delete? This cannot be undone.")
@click.pass_context
def trash_purge(ctx: click.Context, entity_type: str, entity_id: str) -> None:
    """Permanently delete a trashed entity."""
    client: LedgerClient = ctx.obj
    with _api_errors():
        client.permanent_delete(entity_type, entity_id)
    click.echo(f"Permanently deleted {entity_type} {entity_id}")


if __name__ == "__main__":
    cli()
