"""
CLI interface for occurrence vaults.

Usage:
    occurrences search "standup" -t work
    occurrences tags
    occurrences new "Coffee with Ana" -p "Ana" -t social
    occurrences watch
"""

import asyncio
import json
import logging
import os
from dataclasses import asdict
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .config import StoreConfig, get_default_vault_path, get_tool_directory, load_or_create_config
from .editor import OccurrenceDraft, create_occurrence, update_occurrence
from .errors import OccurrenceError
from .events import OccurrenceAdded, OccurrenceRemoved, OccurrenceUpdated
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode
from .search import DEFAULT_LIMIT, SearchOptions, SearchResult
from .store import OccurrenceStore
from .types import Occurrence
from .vault import FileSystemVault


# Configure quiet mode by default (suppress verbose library output)
# Set OCCURRENCES_VERBOSE=1 to enable debug mode via environment
if os.environ.get("OCCURRENCES_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"occurrences {version('occurrences')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_vault_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _vault_callback(value: Optional[Path]):
    global _vault_override
    if value is not None:
        _vault_override = value


def _get_vault_path() -> Path:
    if _vault_override is not None:
        return _vault_override.expanduser().resolve()
    return get_default_vault_path()


app = typer.Typer(
    name="occurrences",
    help="Dated notes in a markdown vault: search, tag and create occurrences.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    vault: Annotated[Optional[Path], typer.Option(
        "--vault", "-V",
        envvar="OCCURRENCES_VAULT",
        help="Path to the vault directory",
        callback=_vault_callback,
        is_eager=True,
    )] = None,
):
    """Dated notes in a markdown vault."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

TagOption = Annotated[
    Optional[list[str]],
    typer.Option(
        "--tag", "-t",
        help="Tag (repeatable)"
    )
]

ParticipantOption = Annotated[
    Optional[list[str]],
    typer.Option(
        "--participant", "-p",
        help="Participant note name (repeatable; created if missing)"
    )
]

TopicOption = Annotated[
    Optional[list[str]],
    typer.Option(
        "--topic",
        help="Topic note name (repeatable; created if missing)"
    )
]

LocationOption = Annotated[
    Optional[str],
    typer.Option(
        "--location", "-l",
        help="Location note name (created if missing)"
    )
]

OffsetOption = Annotated[
    Optional[str],
    typer.Option(
        "--tz",
        help="UTC offset to write the timestamp in (e.g. +02:00; default: local)"
    )
]


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _parse_date(value: Optional[str], option: str) -> Optional[date]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"Expected YYYY-MM-DD, got {value!r}", param_hint=option)


def _parse_datetime(value: Optional[str], option: str) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"Expected ISO date/time, got {value!r}", param_hint=option)


def _load_config(root: Path) -> StoreConfig:
    try:
        return load_or_create_config(root)
    except (OSError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _open_vault() -> tuple[FileSystemVault, StoreConfig]:
    root = _get_vault_path()
    if not root.is_dir():
        typer.echo(f"Error: Vault not found: {root}", err=True)
        raise typer.Exit(1)
    return FileSystemVault(root), _load_config(root)


def _open_store() -> OccurrenceStore:
    """Scan the vault and load the store, handling errors gracefully."""
    fs_vault, config = _open_vault()
    store = OccurrenceStore(fs_vault, config)
    store.init()
    return store


def render_occurrence_line(occurrence: Occurrence) -> str:
    local = occurrence.occurred_at.astimezone()
    line = f"{local:%Y-%m-%d %H:%M}  {occurrence.title}"
    if occurrence.to_process:
        line += "  [to process]"
    if occurrence.tags:
        line += "  " + " ".join(f"#{tag}" for tag in occurrence.tags)
    return line


def render_occurrence(occurrence: Occurrence) -> str:
    lines = [
        f"path: {occurrence.path}",
        f"title: {occurrence.title}",
        f"occurred_at: {occurrence.occurred_at.isoformat()}",
        f"to_process: {str(occurrence.to_process).lower()}",
    ]
    if occurrence.tags:
        lines.append(f"tags: {', '.join(occurrence.tags)}")
    if occurrence.participants:
        lines.append(f"participants: {', '.join(l.target for l in occurrence.participants)}")
    if occurrence.topics:
        lines.append(f"topics: {', '.join(l.target for l in occurrence.topics)}")
    if occurrence.location:
        lines.append(f"location: {occurrence.location.target}")
    return "\n".join(lines)


def _search_result_to_dict(result: SearchResult) -> dict:
    return {
        "items": [occ.to_dict() for occ in result.items],
        "pagination": asdict(result.pagination),
        "metadata": asdict(result.metadata),
    }


def render_search_result(result: SearchResult) -> str:
    if not result.items:
        return "No occurrences found"
    lines = [render_occurrence_line(occ) for occ in result.items]
    page = result.pagination
    if page.has_more or page.offset:
        start = page.offset + 1
        end = page.offset + len(result.items)
        lines.append(f"-- {start}-{end} of {page.total}")
    return "\n".join(lines)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def search(
    query: Annotated[Optional[str], typer.Argument(help="Title text (fuzzy)")] = None,
    tag: TagOption = None,
    links_to: Annotated[Optional[str], typer.Option(
        "--links-to",
        help="Only occurrences linking to this vault path"
    )] = None,
    to_process: Annotated[Optional[bool], typer.Option(
        "--to-process/--processed",
        help="Filter on the to-process flag"
    )] = None,
    date_from: Annotated[Optional[str], typer.Option(
        "--from",
        help="First day, inclusive (YYYY-MM-DD)"
    )] = None,
    date_to: Annotated[Optional[str], typer.Option(
        "--to",
        help="Last day, inclusive (YYYY-MM-DD)"
    )] = None,
    ascending: Annotated[bool, typer.Option(
        "--asc",
        help="Oldest first"
    )] = False,
    limit: Annotated[int, typer.Option(
        "--limit", "-n",
        help="Maximum results to return"
    )] = DEFAULT_LIMIT,
    offset: Annotated[int, typer.Option(
        "--offset",
        help="Skip this many results"
    )] = 0,
):
    """
    Search occurrences.

    \b
    Examples:
        occurrences search standup             # Fuzzy title match
        occurrences search -t work -t family   # Any of these tags
        occurrences search --from 2025-01-01 --to 2025-01-31
        occurrences search --to-process        # Triage queue
    """
    options = SearchOptions(
        query=query,
        tags=tag or (),
        links_to=links_to,
        to_process=to_process,
        date_from=_parse_date(date_from, "--from"),
        date_to=_parse_date(date_to, "--to"),
        sort_order="asc" if ascending else "desc",
        limit=limit,
        offset=offset,
    )
    store = _open_store()
    result = store.search(options)
    if _get_json_output():
        typer.echo(json.dumps(_search_result_to_dict(result), indent=2))
    else:
        typer.echo(render_search_result(result))


@app.command()
def tags():
    """List tags with the number of occurrences carrying each."""
    store = _open_store()
    counts = store.get_all_tags()
    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    if _get_json_output():
        typer.echo(json.dumps(dict(ordered), indent=2))
        return
    if not ordered:
        typer.echo("No tags")
        return
    width = max(len(name) for name, _ in ordered)
    for name, count in ordered:
        typer.echo(f"{name.ljust(width)}  {count}")


@app.command()
def get(
    path: Annotated[str, typer.Argument(help="Vault path of the occurrence file")],
):
    """Show one occurrence."""
    store = _open_store()
    occurrence = store.get(path)
    if occurrence is None:
        typer.echo(f"Not found: {path}", err=True)
        raise typer.Exit(1)
    if _get_json_output():
        typer.echo(json.dumps(occurrence.to_dict(), indent=2))
    else:
        typer.echo(render_occurrence(occurrence))


@app.command()
def new(
    title: Annotated[str, typer.Argument(help="Title (becomes part of the filename)")],
    at: Annotated[Optional[str], typer.Option(
        "--at",
        help="When it happened, ISO format (default: now)"
    )] = None,
    tag: TagOption = None,
    participant: ParticipantOption = None,
    topic: TopicOption = None,
    location: LocationOption = None,
    to_process: Annotated[bool, typer.Option(
        "--to-process",
        help="Flag for follow-up"
    )] = False,
    tz: OffsetOption = None,
):
    """
    Create an occurrence file.

    \b
    Examples:
        occurrences new "Standup" -t work
        occurrences new "Dinner" --at "2025-01-10T19:30" -p Ana -l "Cafe Luna"
    """
    fs_vault, config = _open_vault()
    draft = OccurrenceDraft(
        title=title,
        occurred_at=_parse_datetime(at, "--at"),
        to_process=to_process,
        tags=tag or [],
        participants=participant or [],
        topics=topic or [],
        location=location,
        timezone_offset=tz,
    )
    try:
        path = asyncio.run(create_occurrence(fs_vault, config, draft))
    except OccurrenceError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if _get_json_output():
        typer.echo(json.dumps({"path": path}))
    else:
        typer.echo(path)


@app.command()
def edit(
    path: Annotated[str, typer.Argument(help="Vault path of the occurrence file")],
    title: Annotated[Optional[str], typer.Option(
        "--title",
        help="New title"
    )] = None,
    at: Annotated[Optional[str], typer.Option(
        "--at",
        help="New time, ISO format"
    )] = None,
    tag: TagOption = None,
    participant: ParticipantOption = None,
    topic: TopicOption = None,
    location: LocationOption = None,
    to_process: Annotated[Optional[bool], typer.Option(
        "--to-process/--processed",
        help="Set or clear the follow-up flag"
    )] = None,
    tz: OffsetOption = None,
):
    """
    Edit an occurrence. Options not given keep their current values.

    Renames the file when the time or title changes; the body is kept.
    """
    store = _open_store()
    occurrence = store.get(path)
    if occurrence is None:
        typer.echo(f"Not found: {path}", err=True)
        raise typer.Exit(1)

    draft = OccurrenceDraft.from_occurrence(occurrence)
    if title is not None:
        draft.title = title
    if at is not None:
        draft.occurred_at = _parse_datetime(at, "--at")
    if tag is not None:
        draft.tags = tag
    if participant is not None:
        draft.participants = participant
    if topic is not None:
        draft.topics = topic
    if location is not None:
        draft.location = location or None
    if to_process is not None:
        draft.to_process = to_process
    draft.timezone_offset = tz

    fs_vault, cfg = store.vault, store.config
    store.shutdown()
    try:
        new_path = asyncio.run(update_occurrence(fs_vault, cfg, occurrence, draft))
    except OccurrenceError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if _get_json_output():
        typer.echo(json.dumps({"path": new_path}))
    else:
        typer.echo(new_path)


async def _watch(store: OccurrenceStore, vault: FileSystemVault) -> None:
    vault.start()
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        vault.stop()
        await store.sync.drain()
        store.shutdown()


@app.command()
def watch():
    """
    Keep the index live and report changes until interrupted.

    Files whose header time no longer matches their name are renamed.
    Operations are logged to ~/.occurrences/occurrences-ops.log.
    """
    store = _open_store()
    fs_vault = store.vault
    handler = configure_ops_log(get_tool_directory())

    store.on(OccurrenceAdded, lambda e: typer.echo(f"+ {e.occurrence.path}"))
    store.on(OccurrenceUpdated, lambda e: typer.echo(f"~ {e.occurrence.path}"))
    store.on(OccurrenceRemoved, lambda e: typer.echo(f"- {e.path}"))

    typer.echo(f"Watching {fs_vault.root} ({len(store)} occurrences)", err=True)
    try:
        asyncio.run(_watch(store, fs_vault))
    except KeyboardInterrupt:
        pass
    finally:
        logging.getLogger("occurrences").removeHandler(handler)
        handler.close()


def _config_to_dict(cfg: StoreConfig) -> dict:
    return {
        "file": str(cfg.config_path),
        "vault": str(cfg.path),
        "folder": cfg.folder,
        "extension": cfg.extension,
        "date_format": cfg.date_format,
        "fields": cfg.property_mapping_with_tags(),
        "retry": asdict(cfg.retry),
        "tool": str(get_tool_directory()),
    }


@app.command()
def config(
    path: Annotated[Optional[str], typer.Argument(
        help="Config value to get (e.g., 'file', 'folder', 'fields.occurredAt', 'retry.attempts')"
    )] = None,
):
    """
    Show configuration. Optionally get a specific value by path.

    \b
    Examples:
        occurrences config                # Show all config
        occurrences config file           # Config file location
        occurrences config fields         # Header field names
    """
    root = _get_vault_path()
    cfg = _load_config(root)
    data = _config_to_dict(cfg)

    if path:
        value: object = data
        for part in path.split("."):
            if not isinstance(value, dict) or part not in value:
                typer.echo(f"Unknown config path: {path}", err=True)
                raise typer.Exit(1)
            value = value[part]
        if _get_json_output():
            typer.echo(json.dumps({path: value}, indent=2))
        elif isinstance(value, (list, dict)):
            typer.echo(json.dumps(value))
        else:
            typer.echo(value)
        return

    if _get_json_output():
        typer.echo(json.dumps(data, indent=2))
        return
    for key, value in data.items():
        if isinstance(value, dict):
            typer.echo(f"{key}:")
            for sub_key, sub_value in value.items():
                typer.echo(f"  {sub_key}: {sub_value}")
        else:
            typer.echo(f"{key}: {value}")


@app.command()
def mcp():
    """Start MCP stdio server for AI agent integration."""
    if _vault_override is not None:
        os.environ["OCCURRENCES_VAULT"] = str(_vault_override)
    from .mcp import main as mcp_main
    mcp_main()


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="occurrences CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
