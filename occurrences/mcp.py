"""
MCP stdio server for occurrences: vault search tools for AI agents.

Usage:
    occurrences mcp                                   # stdio server (via CLI)
    claude --mcp-server occurrences="occurrences mcp"

The store is loaded on first use and kept live by watching the vault.
All store calls are serialized through a single asyncio.Lock.
"""

import asyncio
import os
import signal
from datetime import date, datetime
from typing import Annotated, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field

from .cli import render_occurrence, render_search_result
from .config import get_default_vault_path, load_or_create_config
from .editor import OccurrenceDraft, create_occurrence
from .errors import OccurrenceError
from .search import DEFAULT_LIMIT, SearchOptions
from .store import OccurrenceStore
from .vault import FileSystemVault

# ---------------------------------------------------------------------------
# Server setup
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "occurrences",
    instructions=(
        "Dated notes (occurrences) in a markdown vault. "
        "Search by title, tag, date range, or linked note; list tags; "
        "read or create occurrences."
    ),
)

_store: Optional[OccurrenceStore] = None
_lock = asyncio.Lock()


def _get_store() -> OccurrenceStore:
    """Lazy-init the store for the vault in OCCURRENCES_VAULT.

    Must be called inside ``async with _lock`` from a running event loop:
    the vault starts watching on first use.
    """
    global _store
    if _store is None:
        root = get_default_vault_path()
        vault = FileSystemVault(root)
        store = OccurrenceStore(vault, load_or_create_config(root))
        store.init()
        vault.start()
        _store = store
    return _store


# ---------------------------------------------------------------------------
# Tool annotations
# ---------------------------------------------------------------------------

_READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False)
_CREATE = ToolAnnotations(destructiveHint=False, idempotentHint=False)


def _parse_day(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool(
    description=(
        "Search occurrences (dated notes). All filters are optional and combined; "
        "tags match any of the given tags. Title matching tolerates typos."
    ),
    annotations=_READ_ONLY,
)
async def occurrences_search(
    query: Annotated[Optional[str], Field(
        description="Text to match against titles.",
    )] = None,
    tags: Annotated[Optional[list[str]], Field(
        description='Match occurrences carrying any of these tags. Example: ["work", "family"]',
    )] = None,
    links_to: Annotated[Optional[str], Field(
        description="Vault path of a note; match occurrences linking to it.",
    )] = None,
    to_process: Annotated[Optional[bool], Field(
        description="Filter on the to-process (triage) flag.",
    )] = None,
    date_from: Annotated[Optional[str], Field(
        description="First day, inclusive (YYYY-MM-DD).",
    )] = None,
    date_to: Annotated[Optional[str], Field(
        description="Last day, inclusive (YYYY-MM-DD).",
    )] = None,
    sort_order: Annotated[str, Field(
        description='"desc" (newest first) or "asc".',
    )] = "desc",
    limit: Annotated[int, Field(
        description="Maximum results to return.",
    )] = DEFAULT_LIMIT,
    offset: Annotated[int, Field(
        description="Number of results to skip.",
    )] = 0,
) -> str:
    """Search occurrences."""
    try:
        options = SearchOptions(
            query=query,
            tags=tags or (),
            links_to=links_to,
            to_process=to_process,
            date_from=_parse_day(date_from),
            date_to=_parse_day(date_to),
            sort_order="asc" if sort_order == "asc" else "desc",
            limit=limit,
            offset=offset,
        )
    except ValueError as e:
        return f"Error: {e}"

    async with _lock:
        store = _get_store()
        result = store.search(options)
    return render_search_result(result)


@mcp.tool(
    description="List tags used in occurrences, with the number of occurrences per tag.",
    annotations=_READ_ONLY,
)
async def occurrences_tags() -> str:
    """List tags with counts."""
    async with _lock:
        store = _get_store()
        counts = store.get_all_tags()
    if not counts:
        return "No tags"
    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return "\n".join(f"{name}: {count}" for name, count in ordered)


@mcp.tool(
    description="Get one occurrence by its vault path.",
    annotations=_READ_ONLY,
)
async def occurrences_get(
    path: Annotated[str, Field(
        description='Vault path, e.g. "Occurrences/2025-01-10 0900 Standup.md".',
    )],
) -> str:
    """Get one occurrence."""
    async with _lock:
        store = _get_store()
        occurrence = store.get(path)
    if occurrence is None:
        return f"Not found: {path}"
    return render_occurrence(occurrence)


@mcp.tool(
    description=(
        "Create an occurrence file. Linked notes (participants, topics, location) "
        "are created empty if they don't exist."
    ),
    annotations=_CREATE,
)
async def occurrences_create(
    title: Annotated[str, Field(
        description="Title; becomes part of the filename.",
    )],
    occurred_at: Annotated[Optional[str], Field(
        description="ISO date/time it happened. Defaults to now.",
    )] = None,
    tags: Annotated[Optional[list[str]], Field(
        description="Tags.",
    )] = None,
    participants: Annotated[Optional[list[str]], Field(
        description="Names of participant notes.",
    )] = None,
    topics: Annotated[Optional[list[str]], Field(
        description="Names of topic notes.",
    )] = None,
    location: Annotated[Optional[str], Field(
        description="Name of a location note.",
    )] = None,
    to_process: Annotated[bool, Field(
        description="Flag for follow-up.",
    )] = False,
) -> str:
    """Create an occurrence."""
    try:
        draft = OccurrenceDraft(
            title=title,
            occurred_at=datetime.fromisoformat(occurred_at) if occurred_at else None,
            to_process=to_process,
            tags=tags or [],
            participants=participants or [],
            topics=topics or [],
            location=location,
        )
    except ValueError as e:
        return f"Error: {e}"

    async with _lock:
        store = _get_store()
        try:
            path = await create_occurrence(store.vault, store.config, draft)
        except (OccurrenceError, ValueError, OSError) as e:
            return f"Error: {e}"
    return f"Created: {path}"


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    """Run the MCP stdio server."""
    # anyio's stdin reader shields the blocking readline from cancellation,
    # so the first Ctrl+C would not take effect.
    signal.signal(signal.SIGINT, lambda *_: os._exit(130))
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
