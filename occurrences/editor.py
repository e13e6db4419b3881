"""
Creating and editing occurrence files.

These helpers write through the vault. The store picks the changes up
from the vault's events like any other edit.
"""

import logging
import posixpath
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from .config import StoreConfig
from .errors import OccurrenceError, OccurrenceExistsError
from .frontmatter import format_timestamp, parse_offset, read_header, render_document, replace_header
from .parser import OccurrenceParser
from .protocol import VaultProtocol
from .types import Occurrence, TAGS_FIELD, as_local, local_now

logger = logging.getLogger(__name__)


@dataclass
class OccurrenceDraft:
    """
    Values for a new or edited occurrence.

    participants, topics and location are file basenames (or paths);
    they are written to the header as wikilinks.

    Attributes:
        timezone_offset: "+HH:MM" offset to write the timestamp in. The
            local offset is used when None or malformed.
    """
    title: str
    occurred_at: Optional[datetime] = None
    to_process: bool = False
    tags: list[str] = field(default_factory=list)
    participants: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)
    location: Optional[str] = None
    timezone_offset: Optional[str] = None

    @classmethod
    def from_occurrence(cls, occurrence: Occurrence) -> "OccurrenceDraft":
        """
        Draft pre-filled from an existing record.

        Links keep only their targets, so writing the draft back turns
        aliased or markdown links such as ``[[Bo|Bobby]]`` into plain
        ``[[Bo]]`` wikilinks.
        """
        return cls(
            title=occurrence.title,
            occurred_at=occurrence.occurred_at,
            to_process=occurrence.to_process,
            tags=list(occurrence.tags),
            participants=[link.target for link in occurrence.participants],
            topics=[link.target for link in occurrence.topics],
            location=occurrence.location.target if occurrence.location else None,
        )


def extract_basename(target: str) -> str:
    """Basename of a link target: last path segment without .md."""
    name = target.rsplit("/", 1)[-1]
    return name[:-3] if name.endswith(".md") else name


def format_header_timestamp(dt: datetime, offset: Optional[str] = None) -> str:
    """Header timestamp for dt, written in the given +HH:MM offset when valid."""
    minutes = parse_offset(offset) if offset else None
    if minutes is None:
        return format_timestamp(dt)
    return format_timestamp(as_local(dt).astimezone(timezone(timedelta(minutes=minutes))))


async def ensure_file_exists(vault: VaultProtocol, basename: str) -> None:
    """Create an empty note at the vault root unless one with this basename exists."""
    basename = extract_basename(basename)
    if any(f.basename == basename for f in vault.list_files()):
        return
    await vault.create(f"{basename}.md", "")
    logger.info("Created %s.md", basename)


def _wikilinks(targets: list[str]) -> list[str]:
    return [f"[[{extract_basename(t)}]]" for t in targets]


async def _apply_draft(
    vault: VaultProtocol,
    config: StoreConfig,
    header: dict[str, Any],
    draft: OccurrenceDraft,
    occurred_at: datetime,
) -> dict[str, Any]:
    """Write the draft's values into a header mapping; create missing linked notes."""
    header[config.field_name("occurredAt")] = format_header_timestamp(occurred_at, draft.timezone_offset)
    header[config.field_name("toProcess")] = draft.to_process

    if draft.tags:
        header[TAGS_FIELD] = list(draft.tags)
    else:
        header.pop(TAGS_FIELD, None)

    location_field = config.field_name("location")
    if draft.location:
        await ensure_file_exists(vault, draft.location)
        header[location_field] = f"[[{extract_basename(draft.location)}]]"
    else:
        header.pop(location_field, None)

    for prop, values in (("participants", draft.participants), ("topics", draft.topics)):
        name = config.field_name(prop)
        if values:
            for value in values:
                await ensure_file_exists(vault, value)
            header[name] = _wikilinks(values)
        else:
            header.pop(name, None)
    return header


async def create_occurrence(
    vault: VaultProtocol,
    config: StoreConfig,
    draft: OccurrenceDraft,
) -> str:
    """
    Create a new occurrence file.

    The file goes to <folder>/<date prefix> <title><extension>, with a
    header and an empty body.

    Returns:
        Vault path of the new file

    Raises:
        OccurrenceError: If the title is empty
        OccurrenceExistsError: If a file with that name already exists
    """
    title = draft.title.strip()
    if not title:
        raise OccurrenceError("Title is required")

    parser = OccurrenceParser(config)
    occurred_at = draft.occurred_at or local_now()
    path = posixpath.join(config.folder, parser.filename_for(title, occurred_at) + config.extension)
    if vault.exists(path):
        raise OccurrenceExistsError(path)

    header = await _apply_draft(vault, config, {}, draft, occurred_at)
    try:
        await vault.create(path, render_document(header, "\n"))
    except FileExistsError as e:
        raise OccurrenceExistsError(path) from e
    logger.info("Created occurrence %s", path)
    return path


async def update_occurrence(
    vault: VaultProtocol,
    config: StoreConfig,
    occurrence: Occurrence,
    draft: OccurrenceDraft,
) -> str:
    """
    Rewrite an existing occurrence file from a draft.

    Renames the file when the date prefix or title changes, rewrites the
    mapped header fields, keeps any other header keys, and leaves the
    body untouched.

    Returns:
        Vault path of the file after the update

    Raises:
        OccurrenceExistsError: If the new name is taken by another file
    """
    title = draft.title.strip() or occurrence.title
    parser = OccurrenceParser(config)
    occurred_at = draft.occurred_at or local_now()

    path = occurrence.path
    content = await vault.read(path)
    try:
        header = read_header(content)
    except ValueError as e:
        logger.warning("Replacing unreadable header of %s: %s", path, e)
        header = {}

    parent = posixpath.dirname(path)
    new_path = posixpath.join(parent, parser.filename_for(title, occurred_at) + config.extension)
    if new_path != path and vault.exists(new_path):
        raise OccurrenceExistsError(new_path)

    header = await _apply_draft(vault, config, header, draft, occurred_at)

    # Rename and rewrite back to back so handlers see the new header
    if new_path != path:
        try:
            await vault.rename(path, new_path)
        except FileExistsError as e:
            raise OccurrenceExistsError(new_path) from e
        logger.info("Renamed %s to %s", path, new_path)
        path = new_path

    await vault.modify(path, replace_header(content, header))
    return path
