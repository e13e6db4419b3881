"""
Data types for the occurrence store.

An occurrence is one dated entry backed by one markdown file. Records are
read-only snapshots: the store replaces them wholesale when the file
changes, it never mutates one in place.
"""

import posixpath
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal, Optional


LinkKind = Literal["wiki", "markdown", "uri"]

# Logical properties that can be remapped to header field names.
# path, file and title are derived and never stored in the header.
MAPPABLE_PROPERTIES = ("occurredAt", "toProcess", "participants", "topics", "location")

# Header key for tags is fixed, never remapped
TAGS_FIELD = "tags"

DERIVED_PROPERTIES = frozenset({"path", "file", "title"})


def local_now() -> datetime:
    """Current time as an aware datetime in the local zone."""
    return datetime.now().astimezone()


def as_local(dt: datetime) -> datetime:
    """Return an aware datetime; naive values are taken as local time."""
    if dt.tzinfo is None:
        return dt.astimezone()
    return dt


def local_day(dt: datetime) -> str:
    """Calendar day (local zone) of a timestamp as YYYY-MM-DD."""
    return as_local(dt).astimezone().strftime("%Y-%m-%d")


@dataclass(frozen=True)
class FileRef:
    """
    Handle to a file in the vault.

    Owned by the vault; occurrences keep a reference but never modify it.

    Attributes:
        path: Vault-relative POSIX path (e.g. "Occurrences/2025-01-10 0900 Standup.md")
        ctime: Creation time, seconds since the epoch
        mtime: Last modification time, seconds since the epoch
    """
    path: str
    ctime: float = 0.0
    mtime: float = 0.0

    @property
    def name(self) -> str:
        """Filename with extension."""
        return posixpath.basename(self.path)

    @property
    def extension(self) -> str:
        """Extension including the dot, or empty string."""
        return posixpath.splitext(self.name)[1]

    @property
    def basename(self) -> str:
        """Filename without extension."""
        return posixpath.splitext(self.name)[0]

    @property
    def parent(self) -> str:
        """Parent folder path, empty string for the vault root."""
        return posixpath.dirname(self.path)

    @property
    def created(self) -> datetime:
        """Creation time as an aware local datetime."""
        return datetime.fromtimestamp(self.ctime, tz=timezone.utc).astimezone()


@dataclass(frozen=True)
class Link:
    """
    A structured reference to another file or URI.

    Attributes:
        kind: "wiki" ([[Target]]), "markdown" ([text](target)) or "uri" (obsidian://)
        target: The referenced file/page
        display_text: Text shown for the link
        section: Heading anchor for links like [[Page#Section]]
        alias: Alias part of a wikilink (after the pipe)
        vault: Vault name for URI links
    """
    kind: LinkKind
    target: str
    display_text: Optional[str] = None
    section: Optional[str] = None
    alias: Optional[str] = None
    vault: Optional[str] = None


@dataclass(frozen=True)
class Occurrence:
    """
    A parsed occurrence record.

    Identity is the storage path. A rename is modelled as removal at the
    old path and a new record at the new path.
    """
    path: str
    file: FileRef = field(compare=False, repr=False)
    title: str
    occurred_at: datetime
    to_process: bool = True
    tags: tuple[str, ...] = ()
    participants: tuple[Link, ...] = ()
    topics: tuple[Link, ...] = ()
    location: Optional[Link] = None

    @property
    def day(self) -> str:
        """Local calendar day key (YYYY-MM-DD)."""
        return local_day(self.occurred_at)

    def __str__(self) -> str:
        return f"{self.occurred_at.isoformat()} {self.title}"

    def to_dict(self) -> dict:
        """JSON-serializable view; links are reduced to their targets."""
        return {
            "path": self.path,
            "title": self.title,
            "occurred_at": self.occurred_at.isoformat(),
            "to_process": self.to_process,
            "tags": list(self.tags),
            "participants": [link.target for link in self.participants],
            "topics": [link.target for link in self.topics],
            "location": self.location.target if self.location else None,
        }


# ---------------------------------------------------------------------------
# Equality
# ---------------------------------------------------------------------------

def links_equal(a: Optional[Link], b: Optional[Link]) -> bool:
    """Compare two links on kind, target and display text. None equals None."""
    if a is None and b is None:
        return True
    if a is None or b is None:
        return False
    return (
        a.kind == b.kind
        and a.target == b.target
        and a.display_text == b.display_text
    )


def link_sequences_equal(a: tuple[Link, ...], b: tuple[Link, ...]) -> bool:
    """Ordered, element-wise link comparison."""
    if len(a) != len(b):
        return False
    return all(links_equal(x, y) for x, y in zip(a, b))


def occurrences_equal(a: Occurrence, b: Occurrence) -> bool:
    """
    Check whether two records carry the same header data.

    Compares occurred_at (as an instant), to_process, tags, participants,
    topics and location. Path, file and title are not compared: the title
    is derived from the filename, and a filename change arrives as a
    rename instead.
    """
    return (
        a.occurred_at == b.occurred_at
        and a.to_process == b.to_process
        and tuple(a.tags) == tuple(b.tags)
        and link_sequences_equal(a.participants, b.participants)
        and link_sequences_equal(a.topics, b.topics)
        and links_equal(a.location, b.location)
    )
