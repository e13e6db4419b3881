"""
Record parser: header mapping + filename -> Occurrence.

The parser is best-effort. Any relevant file produces a record; a missing
or unparseable timestamp is coerced to the file's creation time and the
record is flagged to_process so it shows up for triage.
"""

import logging
import re
from datetime import datetime
from typing import Any, Optional

from .config import StoreConfig
from .frontmatter import parse_timestamp
from .links import convert_list_to_links, parse_link
from .types import FileRef, Occurrence, TAGS_FIELD

logger = logging.getLogger(__name__)

# Date tokens in the order they are substituted
_DATE_TOKENS = ("YYYY", "MM", "DD", "HH", "mm", "ss")
_TOKEN_WIDTH = {"YYYY": 4, "MM": 2, "DD": 2, "HH": 2, "mm": 2, "ss": 2}


def compile_date_prefix(date_format: str) -> re.Pattern:
    """
    Convert a date format like "YYYY-MM-DD HHmm" into an anchored regex.

    Literal characters are escaped; each token becomes a digit run of its
    width.
    """
    token_re = re.compile("|".join(_DATE_TOKENS))
    parts: list[str] = []
    pos = 0
    for match in token_re.finditer(date_format):
        parts.append(re.escape(date_format[pos:match.start()]))
        parts.append(r"\d{%d}" % _TOKEN_WIDTH[match.group(0)])
        pos = match.end()
    parts.append(re.escape(date_format[pos:]))
    return re.compile("^" + "".join(parts))


def format_date(dt: datetime, date_format: str) -> str:
    """Render a datetime (in local time) with the date format tokens."""
    local = dt.astimezone()
    values = {
        "YYYY": f"{local.year:04d}",
        "MM": f"{local.month:02d}",
        "DD": f"{local.day:02d}",
        "HH": f"{local.hour:02d}",
        "mm": f"{local.minute:02d}",
        "ss": f"{local.second:02d}",
    }
    return re.sub("|".join(_DATE_TOKENS), lambda m: values[m.group(0)], date_format)


def normalize_tags(value: Any) -> tuple[str, ...]:
    """Tags from a header value: absent, a single string, or a list."""
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list):
        return tuple(
            str(tag) for tag in value
            if isinstance(tag, (str, int, float)) and not isinstance(tag, bool) and str(tag)
        )
    return ()


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


class OccurrenceParser:
    """
    Builds Occurrence records from header mappings.

    Field names are resolved through the store config, so a vault can keep
    its own header vocabulary.
    """

    def __init__(self, config: StoreConfig):
        self._config = config
        self._prefix_re = compile_date_prefix(config.date_format)

    @property
    def config(self) -> StoreConfig:
        return self._config

    def strip_prefix(self, basename: str) -> str:
        """Filename without its date prefix, trimmed."""
        return self._prefix_re.sub("", basename, count=1).strip()

    def format_prefix(self, dt: datetime) -> str:
        """Date prefix for a filename."""
        return format_date(dt, self._config.date_format)

    def filename_for(self, title: str, dt: datetime) -> str:
        """Basename (no extension) for a title occurring at dt."""
        prefix = self.format_prefix(dt)
        return f"{prefix} {title}" if title else prefix

    def parse_occurred_at(self, header: dict[str, Any]) -> Optional[datetime]:
        """Header timestamp, or None when absent/unparseable."""
        return parse_timestamp(header.get(self._config.field_name("occurredAt")))

    def parse(
        self,
        header: Optional[dict[str, Any]],
        basename: str,
        file: FileRef,
    ) -> Optional[Occurrence]:
        """
        Parse one file into an Occurrence.

        Args:
            header: Header mapping from the metadata cache (None = empty)
            basename: Filename without extension
            file: The vault's handle for the file

        Returns:
            The record, or None if the file is not an occurrence file
        """
        if not self._config.is_relevant(file.path):
            return None
        header = header or {}
        field = self._config.field_name

        occurred_at = self.parse_occurred_at(header)
        if occurred_at is None:
            occurred_at = file.created
            to_process = True
        else:
            to_process = _as_bool(header.get(field("toProcess"), False))

        return Occurrence(
            path=file.path,
            file=file,
            title=self.strip_prefix(basename),
            occurred_at=occurred_at,
            to_process=to_process,
            tags=normalize_tags(header.get(TAGS_FIELD)),
            participants=convert_list_to_links(header.get(field("participants"))),
            topics=convert_list_to_links(header.get(field("topics"))),
            location=parse_link(header.get(field("location"))),
        )

    def expected_filename(
        self,
        header: Optional[dict[str, Any]],
        current_basename: str,
    ) -> Optional[str]:
        """
        Filename (without extension) the file should have for its header.

        Returns None when the header has no usable timestamp or when the
        current name already matches.
        """
        occurred_at = self.parse_occurred_at(header or {})
        if occurred_at is None:
            return None
        expected = self.filename_for(self.strip_prefix(current_basename), occurred_at)
        if expected == current_basename:
            return None
        return expected
