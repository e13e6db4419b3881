"""
Reading and writing the header block of occurrence files.

A header is a key/value block delimited by ``---`` lines at the top of
the file. Everything after the closing ``---`` line is the body and is
preserved byte-for-byte when the header is rewritten.
"""

import logging
import re
from datetime import datetime
from typing import Any, Optional

import yaml

from .types import as_local

logger = logging.getLogger(__name__)

HEADER_DELIMITER = "---"

# Header block at the very start of the file; group 1 = header text
_HEADER_RE = re.compile(r"\A---\r?\n(.*?\r?\n)?---[ \t]*(?:\r?\n|\Z)", re.DOTALL)


class _HeaderLoader(yaml.SafeLoader):
    """Safe loader that leaves timestamps as strings.

    The timezone offset written in the header must survive verbatim, so
    timestamps are parsed by the record parser rather than by YAML.
    """


_HeaderLoader.yaml_implicit_resolvers = {
    key: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:timestamp"]
    for key, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def split_document(text: str) -> tuple[Optional[str], str]:
    """
    Split file content into (header_text, body).

    Returns (None, text) when the file has no header block.
    """
    match = _HEADER_RE.match(text)
    if not match:
        return None, text
    return match.group(1) or "", text[match.end():]


def parse_header(header_text: str) -> dict[str, Any]:
    """
    Parse header text into a mapping.

    Raises:
        ValueError: If the header is not valid YAML or not a mapping
    """
    try:
        data = yaml.load(header_text, Loader=_HeaderLoader)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid header: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Header must be a mapping, got {type(data).__name__}")
    return {str(k): v for k, v in data.items()}


def read_header(text: str) -> dict[str, Any]:
    """Header mapping of a document; empty when there is no header block."""
    header_text, _ = split_document(text)
    if header_text is None:
        return {}
    return parse_header(header_text)


def format_value(value: Any) -> str:
    """
    Format a scalar for a header line.

    Strings containing ':' or '#', or starting with '[', are double-quoted.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, datetime):
        return format_value(format_timestamp(value))
    if isinstance(value, str):
        if ":" in value or "#" in value or value.startswith("["):
            escaped = value.replace("\\", "\\\\").replace('"', '\\"')
            return f'"{escaped}"'
        return value
    return format_value(str(value))


def render_header(header: dict[str, Any]) -> str:
    """
    Render a header mapping as header text (without the ``---`` lines).

    None values and empty lists are omitted. Lists are written as a key
    line followed by indented ``- value`` lines.
    """
    lines: list[str] = []
    for key, value in header.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            items = [item for item in value if item is not None]
            if not items:
                continue
            lines.append(f"{key}:")
            lines.extend(f"  - {format_value(item)}" for item in items)
        else:
            lines.append(f"{key}: {format_value(value)}")
    return "\n".join(lines) + "\n"


def render_document(header: dict[str, Any], body: str = "\n") -> str:
    """Full file content: header block followed by the body."""
    return f"{HEADER_DELIMITER}\n{render_header(header)}{HEADER_DELIMITER}\n{body}"


def replace_header(text: str, header: dict[str, Any]) -> str:
    """Rewrite the header block of a document, keeping its body unchanged."""
    _, body = split_document(text)
    return render_document(header, body)


def format_offset(dt: datetime) -> str:
    """UTC offset of an aware datetime as +HH:MM / -HH:MM."""
    offset = dt.utcoffset()
    total = int(offset.total_seconds() // 60) if offset is not None else 0
    sign = "+" if total >= 0 else "-"
    hours, minutes = divmod(abs(total), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


def parse_offset(offset: str) -> Optional[int]:
    """Parse +HH:MM / -HH:MM to minutes east of UTC; None if malformed."""
    match = re.fullmatch(r"([+-])(\d{2}):(\d{2})", offset)
    if not match:
        return None
    sign = 1 if match.group(1) == "+" else -1
    return sign * (int(match.group(2)) * 60 + int(match.group(3)))


def format_timestamp(dt: datetime) -> str:
    """
    Format a timestamp for the header: YYYY-MM-DDTHH:MM:SS+HH:MM.

    The datetime's own offset is kept; naive values are taken as local.
    """
    dt = as_local(dt)
    return dt.strftime("%Y-%m-%dT%H:%M:%S") + format_offset(dt)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a header timestamp to an aware datetime.

    Accepts ISO 8601 strings (with or without offset, 'Z' allowed) and
    datetime objects. Naive values are taken as local time. Returns None
    for missing or unparseable values.
    """
    if isinstance(value, datetime):
        return as_local(value)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return as_local(datetime.fromisoformat(text))
    except ValueError:
        logger.debug("Unparseable timestamp %r", value)
        return None
