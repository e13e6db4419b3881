"""
Link parsing and formatting.

Three link forms are recognized:
- wikilinks: [[Target]], [[Target#Section]], [[Target|Alias]]
- markdown links: [Text](target)
- vault URIs: obsidian://open?file=...&vault=...
"""

import re
from typing import Any, Optional
from urllib.parse import parse_qs, quote, unquote, urlparse

from .types import Link

_WIKI_LINK_RE = re.compile(r"\[\[(.*?)(?:#(.*?))?(?:\|(.*?))?\]\]")
_MARKDOWN_LINK_RE = re.compile(r"\[([^\[\]]*)\]\(([^()]*)\)")
_URI_LINK_RE = re.compile(r"obsidian://open\?file=(.*?)&vault=(\S*)")

URI_SCHEME = "obsidian://"


def _wiki_link(match: re.Match) -> Link:
    target, section, alias = match.group(1), match.group(2), match.group(3)
    return Link(
        kind="wiki",
        target=target or "",
        section=section or None,
        display_text=alias or target or "",
        alias=alias or None,
    )


def _markdown_link(match: re.Match) -> Link:
    label, target = match.group(1), match.group(2)
    if target.startswith(URI_SCHEME):
        params = parse_qs(urlparse(target).query)
        return Link(
            kind="uri",
            target=params.get("file", [""])[0],
            vault=params.get("vault", [None])[0],
            display_text=label,
        )
    return Link(kind="markdown", target=target, display_text=label)


def _uri_link(match: re.Match) -> Link:
    return Link(
        kind="uri",
        target=unquote(match.group(1)),
        vault=unquote(match.group(2)),
        display_text=match.group(1),
    )


_LINK_FORMS = (
    (_WIKI_LINK_RE, _wiki_link),
    (_MARKDOWN_LINK_RE, _markdown_link),
    (_URI_LINK_RE, _uri_link),
)


def parse_link(text: Any) -> Optional[Link]:
    """
    Parse the first link found in a string.

    Wikilinks take precedence over markdown links, which take precedence
    over bare URIs. Returns None for non-strings and strings without a
    recognizable link.
    """
    if not isinstance(text, str):
        return None
    for pattern, build in _LINK_FORMS:
        match = pattern.search(text)
        if match:
            return build(match)
    return None


def format_link(link: Link) -> str:
    """Render a link back to its markdown form."""
    if link.kind == "wiki":
        text = f"[[{link.target}"
        if link.section:
            text += f"#{link.section}"
        if link.alias:
            text += f"|{link.alias}"
        return text + "]]"

    if link.kind == "markdown":
        return f"[{link.display_text or link.target}]({link.target})"

    if link.kind == "uri":
        uri = f"{URI_SCHEME}open?file={quote(link.target, safe='')}"
        if link.vault:
            uri += f"&vault={quote(link.vault, safe='')}"
        return f"[{link.display_text or link.target}]({uri})"

    return ""


def extract_links(markdown: str) -> list[Link]:
    """
    Extract every link from a markdown string.

    Wikilinks come first, then markdown links, then bare URIs, each in
    document order.
    """
    return [
        build(match)
        for pattern, build in _LINK_FORMS
        for match in pattern.finditer(markdown)
    ]


def is_link(text: str) -> bool:
    """Check whether a string contains any recognizable link."""
    return any(pattern.search(text) for pattern, _ in _LINK_FORMS)


def convert_list_to_links(value: Any) -> tuple[Link, ...]:
    """
    Convert a header list to links.

    Non-list values, non-string entries and entries without a link are
    dropped, so a malformed header yields an empty tuple.

    Example:
        >>> [l.target for l in convert_list_to_links(["[[Ann]]", "[[Bo|B]]", "text"])]
        ['Ann', 'Bo']
    """
    if not isinstance(value, list):
        return ()
    links = (parse_link(item) for item in value if isinstance(item, str))
    return tuple(link for link in links if link is not None)
