"""
Query engine over the occurrence map and its indexes.

Filters are applied in a fixed order, each narrowing the candidate set:
reverse link, tags, title text, date, then the to_process flag on the
resolved records. Results are sorted by occurred_at and paginated;
aggregate metadata is computed over the full filtered result set.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Literal, Mapping, Optional, Sequence

from .indexes import OccurrenceIndexes
from .types import Occurrence, local_day

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100

# Maximum edit distance for a fuzzy title-word match
MAX_FUZZY_DISTANCE = 2

SortOrder = Literal["asc", "desc"]


@dataclass
class SearchOptions:
    """
    Search parameters. Every filter is optional and filters are AND'd,
    except tags which match any of the given tags.

    Attributes:
        query: Title text (substring, word prefix, or fuzzy word match)
        tags: Match occurrences carrying any of these tags
        links_to: Vault path; match occurrences that link to it
        to_process: Match occurrences with this flag value
        date_from: First day, inclusive
        date_to: Last day, inclusive
        sort_order: "asc" or "desc" by occurred_at
        limit: Page size
        offset: Page start
    """
    query: Optional[str] = None
    tags: Sequence[str] = ()
    links_to: Optional[str] = None
    to_process: Optional[bool] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    sort_order: SortOrder = "desc"
    limit: int = DEFAULT_LIMIT
    offset: int = 0


@dataclass(frozen=True)
class Pagination:
    total: int
    has_more: bool
    offset: int
    limit: int


@dataclass(frozen=True)
class SearchMetadata:
    """Distinct link targets across the whole filtered result set."""
    participants: list[str] = field(default_factory=list)
    locations: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SearchResult:
    items: list[Occurrence]
    pagination: Pagination
    metadata: SearchMetadata


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit cost insertion, deletion and substitution."""
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(a) + 1))
    for j in range(1, len(b) + 1):
        current = [j] + [0] * len(a)
        for i in range(1, len(a) + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            current[i] = min(
                current[i - 1] + 1,       # deletion
                previous[i] + 1,          # insertion
                previous[i - 1] + cost,   # substitution
            )
        previous = current
    return previous[len(a)]


def matches_title(title: str, query: str) -> bool:
    """
    Case-insensitive title match.

    True on a substring match, or when any whitespace-delimited word of the
    title starts with the query or is within MAX_FUZZY_DISTANCE edits of it.
    """
    title_lower = title.lower()
    query_lower = query.lower()
    if query_lower in title_lower:
        return True
    return any(
        word.startswith(query_lower)
        or levenshtein_distance(word, query_lower) <= MAX_FUZZY_DISTANCE
        for word in title_lower.split()
    )


def _day_key(value: date) -> str:
    if isinstance(value, datetime):
        return local_day(value)
    return value.strftime("%Y-%m-%d")


class OccurrenceSearch:
    """
    Read-only search over the store's map and indexes.

    Args:
        items: The store's path -> Occurrence map (read, never written)
        indexes: The store's tag and day indexes
        resolved_links: Callable returning the vault's resolved-link table
            (source path -> {target path: count})
    """

    def __init__(
        self,
        items: Mapping[str, Occurrence],
        indexes: OccurrenceIndexes,
        resolved_links: Callable[[], Mapping[str, Mapping[str, int]]],
    ):
        self._items = items
        self._indexes = indexes
        self._resolved_links = resolved_links

    def search(self, options: Optional[SearchOptions] = None) -> SearchResult:
        """Run a search. See SearchOptions for the filters."""
        options = options or SearchOptions()
        candidates = set(self._items)

        if options.links_to:
            candidates &= self._search_by_reverse_links(options.links_to)

        if options.tags:
            candidates &= self._indexes.paths_for_tags(options.tags)

        if options.query:
            candidates = {
                path for path in candidates
                if matches_title(self._items[path].title, options.query)
            }

        if options.date_from is not None or options.date_to is not None:
            candidates &= self._search_by_date(options.date_from, options.date_to)

        results = [self._items[path] for path in candidates if path in self._items]

        if options.to_process is not None:
            results = [o for o in results if o.to_process == options.to_process]

        results.sort(
            key=lambda o: (o.occurred_at.timestamp(), o.path),
            reverse=options.sort_order == "desc",
        )

        total = len(results)
        offset = max(options.offset or 0, 0)
        limit = options.limit if options.limit and options.limit > 0 else DEFAULT_LIMIT

        return SearchResult(
            items=results[offset:offset + limit],
            pagination=Pagination(
                total=total,
                has_more=offset + limit < total,
                offset=offset,
                limit=limit,
            ),
            metadata=self._calculate_metadata(results),
        )

    def _search_by_reverse_links(self, target_path: str) -> set[str]:
        """
        Paths of occurrences whose resolved links include target_path.

        Scans every known occurrence against the vault's link table; there
        is no reverse-link index.
        """
        resolved = self._resolved_links()
        return {
            path for path in self._items
            if target_path in resolved.get(path, {})
        }

    def _search_by_date(self, date_from: Optional[date], date_to: Optional[date]) -> set[str]:
        from_key = _day_key(date_from) if date_from is not None else None
        to_key = _day_key(date_to) if date_to is not None else None

        if from_key is not None and from_key == to_key:
            return self._indexes.paths_for_day(from_key)

        results: set[str] = set()
        for day in self._indexes.days():
            if from_key is not None and day < from_key:
                continue
            if to_key is not None and day > to_key:
                continue
            results |= self._indexes.paths_for_day(day)
        return results

    @staticmethod
    def _calculate_metadata(occurrences: list[Occurrence]) -> SearchMetadata:
        participants: set[str] = set()
        locations: set[str] = set()
        for occurrence in occurrences:
            participants.update(link.target for link in occurrence.participants)
            if occurrence.location and occurrence.location.target:
                locations.add(occurrence.location.target)
        return SearchMetadata(
            participants=sorted(participants),
            locations=sorted(locations),
        )
