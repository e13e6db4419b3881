"""
Inverted indexes over occurrence records.

Two indexes are kept: tag -> paths and day (YYYY-MM-DD, local) -> paths.
Buckets are sets and are pruned as soon as they become empty, so the key
sets always reflect what is actually indexed.
"""

from typing import Iterable, Literal

from .types import Occurrence

IndexAction = Literal["add", "remove"]


class OccurrenceIndexes:
    """Tag and day indexes. Mutations are synchronous and total."""

    def __init__(self):
        self._tags: dict[str, set[str]] = {}
        self._days: dict[str, set[str]] = {}

    def index(self, occurrence: Occurrence, action: IndexAction) -> None:
        """Add or remove an occurrence's path from every bucket it belongs to."""
        if action not in ("add", "remove"):
            raise ValueError(f"Unknown index action: {action!r}")
        for tag in occurrence.tags:
            self._update(self._tags, tag, occurrence.path, action)
        self._update(self._days, occurrence.day, occurrence.path, action)

    @staticmethod
    def _update(index: dict[str, set[str]], key: str, path: str, action: IndexAction) -> None:
        if action == "add":
            index.setdefault(key, set()).add(path)
            return
        bucket = index.get(key)
        if bucket is None:
            return
        bucket.discard(path)
        if not bucket:
            del index[key]

    def clear(self) -> None:
        """Reset both indexes."""
        self._tags.clear()
        self._days.clear()

    # -------------------------------------------------------------------------
    # Read accessors
    # -------------------------------------------------------------------------

    def get_all_tags(self) -> dict[str, int]:
        """Tag -> number of occurrences carrying it."""
        return {tag: len(paths) for tag, paths in self._tags.items()}

    def paths_for_tags(self, tags: Iterable[str]) -> set[str]:
        """Union of the buckets for the given tags (OR semantics)."""
        result: set[str] = set()
        for tag in tags:
            result |= self._tags.get(tag, set())
        return result

    def paths_for_day(self, day: str) -> set[str]:
        """Paths occurring on a day (YYYY-MM-DD). O(1)."""
        return set(self._days.get(day, ()))

    def days(self) -> list[str]:
        """All indexed day keys."""
        return list(self._days)

    def tag_buckets(self) -> dict[str, set[str]]:
        """Copy of the tag index."""
        return {tag: set(paths) for tag, paths in self._tags.items()}

    def day_buckets(self) -> dict[str, set[str]]:
        """Copy of the day index."""
        return {day: set(paths) for day, paths in self._days.items()}
