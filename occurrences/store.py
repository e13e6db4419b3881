"""
Occurrence store: the public surface of the package.

The store owns the path -> Occurrence map and the tag/day indexes. The
sync controller is the only background writer and goes through the same
mutation entry points (add, remove, update, restore) as any caller. The
query engine only reads.

Typical use:

    vault = FileSystemVault(root)
    with OccurrenceStore(vault, config) as store:
        result = store.search(SearchOptions(tags=["work"]))
"""

import logging
from typing import Any, Callable, Iterator, Optional

from .config import StoreConfig
from .events import (
    E,
    EventBus,
    OccurrenceAdded,
    OccurrenceRemoved,
    OccurrenceUpdated,
    StoreEvent,
    StoreLoaded,
)
from .indexes import OccurrenceIndexes
from .parser import OccurrenceParser
from .protocol import VaultProtocol
from .retry import RetryPolicy
from .search import OccurrenceSearch, SearchOptions, SearchResult
from .sync import SyncController
from .types import FileRef, Occurrence

logger = logging.getLogger(__name__)


class OccurrenceStore:
    """
    In-memory index of the occurrence files in a vault.

    Constructed explicitly and passed to whatever needs it; call init()
    to subscribe to the vault and load, shutdown() to detach.

    Args:
        vault: The external file layer
        config: Store configuration (folder, date format, field names)
        retry_policy: How long to wait for headers of new files
            (defaults to the config's [retry] section)
    """

    def __init__(
        self,
        vault: VaultProtocol,
        config: StoreConfig,
        *,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._vault = vault
        self._config = config
        self._items: dict[str, Occurrence] = {}
        self._indexes = OccurrenceIndexes()
        self._parser = OccurrenceParser(config)
        self._search = OccurrenceSearch(self._items, self._indexes, vault.resolved_links)
        self._events = EventBus()
        self._loading = False
        self._notifying = False
        self._loaded = False
        self._sync = SyncController(
            self,
            vault,
            self._parser,
            retry_policy or RetryPolicy.from_config(config.retry),
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def init(self) -> None:
        """Subscribe to vault events and load every occurrence file."""
        self._sync.attach()
        self.load()

    def shutdown(self) -> None:
        """Detach from the vault, cancel in-flight sync work, drop all state."""
        self._sync.detach()
        self._sync.cancel()
        self._items.clear()
        self._indexes.clear()
        self._loaded = False

    def __enter__(self) -> "OccurrenceStore":
        self.init()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False

    @property
    def vault(self) -> VaultProtocol:
        return self._vault

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def parser(self) -> OccurrenceParser:
        return self._parser

    @property
    def indexes(self) -> OccurrenceIndexes:
        return self._indexes

    @property
    def sync(self) -> SyncController:
        return self._sync

    @property
    def is_loaded(self) -> bool:
        return self._loaded and not self._loading

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def load(self) -> None:
        """
        Rebuild the map and indexes from the vault.

        A load already in progress (or one delivering its StoreLoaded) is a
        no-op. A file that fails to parse is logged and skipped.
        StoreLoaded is always emitted.
        """
        if self._loading or self._notifying:
            logger.debug("Load already in progress, skipping")
            return

        self._loading = True
        try:
            self._items.clear()
            self._indexes.clear()
            for file in self._vault.list_files():
                if not self._config.is_relevant(file.path):
                    continue
                try:
                    occurrence = self.parse_file(file)
                except Exception:
                    logger.exception("Failed to parse %s", file.path)
                    continue
                if occurrence is not None:
                    self._insert(occurrence)
            self._loaded = True
            logger.info("Loaded %d occurrences", len(self._items))
        except Exception:
            logger.exception("Error loading occurrence store")
        finally:
            self._loading = False
            # Subscribers see a loaded store; a load() from one of them is skipped
            self._notifying = True
            try:
                self.trigger(StoreLoaded(count=len(self._items)))
            finally:
                self._notifying = False

    def parse_file(self, file: FileRef) -> Optional[Occurrence]:
        """Parse a file using the vault's current header (empty if not cached)."""
        header = self._vault.get_frontmatter(file.path)
        return self._parser.parse(header, file.basename, file)

    # -------------------------------------------------------------------------
    # Read operations
    # -------------------------------------------------------------------------

    def get(self, path: str) -> Optional[Occurrence]:
        """Occurrence at a path, or None."""
        return self._items.get(path)

    def paths(self) -> list[str]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, path: object) -> bool:
        return path in self._items

    def __iter__(self) -> Iterator[Occurrence]:
        return iter(list(self._items.values()))

    def search(self, options: Optional[SearchOptions] = None, **kwargs: Any) -> SearchResult:
        """
        Search occurrences.

        Accepts a SearchOptions or its fields as keyword arguments:
            store.search(tags=["work"], date_from=date(2025, 1, 1))
        """
        if options is None:
            options = SearchOptions(**kwargs)
        elif kwargs:
            raise TypeError("Pass either a SearchOptions or keyword arguments, not both")
        return self._search.search(options)

    def get_all_tags(self) -> dict[str, int]:
        """Tag -> occurrence count."""
        return self._indexes.get_all_tags()

    # -------------------------------------------------------------------------
    # Mutation entry points
    # -------------------------------------------------------------------------

    def add(self, file: FileRef) -> Optional[Occurrence]:
        """
        Parse a file and add it to the store.

        Irrelevant files are ignored. Adding a path that is already known
        replaces its record and emits OccurrenceUpdated instead of
        OccurrenceAdded.
        """
        if not self._config.is_relevant(file.path):
            return None
        occurrence = self.parse_file(file)
        if occurrence is None:
            return None
        previous = self._items.get(occurrence.path)
        if previous is not None:
            self._replace(previous, occurrence)
            self.trigger(OccurrenceUpdated(occurrence=occurrence, previous=previous))
        else:
            self._insert(occurrence)
            self.trigger(OccurrenceAdded(occurrence=occurrence))
        return occurrence

    def remove(self, path: str) -> Optional[Occurrence]:
        """Remove the occurrence at a path. Returns it, or None if unknown."""
        occurrence = self._discard(path)
        if occurrence is not None:
            self.trigger(OccurrenceRemoved(path=path, occurrence=occurrence))
        return occurrence

    def update(self, occurrence: Occurrence) -> None:
        """Replace the record at occurrence.path with a freshly parsed one."""
        previous = self._items.get(occurrence.path)
        if previous is None:
            self._insert(occurrence)
            self.trigger(OccurrenceAdded(occurrence=occurrence))
            return
        self._replace(previous, occurrence)
        self.trigger(OccurrenceUpdated(occurrence=occurrence, previous=previous))

    def restore(self, occurrence: Occurrence) -> None:
        """Put back a record removed earlier (compensation after a failed rename)."""
        if occurrence.path in self._items:
            self.update(occurrence)
            return
        self._insert(occurrence)
        self.trigger(OccurrenceAdded(occurrence=occurrence))

    def _insert(self, occurrence: Occurrence) -> None:
        self._items[occurrence.path] = occurrence
        self._indexes.index(occurrence, "add")

    def _discard(self, path: str) -> Optional[Occurrence]:
        occurrence = self._items.pop(path, None)
        if occurrence is not None:
            self._indexes.index(occurrence, "remove")
        return occurrence

    def _replace(self, previous: Occurrence, occurrence: Occurrence) -> None:
        self._indexes.index(previous, "remove")
        self._items[occurrence.path] = occurrence
        self._indexes.index(occurrence, "add")

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def on(self, event_type: type[E], callback: Callable[[E], None]) -> Callable[[], None]:
        """Subscribe to a store event type. Returns an unsubscribe function."""
        return self._events.on(event_type, callback)

    def off(self, event_type: type[E], callback: Callable[[E], None]) -> None:
        self._events.off(event_type, callback)

    def trigger(self, event: StoreEvent) -> None:
        self._events.trigger(event)
