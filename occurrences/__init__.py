"""
occurrences: an index of dated notes in a markdown vault.

Each occurrence is a markdown file in the vault's Occurrences folder whose
name carries a date prefix and whose header carries the timestamp, tags,
participants, topics and location. The store keeps an in-memory index of
these files, stays in sync with the vault, and answers searches.

Basic usage:

    from occurrences import FileSystemVault, OccurrenceStore, load_or_create_config

    vault = FileSystemVault(root)
    with OccurrenceStore(vault, load_or_create_config(root)) as store:
        result = store.search(tags=["work"], query="standup")
"""

__version__ = "0.1.0"

from .config import StoreConfig, RetryConfig, load_config, load_or_create_config, save_config
from .editor import OccurrenceDraft, create_occurrence, update_occurrence
from .errors import ConfigError, OccurrenceError, OccurrenceExistsError
from .events import (
    FileCreated,
    FileDeleted,
    FileRenamed,
    MetadataChanged,
    OccurrenceAdded,
    OccurrenceRemoved,
    OccurrenceUpdated,
    StoreLoaded,
)
from .protocol import VaultProtocol
from .retry import RetryPolicy, retry_until
from .search import SearchOptions, SearchResult
from .store import OccurrenceStore
from .types import FileRef, Link, Occurrence
from .vault import FileSystemVault

__all__ = [
    "__version__",
    "ConfigError",
    "FileCreated",
    "FileDeleted",
    "FileRef",
    "FileRenamed",
    "FileSystemVault",
    "Link",
    "MetadataChanged",
    "Occurrence",
    "OccurrenceAdded",
    "OccurrenceDraft",
    "OccurrenceError",
    "OccurrenceExistsError",
    "OccurrenceRemoved",
    "OccurrenceStore",
    "OccurrenceUpdated",
    "RetryConfig",
    "RetryPolicy",
    "SearchOptions",
    "SearchResult",
    "StoreConfig",
    "StoreLoaded",
    "VaultProtocol",
    "create_occurrence",
    "load_config",
    "load_or_create_config",
    "retry_until",
    "save_config",
    "update_occurrence",
]
