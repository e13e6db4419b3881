"""
Shared pytest fixtures for occurrences tests.

Provides an in-memory vault so store and sync tests run without touching
the filesystem or starting a watchdog observer.
"""

from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from occurrences.config import RetryConfig, StoreConfig
from occurrences.events import FileCreated, FileDeleted, FileRenamed, MetadataChanged, VaultEvent
from occurrences.frontmatter import read_header, render_document
from occurrences.store import OccurrenceStore
from occurrences.types import FileRef


class MemoryVault:
    """
    In-memory vault for testing.

    Mirrors the behaviour of a real vault's metadata cache: with
    ``delay_metadata`` set, created files have no header in the cache
    until ``publish_metadata`` is called.
    """

    def __init__(self):
        self.files: dict[str, FileRef] = {}
        self.contents: dict[str, str] = {}
        self.headers: dict[str, dict[str, Any]] = {}
        self.links: dict[str, dict[str, int]] = {}
        self.subscribers: list[Callable[[VaultEvent], None]] = []
        self.rename_calls: list[tuple[str, str]] = []
        self.fail_rename: Optional[Exception] = None
        self.delay_metadata = False
        self._clock = 1_700_000_000.0

    # -- test helpers --

    def _tick(self) -> float:
        self._clock += 60
        return self._clock

    def add_file(self, path: str, header: Optional[dict] = None, body: str = "\n",
                 ctime: Optional[float] = None) -> FileRef:
        """Put a file in the vault without emitting events (pre-existing content)."""
        ref = FileRef(path=path, ctime=ctime if ctime is not None else self._tick(), mtime=self._clock)
        self.files[path] = ref
        self.contents[path] = render_document(header, body) if header is not None else body
        if header is not None:
            self.headers[path] = dict(header)
        return ref

    def emit(self, event: VaultEvent) -> None:
        for callback in list(self.subscribers):
            callback(event)

    def publish_metadata(self, path: str) -> None:
        """Let the metadata cache catch up with a file's content."""
        self.headers[path] = read_header(self.contents[path])
        self.emit(MetadataChanged(path))

    def set_header(self, path: str, header: dict) -> None:
        """Simulate an external edit of a file's header."""
        self.contents[path] = render_document(header)
        self.headers[path] = dict(header)
        self.emit(MetadataChanged(path))

    def delete(self, path: str) -> None:
        """Simulate an external delete."""
        self.files.pop(path, None)
        self.contents.pop(path, None)
        self.headers.pop(path, None)
        self.emit(FileDeleted(path))

    def move(self, path: str, new_path: str) -> None:
        """Simulate an external rename."""
        ref = self.files.pop(path)
        self.files[new_path] = FileRef(path=new_path, ctime=ref.ctime, mtime=ref.mtime)
        self.contents[new_path] = self.contents.pop(path)
        header = self.headers.pop(path, None)
        if header is not None:
            self.headers[new_path] = header
        self.emit(FileRenamed(path=new_path, old_path=path))

    # -- VaultProtocol --

    def list_files(self) -> list[FileRef]:
        return list(self.files.values())

    def get_file(self, path: str) -> Optional[FileRef]:
        return self.files.get(path)

    def exists(self, path: str) -> bool:
        return path in self.files

    def get_frontmatter(self, path: str) -> Optional[dict[str, Any]]:
        header = self.headers.get(path)
        return dict(header) if header is not None else None

    def resolved_links(self) -> dict[str, dict[str, int]]:
        return self.links

    def subscribe(self, callback: Callable[[VaultEvent], None]) -> Callable[[], None]:
        self.subscribers.append(callback)
        return lambda: self.subscribers.remove(callback)

    async def read(self, path: str) -> str:
        if path not in self.contents:
            raise FileNotFoundError(path)
        return self.contents[path]

    async def create(self, path: str, content: str) -> FileRef:
        if path in self.files:
            raise FileExistsError(path)
        ref = FileRef(path=path, ctime=self._tick(), mtime=self._clock)
        self.files[path] = ref
        self.contents[path] = content
        self.emit(FileCreated(path))
        if not self.delay_metadata:
            self.publish_metadata(path)
        return ref

    async def modify(self, path: str, content: str) -> None:
        if path not in self.files:
            raise FileNotFoundError(path)
        self.contents[path] = content
        self.headers[path] = read_header(content)
        self.emit(MetadataChanged(path))

    async def rename(self, path: str, new_path: str) -> FileRef:
        self.rename_calls.append((path, new_path))
        if self.fail_rename is not None:
            raise self.fail_rename
        if path not in self.files:
            raise FileNotFoundError(path)
        if new_path in self.files:
            raise FileExistsError(new_path)
        self.move(path, new_path)
        self.emit(MetadataChanged(new_path))
        return self.files[new_path]


def occ(basename: str) -> str:
    """Vault path of an occurrence file."""
    return f"Occurrences/{basename}.md"


@pytest.fixture
def vault():
    return MemoryVault()


@pytest.fixture
def config(tmp_path: Path) -> StoreConfig:
    """Default config with a short retry so exhaustion tests stay fast."""
    return StoreConfig(path=tmp_path, retry=RetryConfig(attempts=3, delay=0.001))


@pytest.fixture
def store(vault, config):
    """Loaded store attached to the in-memory vault."""
    s = OccurrenceStore(vault, config)
    s.init()
    yield s
    s.shutdown()
