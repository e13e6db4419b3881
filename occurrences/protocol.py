"""
Protocol definition for the vault: the external file and metadata layer.

The store never touches the filesystem directly. It enumerates files,
reads parsed headers from the vault's metadata cache, queries the
resolved-link table, and performs file operations through this
interface.

Implemented by:
- FileSystemVault (directory on disk, watched with watchdog)
- the in-memory vault used by the tests
"""

from typing import Any, Callable, Optional, Protocol, runtime_checkable

from .events import VaultEvent
from .types import FileRef


@runtime_checkable
class VaultProtocol(Protocol):
    """
    The external file layer consumed by the occurrence store.

    File operations are async and raise FileExistsError when the
    destination already exists and FileNotFoundError when the source is
    missing.
    """

    # -- Enumeration and metadata --

    def list_files(self) -> list[FileRef]: ...

    def get_file(self, path: str) -> Optional[FileRef]: ...

    def exists(self, path: str) -> bool: ...

    def get_frontmatter(self, path: str) -> Optional[dict[str, Any]]:
        """Parsed header for a file; None while the cache has no entry yet."""
        ...

    def resolved_links(self) -> dict[str, dict[str, int]]:
        """Source path -> {target path: link count}."""
        ...

    # -- Notifications --

    def subscribe(self, callback: Callable[[VaultEvent], None]) -> Callable[[], None]:
        """Register for lifecycle events. Returns an unsubscribe function."""
        ...

    # -- File operations --

    async def read(self, path: str) -> str: ...

    async def create(self, path: str, content: str) -> FileRef: ...

    async def modify(self, path: str, content: str) -> None: ...

    async def rename(self, path: str, new_path: str) -> FileRef: ...
