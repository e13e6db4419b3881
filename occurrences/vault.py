"""
Filesystem vault: a directory of markdown files.

Keeps a metadata cache (parsed header and outgoing links per file), a
resolved-link table, and turns filesystem changes into VaultEvents.

Changes are picked up two ways:
- file operations made through the vault (create, modify, rename) update
  the cache and emit events directly;
- external edits are detected by a watchdog observer. Its thread only
  forwards raw notifications to the event loop; the cache is updated and
  events are emitted on the loop thread.

Notifications for changes the cache already reflects (our own writes
echoed back by watchdog) are dropped.
"""

import asyncio
import logging
import os
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Iterable, Optional
from urllib.parse import unquote

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .events import FileCreated, FileDeleted, FileRenamed, MetadataChanged, VaultEvent
from .frontmatter import read_header, split_document
from .links import extract_links
from .types import FileRef, Link

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = (".md",)


def _header_links(header: dict[str, Any]) -> list[Link]:
    """Links found in string values (and lists of strings) of a header."""
    links: list[Link] = []
    for value in header.values():
        values = value if isinstance(value, list) else [value]
        for item in values:
            if isinstance(item, str):
                links.extend(extract_links(item))
    return links


class _ForwardingHandler(FileSystemEventHandler):
    """Forwards watchdog notifications to the vault on its event loop."""

    def __init__(self, vault: "FileSystemVault", loop: asyncio.AbstractEventLoop):
        super().__init__()
        self._vault = vault
        self._loop = loop

    def _forward(self, kind: str, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        src = os.fsdecode(event.src_path)
        dest = os.fsdecode(getattr(event, "dest_path", "") or "")
        self._loop.call_soon_threadsafe(self._vault._on_fs_event, kind, src, dest)

    def on_created(self, event: FileSystemEvent) -> None:
        self._forward("created", event)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._forward("modified", event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._forward("deleted", event)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._forward("moved", event)


class FileSystemVault:
    """
    VaultProtocol implementation over a local directory.

    Args:
        root: Vault root directory
        extensions: File extensions tracked by the metadata cache
    """

    def __init__(self, root: Path, *, extensions: Iterable[str] = DEFAULT_EXTENSIONS):
        self._root = Path(root).expanduser().resolve()
        self._extensions = tuple(extensions)
        self._files: dict[str, FileRef] = {}
        self._headers: dict[str, dict[str, Any]] = {}
        self._links: dict[str, list[Link]] = {}
        self._resolved: Optional[dict[str, dict[str, int]]] = None
        self._subscribers: list[Callable[[VaultEvent], None]] = []
        self._observer: Any = None  # watchdog.observers.Observer
        self.scan()

    @property
    def root(self) -> Path:
        return self._root

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    def _abs(self, path: str) -> Path:
        return self._root / PurePosixPath(path)

    def _rel(self, abs_path: str) -> Optional[str]:
        """Vault-relative POSIX path, or None if outside the vault."""
        try:
            return Path(abs_path).resolve().relative_to(self._root).as_posix()
        except ValueError:
            return None

    def _is_tracked(self, path: Optional[str]) -> bool:
        if not path:
            return False
        parts = PurePosixPath(path).parts
        if any(part.startswith(".") for part in parts):
            return False
        return path.endswith(self._extensions)

    def _stat(self, path: str) -> FileRef:
        st = self._abs(path).stat()
        ctime = getattr(st, "st_birthtime", st.st_ctime)
        return FileRef(path=path, ctime=ctime, mtime=st.st_mtime)

    # -------------------------------------------------------------------------
    # Metadata cache
    # -------------------------------------------------------------------------

    def scan(self) -> int:
        """(Re)build the metadata cache from disk. Returns the number of files."""
        self._files.clear()
        self._headers.clear()
        self._links.clear()
        self._resolved = None
        if not self._root.exists():
            logger.warning("Vault root does not exist: %s", self._root)
            return 0
        for dirpath, dirnames, filenames in os.walk(self._root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for filename in sorted(filenames):
                rel = self._rel(os.path.join(dirpath, filename))
                if not self._is_tracked(rel):
                    continue
                self._files[rel] = self._stat(rel)
                self._index_file(rel)
        logger.debug("Scanned %d files under %s", len(self._files), self._root)
        return len(self._files)

    def _index_file(self, path: str) -> None:
        """Read a file and cache its header and outgoing links."""
        try:
            text = self._abs(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read %s: %s", path, e)
            self._headers.pop(path, None)
            self._links.pop(path, None)
            self._resolved = None
            return
        self._index_content(path, text)

    def _index_content(self, path: str, text: str) -> None:
        try:
            header = read_header(text)
        except ValueError as e:
            logger.warning("Ignoring header of %s: %s", path, e)
            header = {}
        _, body = split_document(text)
        self._headers[path] = header
        self._links[path] = _header_links(header) + extract_links(body)
        self._resolved = None

    def _forget(self, path: str) -> None:
        self._files.pop(path, None)
        self._headers.pop(path, None)
        self._links.pop(path, None)
        self._resolved = None

    def list_files(self) -> list[FileRef]:
        return list(self._files.values())

    def get_file(self, path: str) -> Optional[FileRef]:
        return self._files.get(path)

    def exists(self, path: str) -> bool:
        return path in self._files or self._abs(path).exists()

    def get_frontmatter(self, path: str) -> Optional[dict[str, Any]]:
        header = self._headers.get(path)
        return dict(header) if header is not None else None

    def find_by_basename(self, basename: str) -> Optional[FileRef]:
        """First file (by path order) whose name without extension matches."""
        for path in sorted(self._files):
            if self._files[path].basename == basename:
                return self._files[path]
        return None

    def _resolve_target(self, target: str, source: str) -> Optional[str]:
        """Vault path a link target points to, or None if unresolved."""
        target = unquote(target.split("#", 1)[0]).strip()
        if not target or "://" in target:
            return None
        candidates = [target]
        source_dir = PurePosixPath(source).parent
        candidates.append(str(source_dir / target))
        for candidate in list(candidates):
            if not candidate.endswith(self._extensions):
                candidates.append(candidate + self._extensions[0])
        for candidate in candidates:
            if candidate in self._files:
                return candidate
        ref = self.find_by_basename(PurePosixPath(target).stem if target.endswith(self._extensions) else target)
        return ref.path if ref else None

    def resolved_links(self) -> dict[str, dict[str, int]]:
        if self._resolved is None:
            resolved: dict[str, dict[str, int]] = {}
            for source, links in self._links.items():
                targets: dict[str, int] = {}
                for link in links:
                    path = self._resolve_target(link.target, source)
                    if path:
                        targets[path] = targets.get(path, 0) + 1
                resolved[source] = targets
            self._resolved = resolved
        return self._resolved

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def subscribe(self, callback: Callable[[VaultEvent], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _emit(self, event: VaultEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Vault subscriber failed for %s", event)

    def start(self) -> None:
        """Start watching the vault directory. Must be called from the event loop."""
        if self._observer is not None:
            return
        loop = asyncio.get_running_loop()
        observer = Observer()
        observer.schedule(_ForwardingHandler(self, loop), str(self._root), recursive=True)
        observer.start()
        self._observer = observer
        logger.info("Watching %s", self._root)

    def stop(self) -> None:
        """Stop watching."""
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=2)
        self._observer = None

    def _on_fs_event(self, kind: str, src: str, dest: str) -> None:
        """Apply a raw filesystem notification (runs on the event loop)."""
        path = self._rel(src)
        if kind == "moved":
            self._on_moved(path, self._rel(dest) if dest else None)
            return
        if not self._is_tracked(path):
            return
        if kind == "deleted":
            if path in self._files and not self._abs(path).exists():
                self._forget(path)
                self._emit(FileDeleted(path))
            return
        if not self._abs(path).exists():
            return
        ref = self._stat(path)
        known = self._files.get(path)
        if known is None:
            self._files[path] = ref
            self._emit(FileCreated(path))
            self._index_file(path)
            self._emit(MetadataChanged(path))
        elif ref.mtime != known.mtime:
            self._files[path] = ref
            self._index_file(path)
            self._emit(MetadataChanged(path))

    def _on_moved(self, old: Optional[str], new: Optional[str]) -> None:
        old_known = old is not None and old in self._files
        new_tracked = self._is_tracked(new)
        if not old_known:
            if new_tracked and new not in self._files:
                self._on_fs_event("created", str(self._abs(new)), "")
            return
        if not new_tracked:
            self._forget(old)
            self._emit(FileDeleted(old))
            return
        self._move_entry(old, new)

    def _move_entry(self, old: str, new: str) -> FileRef:
        self._forget(old)
        ref = self._stat(new)
        self._files[new] = ref
        self._emit(FileRenamed(path=new, old_path=old))
        self._index_file(new)
        self._emit(MetadataChanged(new))
        return ref

    # -------------------------------------------------------------------------
    # File operations
    # -------------------------------------------------------------------------

    async def read(self, path: str) -> str:
        if not self._abs(path).exists():
            raise FileNotFoundError(f"File not found: {path}")
        return await asyncio.to_thread(self._abs(path).read_text, encoding="utf-8")

    async def create(self, path: str, content: str) -> FileRef:
        target = self._abs(path)
        if self.exists(path):
            raise FileExistsError(f"File already exists: {path}")

        def write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "x", encoding="utf-8") as f:
                f.write(content)

        await asyncio.to_thread(write)
        ref = self._stat(path)
        if self._is_tracked(path):
            self._files[path] = ref
            self._emit(FileCreated(path))
            self._index_file(path)
            self._emit(MetadataChanged(path))
        return ref

    async def modify(self, path: str, content: str) -> None:
        target = self._abs(path)
        if not target.exists():
            raise FileNotFoundError(f"File not found: {path}")
        tracked = self._is_tracked(path)
        if tracked:
            # Handlers that run while the write is in flight see the new header
            self._index_content(path, content)
        await asyncio.to_thread(target.write_text, content, encoding="utf-8")
        if tracked:
            self._files[path] = self._stat(path)
            self._emit(MetadataChanged(path))

    async def rename(self, path: str, new_path: str) -> FileRef:
        source = self._abs(path)
        target = self._abs(new_path)
        if not source.exists():
            raise FileNotFoundError(f"File not found: {path}")
        if self.exists(new_path):
            raise FileExistsError(f"File already exists: {new_path}")

        def move() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            os.rename(source, target)

        await asyncio.to_thread(move)
        if path in self._files and self._is_tracked(new_path):
            return self._move_entry(path, new_path)
        if path in self._files:
            self._forget(path)
            self._emit(FileDeleted(path))
        elif self._is_tracked(new_path):
            self._on_fs_event("created", str(target), "")
        return self._stat(new_path)
