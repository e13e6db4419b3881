"""
Synchronization controller: keeps the store in step with the vault.

Per event:
  FileCreated      → wait for the header, parse, add
  FileDeleted      → remove
  FileRenamed      → remove at old path; treat new path as created
  MetadataChanged  → if the header's timestamp implies a different
                     filename, rename the file and stop (the rename's
                     own events finish the job); otherwise re-parse and
                     update only when the record actually changed

Errors here never reach the user: they are logged, and the store may be
stale until the next event for the file.
"""

import asyncio
import logging
import posixpath
from typing import TYPE_CHECKING, Callable, Optional

from .events import FileCreated, FileDeleted, FileRenamed, MetadataChanged, VaultEvent
from .parser import OccurrenceParser
from .protocol import VaultProtocol
from .retry import RetryPolicy, retry_until
from .types import FileRef, occurrences_equal

if TYPE_CHECKING:
    from .store import OccurrenceStore

logger = logging.getLogger(__name__)


class SyncController:
    """
    Applies vault lifecycle events to an OccurrenceStore.

    Events are started in delivery order. Handlers that wait for the
    metadata cache suspend only their own task, so later events may be
    processed while an earlier create is still waiting.
    """

    def __init__(
        self,
        store: "OccurrenceStore",
        vault: VaultProtocol,
        parser: OccurrenceParser,
        policy: RetryPolicy,
    ):
        self._store = store
        self._vault = vault
        self._parser = parser
        self._policy = policy
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def _is_relevant(self, path: str) -> bool:
        return self._store.config.is_relevant(path)

    # -------------------------------------------------------------------------
    # Subscription and scheduling
    # -------------------------------------------------------------------------

    def attach(self) -> None:
        """Start receiving vault events."""
        if self._unsubscribe is None:
            self._unsubscribe = self._vault.subscribe(self.dispatch)

    def detach(self) -> None:
        """Stop receiving vault events."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def dispatch(self, event: VaultEvent) -> None:
        """
        Schedule handling of an event on the running loop.

        Called by the vault; must run on the loop's thread.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, dropping %s", event)
            return
        task = loop.create_task(self._run(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, event: VaultEvent) -> None:
        try:
            await self.handle(event)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Error handling %s", event)

    async def drain(self) -> None:
        """Wait until every scheduled handler, including ones they spawn, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel(self) -> None:
        """Cancel in-flight handlers."""
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    @property
    def pending(self) -> int:
        """Number of handlers still running."""
        return len(self._tasks)

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def handle(self, event: VaultEvent) -> None:
        """Apply one vault event to the store."""
        if isinstance(event, FileCreated):
            await self.on_created(event.path)
        elif isinstance(event, FileDeleted):
            self.on_deleted(event.path)
        elif isinstance(event, FileRenamed):
            await self.on_renamed(event.path, event.old_path)
        elif isinstance(event, MetadataChanged):
            await self.on_metadata_changed(event.path)
        else:
            raise TypeError(f"Unknown vault event: {event!r}")

    async def on_created(self, path: str) -> None:
        if not self._is_relevant(path):
            return
        await self._wait_and_add(path)

    def on_deleted(self, path: str) -> None:
        if not self._is_relevant(path):
            return
        self._store.remove(path)

    async def on_renamed(self, path: str, old_path: str) -> None:
        if self._is_relevant(old_path):
            self._store.remove(old_path)
        if self._is_relevant(path):
            await self._wait_and_add(path)

    async def on_metadata_changed(self, path: str) -> None:
        if not self._is_relevant(path):
            return
        file = self._vault.get_file(path)
        if file is None:
            return

        header = self._vault.get_frontmatter(path)
        expected = self._parser.expected_filename(header, file.basename)
        if expected and expected != file.basename:
            await self._managed_rename(file, expected)
            return

        cached = self._store.get(path)
        if cached is None:
            # Not indexed yet; the create/rename handler will add it
            return

        fresh = self._store.parse_file(file)
        if fresh is None:
            return
        if not occurrences_equal(cached, fresh):
            logger.debug("Header changed for %s", path)
            self._store.update(fresh)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _wait_and_add(self, path: str) -> None:
        """Wait for the metadata cache to have the file's header, then add it."""
        header = await retry_until(lambda: self._vault.get_frontmatter(path), self._policy)
        if header is None:
            logger.warning(
                "Metadata not ready for %s after %d attempts, adding anyway",
                path, self._policy.attempts,
            )

        file = self._vault.get_file(path)
        if file is None:
            logger.debug("%s disappeared before it could be indexed", path)
            return
        self._store.add(file)

    async def _managed_rename(self, file: FileRef, new_basename: str) -> None:
        """
        Rename a file whose header timestamp no longer matches its name.

        The record is removed before the rename so nothing stale is
        searchable while it is in flight. If the rename fails, the
        pre-rename record is put back.
        """
        new_name = new_basename + file.extension
        new_path = posixpath.join(file.parent, new_name) if file.parent else new_name

        if self._vault.exists(new_path):
            logger.warning("Not renaming %s: %s already exists", file.path, new_path)
            return

        previous = self._store.remove(file.path)
        try:
            await self._vault.rename(file.path, new_path)
        except Exception as e:
            logger.error("Error renaming %s to %s: %s", file.path, new_path, e)
            if previous is not None:
                self._store.restore(previous)
            else:
                self._store.add(file)
            return
        logger.info("Renamed %s to %s", file.path, new_path)
