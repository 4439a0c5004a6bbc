"""Sync engine combining the local note store with remote polling."""

import asyncio
import logging
from typing import TYPE_CHECKING

from ..errors import LocalStoreError, RemoteError
from ..live import LiveValue, Subscription
from ..models import Note
from .merge import Resolution, resolve
from .poller import DEFAULT_POLL_INTERVAL, ErrorReporter, RemotePoller, RemoteUpdate

if TYPE_CHECKING:
    from ..notes_client import NotesClient
    from ..storage import NoteStore

logger = logging.getLogger(__name__)


class SyncEngine:
    """Keeps one note in sync between the local store and the remote server.

    The local store is the single source of truth for what callers see.
    Remote notes reach callers only by being merged into the local store,
    which then re-emits through the synced output.

    All methods must be called from the event loop thread.
    """

    def __init__(
        self,
        store: "NoteStore",
        client: "NotesClient",
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_error: ErrorReporter | None = None,
    ):
        """Initialize the sync engine.

        Args:
            store: Local note store.
            client: Remote notes client.
            poll_interval: Seconds between remote fetches.
            on_error: Receives (title, error) for each failed fetch.
        """
        self._store = store
        self._client = client
        self._remote = LiveValue(name="remote")
        self._poller = RemotePoller(
            client,
            publish=self._remote.publish,
            interval_seconds=poll_interval,
            on_error=on_error,
        )
        self._output: LiveValue | None = None
        self._subscriptions: list[Subscription] = []
        self._pending_writes: set[asyncio.Task] = set()

    @property
    def poller(self) -> RemotePoller:
        return self._poller

    @property
    def title(self) -> str | None:
        """Title of the currently synced note, if any."""
        return self._poller.title if self._output is not None else None

    @property
    def pending_writes(self) -> int:
        return len(self._pending_writes)

    # Synced methods

    def get_synced(self, title: str) -> LiveValue:
        """Return a live view of a note that follows local and remote changes.

        Any previously returned synced value is closed and its poller
        cancelled before polling for the new title starts.
        """
        previous = self.title
        self._detach()
        if previous is not None:
            logger.info(f"Switching synced note from {previous!r} to {title!r}")

        # Start polling before attaching anything to the store
        remote = self.get_remote(title)

        output = LiveValue(name=f"synced:{title}")
        self._output = output

        def forward_local(note: Note | None) -> None:
            if note is not None:
                output.publish(note)

        self._subscriptions.append(
            remote.subscribe(self._on_remote_update, replay=False)
        )
        self._subscriptions.append(self.get_local(title).subscribe(forward_local))
        return output

    def upsert_synced(self, note: Note) -> Note:
        """Save a note locally with a new version, then push it remotely.

        The remote write runs in the background; its outcome is only logged.

        Returns:
            The note as stored locally.
        """
        saved = self.upsert_local(note)

        task = asyncio.get_running_loop().create_task(
            self.upsert_remote(saved), name=f"put:{saved.title}"
        )
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)
        return saved

    # Local methods

    def get_local(self, title: str) -> LiveValue:
        return self._store.get(title)

    def get_all_local(self) -> LiveValue:
        return self._store.get_all()

    def upsert_local(self, note: Note, increment: bool = True) -> Note:
        """Write a note to the local store.

        Args:
            note: Note to store.
            increment: Bump the version by one. Merges from the server pass
                False so remote versions are stored verbatim.

        Returns:
            The note as stored.
        """
        saved = note.bumped() if increment else note
        self._store.upsert(saved)
        return saved

    def delete_local(self, note: Note) -> None:
        self._store.delete(note)

    def exists_local(self, title: str) -> bool:
        return self._store.exists(title)

    # Remote methods

    def get_remote(self, title: str) -> LiveValue:
        """Start polling a title and return the engine's remote stream.

        Only one title is polled at a time; polling a new title cancels the
        previous poller.
        """
        self._poller.start(title)
        return self._remote

    async def upsert_remote(self, note: Note) -> bool:
        """Push a note to the server.

        Returns:
            True if the server accepted it, False if the write failed.
        """
        try:
            await self._client.put_note(note)
        except RemoteError as e:
            logger.warning(f"Remote write of {note.title!r} v{note.version} failed: {e}")
            return False

        logger.debug(f"Remote write of {note.title!r} v{note.version} accepted")
        return True

    async def wait_for_pending_writes(self) -> None:
        """Wait for background remote writes started by upsert_synced()."""
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes))

    async def close(self) -> None:
        """Stop polling, close the synced output and flush pending writes."""
        self._detach()
        await self._poller.stop()
        await self.wait_for_pending_writes()

    # Internals

    def _detach(self) -> None:
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []

        if self._output is not None:
            self._output.close()
            self._output = None

        self._poller.cancel()

    def _on_remote_update(self, update: RemoteUpdate) -> None:
        if not self._poller.is_current(update.token):
            logger.debug(f"Discarding stale remote note for {update.token!r}")
            return

        remote = update.note
        output = self._output
        try:
            local = self._store.find(remote.title)
            if resolve(local, remote) is Resolution.ACCEPT_REMOTE:
                logger.info(
                    f"Accepting remote {remote.title!r} v{remote.version} "
                    f"(local v{local.version if local else None})"
                )
                self.upsert_local(remote, increment=False)
            else:
                logger.debug(
                    f"Ignoring remote {remote.title!r} v{remote.version} "
                    f"(local v{local.version})"
                )
        except LocalStoreError as e:
            if output is not None:
                output.fail(e)
            raise
