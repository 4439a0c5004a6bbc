"""Fixed-rate remote polling with generation-stamped cancellation.

The remote notes server has no change notifications, so a poller fetches
one title immediately and then on a fixed grid (start + k * interval).
Fetches run inline in a single task and never overlap; ticks missed by a
slow fetch are skipped rather than queued.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

from ..errors import MalformedResponse, PollCancelled, RemoteError
from ..models import Note

if TYPE_CHECKING:
    from ..notes_client import NotesClient

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 3.0


class PollerState(Enum):
    """Lifecycle of a single poller instance."""

    IDLE = "idle"
    POLLING = "polling"
    CANCELLED = "cancelled"


class CancelToken:
    """Cancellation flag for one poller instance.

    Every fetch result carries the token of the instance that produced it.
    A result is only applied while its token is still the current one.
    """

    def __init__(self, generation: int, title: str):
        self.generation = generation
        self.title = title
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise PollCancelled(
                f"Poll generation {self.generation} for {self.title!r} was cancelled"
            )

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"CancelToken(generation={self.generation}, title={self.title!r}, {state})"


@dataclass(frozen=True)
class RemoteUpdate:
    """A fetched note tagged with the token of the poller that fetched it."""

    note: Note
    token: CancelToken


PublishCallback = Callable[[RemoteUpdate], None]
ErrorReporter = Callable[[str, Exception], None]


def log_poll_failure(title: str, error: Exception) -> None:
    """Default error reporter: log and keep polling."""
    logger.warning(f"Poll for {title!r} failed ({type(error).__name__}): {error}")


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Poll task {task.get_name()} stopped: {error}", exc_info=error)


def next_tick_index(started: float, now: float, interval: float, last_index: int) -> int:
    """Return the index of the next tick to run on the start + k * interval grid.

    Ticks whose deadline already passed while the last fetch was running
    are skipped.
    """
    candidate = last_index + 1
    if started + candidate * interval >= now:
        return candidate
    return max(candidate, math.ceil((now - started) / interval))


class RemotePoller:
    """Owns at most one active polling loop.

    start() replaces the running instance with a new one bound to a fresh
    CancelToken. Results from a cancelled instance are never published.
    """

    def __init__(
        self,
        client: "NotesClient",
        publish: PublishCallback,
        interval_seconds: float = DEFAULT_POLL_INTERVAL,
        on_error: ErrorReporter | None = None,
    ):
        """Initialize the poller.

        Args:
            client: Remote store used for fetches.
            publish: Receives each successfully fetched RemoteUpdate.
            interval_seconds: Period between scheduled fetches.
            on_error: Receives (title, error) for each failed fetch.
        """
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")

        self._client = client
        self._publish = publish
        self._interval = interval_seconds
        self._on_error = on_error or log_poll_failure
        self._generation = 0
        self._token: CancelToken | None = None
        self._task: asyncio.Task | None = None
        self._state = PollerState.IDLE

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def token(self) -> CancelToken | None:
        return self._token

    @property
    def title(self) -> str | None:
        return self._token.title if self._token else None

    @property
    def generation(self) -> int:
        return self._generation

    def is_current(self, token: CancelToken) -> bool:
        """True if results carrying this token may still be applied."""
        return token is self._token and not token.cancelled

    def start(self, title: str) -> CancelToken:
        """Cancel any running instance and start polling a title.

        Must be called from the running event loop.
        """
        loop = asyncio.get_running_loop()
        self.cancel()

        self._generation += 1
        token = CancelToken(self._generation, title)
        self._token = token
        self._task = loop.create_task(
            self._run(token), name=f"poll:{title}:{token.generation}"
        )
        self._task.add_done_callback(_log_task_failure)
        self._state = PollerState.POLLING

        logger.info(
            f"Polling {title!r} every {self._interval}s (generation {token.generation})"
        )
        return token

    def cancel(self) -> None:
        """Cancel the running instance, if any. In-flight results are dropped."""
        if self._token is not None:
            self._token.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self._state is PollerState.POLLING:
            self._state = PollerState.CANCELLED
            logger.info(f"Cancelled polling for {self.title!r}")

    async def stop(self) -> None:
        """Cancel the running instance and wait for its task to finish."""
        task = self._task
        self.cancel()
        self._task = None
        if task is not None and not task.done():
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self, token: CancelToken) -> None:
        """Polling loop for one instance."""
        loop = asyncio.get_running_loop()
        started = loop.time()
        index = 0

        try:
            while not token.cancelled:
                await self._tick(token)

                next_index = next_tick_index(started, loop.time(), self._interval, index)
                if next_index > index + 1:
                    logger.debug(
                        f"Fetch for {token.title!r} overran, "
                        f"skipping {next_index - index - 1} tick(s)"
                    )
                index = next_index

                delay = started + index * self._interval - loop.time()
                await asyncio.sleep(max(delay, 0))
        except PollCancelled as e:
            logger.debug(f"Discarded stale result: {e}")

    async def _tick(self, token: CancelToken) -> None:
        """Fetch once and publish the result if the token is still valid."""
        try:
            note = await self._client.get_note(token.title)
            if note.title != token.title:
                raise MalformedResponse(
                    f"Requested {token.title!r} but received {note.title!r}"
                )
        except RemoteError as e:
            token.raise_if_cancelled()
            self._on_error(token.title, e)
            return

        token.raise_if_cancelled()
        self._publish(RemoteUpdate(note=note, token=token))
