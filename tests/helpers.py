"""Shared fakes for sync tests."""

import asyncio
from typing import Callable

from sharednotes.errors import NotFound, TransportFailure
from sharednotes.models import Note


class FakeNotesClient:
    """In-memory stand-in for NotesClient that records every call."""

    def __init__(self, latency: float = 0.0):
        self.notes: dict[str, Note] = {}
        self.latency = latency
        self.failures: list[Exception] = []
        self.put_error: Exception | None = None
        self.fetches: list[str] = []
        self.puts: list[Note] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_note(self, title: str) -> Note:
        self.fetches.append(title)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.latency)
            if self.failures:
                raise self.failures.pop(0)
            if title not in self.notes:
                raise NotFound(f"No note {title!r}")
            return self.notes[title]
        finally:
            self.in_flight -= 1

    async def put_note(self, note: Note) -> None:
        self.puts.append(note)
        await asyncio.sleep(0)
        if self.put_error is not None:
            raise self.put_error
        self.notes[note.title] = note


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll a condition until it holds or the timeout expires."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.005)


def offline() -> TransportFailure:
    return TransportFailure("Connection refused")
