"""Shared notes: a local note cache kept in sync with a poll-only server."""

from .errors import (
    LocalStoreError,
    MalformedResponse,
    NotFound,
    PollCancelled,
    RemoteError,
    SyncError,
    TransportFailure,
)
from .live import LiveValue, Subscription
from .models import Note
from .notes_client import NotesClient
from .storage import NoteStore
from .sync import SyncEngine

__version__ = "0.1.0"

__all__ = [
    "LiveValue",
    "LocalStoreError",
    "MalformedResponse",
    "Note",
    "NoteStore",
    "NotFound",
    "NotesClient",
    "PollCancelled",
    "RemoteError",
    "Subscription",
    "SyncEngine",
    "SyncError",
    "TransportFailure",
]
