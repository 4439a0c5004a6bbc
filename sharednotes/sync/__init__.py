"""Synchronization between the local note store and the remote server.

A RemotePoller fetches one title on a fixed schedule, resolve() applies
last-writer-wins by version, and SyncEngine ties both to the local store.
"""

from .engine import SyncEngine
from .merge import Resolution, resolve
from .poller import CancelToken, PollerState, RemotePoller, RemoteUpdate

__all__ = [
    "CancelToken",
    "PollerState",
    "RemotePoller",
    "RemoteUpdate",
    "Resolution",
    "SyncEngine",
    "resolve",
]
