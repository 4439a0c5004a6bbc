"""Last-writer-wins resolution between a local and a remote note."""

from enum import Enum

from ..models import Note


class Resolution(Enum):
    """Outcome of comparing a remote note with the local one."""

    ACCEPT_REMOTE = "accept_remote"
    IGNORE = "ignore"


def resolve(local: Note | None, remote: Note | None) -> Resolution:
    """Decide whether a remote note supersedes the local one.

    The remote note wins only if there is no local note or its version is
    strictly higher. Equal versions are ignored to avoid redundant writes.

    Raises:
        ValueError: If both notes are present and their titles differ.
    """
    if remote is None:
        return Resolution.IGNORE
    if local is None:
        return Resolution.ACCEPT_REMOTE
    if local.title != remote.title:
        raise ValueError(f"Cannot merge {remote.title!r} into {local.title!r}")
    if remote.version > local.version:
        return Resolution.ACCEPT_REMOTE
    return Resolution.IGNORE
