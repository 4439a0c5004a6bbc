"""Local persistence for notes."""

from .local_store import NoteStore

__all__ = ["NoteStore"]
