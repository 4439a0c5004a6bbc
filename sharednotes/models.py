"""Note data model shared by the local store and the remote API."""

import json
from dataclasses import dataclass, replace
from typing import Any

from .errors import MalformedResponse

INITIAL_VERSION = 0


@dataclass(frozen=True)
class Note:
    """A titled document with a last-writer-wins version counter."""

    title: str
    content: str = ""
    version: int = INITIAL_VERSION

    def __post_init__(self) -> None:
        if isinstance(self.version, bool) or not isinstance(self.version, int):
            raise ValueError(f"version must be an int, got {self.version!r}")
        if self.version < 0:
            raise ValueError(f"version must be non-negative, got {self.version}")

    def bumped(self) -> "Note":
        """Return a copy with the version incremented by one."""
        return replace(self, version=self.version + 1)

    def with_content(self, content: str) -> "Note":
        """Return a copy with new content and the same version."""
        return replace(self, content=content)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "title": self.title,
            "content": self.content,
            "version": self.version,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Any) -> "Note":
        """Create from a decoded JSON object.

        Extra keys are ignored.

        Raises:
            MalformedResponse: If a field is missing or has the wrong type.
        """
        if not isinstance(data, dict):
            raise MalformedResponse(f"Expected a JSON object, got {type(data).__name__}")

        missing = [key for key in ("title", "content", "version") if key not in data]
        if missing:
            raise MalformedResponse(f"Note is missing fields: {', '.join(missing)}")

        title = data["title"]
        content = data["content"]
        if not isinstance(title, str) or not isinstance(content, str):
            raise MalformedResponse("Note title and content must be strings")

        try:
            return cls(title=title, content=content, version=data["version"])
        except ValueError as e:
            raise MalformedResponse(str(e)) from e

    @classmethod
    def from_json(cls, text: str) -> "Note":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedResponse(f"Invalid JSON: {e}") from e
        return cls.from_dict(data)
