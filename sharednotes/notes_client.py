"""HTTP client for the shared notes server."""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from .errors import MalformedResponse, NotFound, TransportFailure
from .models import Note

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://sharednotes.goto.ucsd.edu"


def quote_title(title: str) -> str:
    """Percent-encode a title for use as a single path segment."""
    return quote(title, safe="")


class NotesClient:
    """Client for the remote notes store.

    The server only supports polling: GET returns the current note for a
    title and PUT replaces it. Every failure is raised as a RemoteError
    subclass so callers can contain it.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the notes client.

        Args:
            base_url: Base URL of the notes server.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used in tests).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "NotesClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        endpoint: str,
        name: str,
        json_data: Any = None,
    ) -> httpx.Response:
        """Send a request to /{endpoint}/{name} and map failures onto RemoteError.

        The name is quoted here so that unencodable or oversized names fail
        like any other transport error.

        Raises:
            NotFound: On HTTP 404.
            TransportFailure: On connection errors, timeouts and other
                error statuses.
        """
        client = await self._get_client()
        path = f"/{endpoint}/{name[:80]}"

        try:
            response = await client.request(
                method, f"/{endpoint}/{quote_title(name)}", json=json_data
            )
        except httpx.TimeoutException as e:
            raise TransportFailure(f"{method} {path} timed out") from e
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            raise TransportFailure(f"{method} {path} failed: {e}") from e

        if response.status_code == 404:
            raise NotFound(f"{method} {path}: not found")
        if response.status_code >= 400:
            raise TransportFailure(
                f"{method} {path}: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def get_note(self, title: str) -> Note:
        """Fetch the remote note for a title.

        Raises:
            NotFound: If the server has no such note.
            MalformedResponse: If the body is not a valid note.
            TransportFailure: On network or server errors.
        """
        response = await self._request("GET", "notes", title)
        logger.debug(f"GET {title!r}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponse(f"Invalid JSON for note {title!r}: {e}") from e

        return Note.from_dict(data)

    async def put_note(self, note: Note) -> None:
        """Store a note remotely. The response body is not parsed.

        Raises:
            TransportFailure: On network or server errors.
        """
        response = await self._request("PUT", "notes", note.title, note.to_dict())
        logger.debug(f"PUT {note.title!r} v{note.version}: HTTP {response.status_code}")

    async def echo(self, message: str) -> str:
        """Round-trip a message through the server's echo endpoint."""
        response = await self._request("GET", "echo", message)
        return response.text
