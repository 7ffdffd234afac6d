"""DocumentClient - REST verbs and watches against a remote document store.

The client owns (or is given) one ``httpx.AsyncClient``; nothing is shared
process-wide.

Usage:
    async with DocumentClient() as client:
        root = Location("my-app")
        await client.put(root.child("users/alice"), {"name": "Alice"})
        doc = await client.get(root)

        async with await client.watch(root) as watch:
            await watch.run(doc)
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from pydantic_core import to_jsonable_python

from docsync.errors import TransportError
from docsync.location import Location
from docsync.logging import get_component_logger
from docsync.patch import replace_root
from docsync.settings import DocSyncSettings, get_settings
from docsync.stream import EventSource
from docsync.watch import Watch


class DocumentClient:
    """Plain verb operations plus watch construction for Locations."""

    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        *,
        settings: Optional[DocSyncSettings] = None,
        logger: Optional[Any] = None,
    ):
        """Initialize DocumentClient.

        Args:
            http: HTTP client to use. When omitted one is created and closed
                by ``aclose()``.
            settings: Settings; defaults to ``get_settings()``.
            logger: Logger instance.
        """
        self._settings = settings or get_settings()
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=self._settings.request_timeouts())
        self._logger = logger or get_component_logger("document_client")

    def url(self, location: Location) -> str:
        return location.url(self._settings.url_template)

    async def get(self, location: Location, into: Any = None) -> Any:
        """Fetch the document at ``location``.

        Args:
            location: Node to read.
            into: Optional destination; its content is replaced with the
                fetched document.

        Returns:
            The decoded JSON document.
        """
        response = await self._request("GET", location)
        document = self._json(response)
        if into is not None:
            replace_root(into, document)
        return document

    async def put(self, location: Location, value: Any) -> None:
        """Replace the document at ``location``."""
        await self._request("PUT", location, value)

    async def post(self, location: Location, value: Any) -> Any:
        """Append ``value`` under ``location``; returns the server response."""
        response = await self._request("POST", location, value)
        return self._json(response)

    async def patch(self, location: Location, value: Any) -> None:
        """Merge the fields of ``value`` into the document at ``location``."""
        await self._request("PATCH", location, value)

    async def delete(self, location: Location) -> None:
        """Delete the document at ``location``."""
        await self._request("DELETE", location)

    async def watch(self, location: Location) -> Watch:
        """Subscribe to changes at ``location``.

        Raises:
            TransportError: the stream could not be opened
        """
        source = EventSource(
            self.url(location),
            self._http,
            timeout=self._settings.stream_timeouts(),
            logger=self._logger.bind(location=str(location)),
        )
        return await Watch.open(source, logger=self._logger.bind(location=str(location)))

    async def _request(
        self,
        method: str,
        location: Location,
        value: Any = None,
    ) -> httpx.Response:
        url = self.url(location)
        body = None if value is None else to_jsonable_python(value)
        self._logger.debug("document_request", method=method, url=url)
        try:
            response = await self._http.request(method, url, json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._logger.error(
                "document_request_failed",
                method=method,
                url=url,
                status=exc.response.status_code,
            )
            raise TransportError(
                f"{method} {url} failed with status {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            self._logger.error("document_request_error", method=method, url=url, error=str(exc))
            raise TransportError(f"{method} {url} failed: {exc}") from exc
        return response

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            self._logger.error(
                "document_response_invalid",
                method=response.request.method,
                url=str(response.request.url),
                error=str(exc),
            )
            raise TransportError(
                f"{response.request.method} {response.request.url} returned a non-JSON body",
                status_code=response.status_code,
            ) from exc

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "DocumentClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


__all__ = ["DocumentClient"]
