"""Event delivery: single-reader queue, SSE parsing and the HTTP event source.

Architecture:
    remote store
         | GET text/event-stream (httpx)
    EventSource._read_loop  (background task)
         | SSEParser -> Event
    EventStream             (asyncio queue, single reader)
         |
    Watch
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional

import httpx

from docsync.errors import EndOfStream, TransportError
from docsync.events import Event
from docsync.logging import get_component_logger

_END = object()


class EventStream:
    """Single-reader delivery queue with a terminal error set at most once.

    The producer calls ``publish`` for each event and ``close`` once. The
    reader gets events in delivery order; once the stream is closed and
    drained every read raises ``EndOfStream``, or the close error if one was
    given.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._drained = False
        self.error: Optional[BaseException] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, event: Event) -> None:
        if self._closed:
            raise RuntimeError("publish on closed EventStream")
        self._queue.put_nowait(event)

    def close(self, error: Optional[BaseException] = None) -> None:
        if self._closed:
            return
        self._closed = True
        self.error = error
        self._queue.put_nowait(_END)

    async def get(self) -> Event:
        """Wait for the next event."""
        if self._drained:
            self._raise_end()
        item = await self._queue.get()
        return self._unwrap(item)

    def get_nowait(self) -> Optional[Event]:
        """Next event if one is queued, else None. Never waits."""
        if self._drained:
            self._raise_end()
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        return self._unwrap(item)

    def _unwrap(self, item: Any) -> Event:
        if item is _END:
            self._drained = True
            self._raise_end()
        return item

    def _raise_end(self) -> None:
        if self.error is not None:
            raise self.error
        raise EndOfStream()


class SSEParser:
    """Incremental text/event-stream parser.

    Feed it one line at a time (without the line terminator); it returns an
    Event when a blank line completes a message.
    """

    def __init__(self) -> None:
        self._type = ""
        self._data: List[str] = []
        self._id: Optional[str] = None

    def feed(self, line: str) -> Optional[Event]:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._type = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            self._id = value
        return None

    def _dispatch(self) -> Optional[Event]:
        if not self._data and not self._type:
            return None
        event = Event(
            type=self._type or "message",
            data="\n".join(self._data),
            id=self._id,
        )
        self._type = ""
        self._data = []
        self._id = None
        return event


class EventSource:
    """Persistent streaming GET feeding an EventStream.

    Usage:
        source = EventSource(url, http_client)
        await source.connect()      # raises TransportError on failure
        event = await source.stream.get()
        await source.close()
    """

    def __init__(
        self,
        url: str,
        client: httpx.AsyncClient,
        *,
        timeout: Optional[httpx.Timeout] = None,
        logger: Optional[Any] = None,
    ):
        self.url = url
        self.stream = EventStream()
        self._client = client
        self._timeout = timeout
        self._logger = logger or get_component_logger("event_source", url=url)
        self._response: Optional[httpx.Response] = None
        self._reader_task: Optional[asyncio.Task] = None

    async def connect(self) -> None:
        """Open the stream and start the background reader."""
        request = self._client.build_request(
            "GET",
            self.url,
            headers={"Accept": "text/event-stream", "Cache-Control": "no-cache"},
            timeout=self._timeout if self._timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )
        try:
            response = await self._client.send(request, stream=True, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise TransportError(f"cannot connect to {self.url}: {exc}") from exc

        if response.is_error:
            await response.aclose()
            raise TransportError(
                f"stream request to {self.url} failed with status {response.status_code}",
                status_code=response.status_code,
            )

        self._response = response
        self._reader_task = asyncio.create_task(self._read_loop(response))
        self._logger.info("event_source_connected", status=response.status_code)

    async def close(self) -> None:
        """Stop reading; the stream ends cleanly."""
        if self._reader_task and not self._reader_task.done():
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
        if self._response is not None:
            await self._response.aclose()
        self.stream.close()
        self._logger.info("event_source_closed")

    async def _read_loop(self, response: httpx.Response) -> None:
        parser = SSEParser()
        try:
            async for line in response.aiter_lines():
                event = parser.feed(line.rstrip("\r\n"))
                if event is not None:
                    self.stream.publish(event)
            event = parser.feed("")
            if event is not None:
                self.stream.publish(event)
        except asyncio.CancelledError:
            self.stream.close()
            raise
        except httpx.HTTPError as exc:
            self._logger.warning("event_source_failed", error=str(exc))
            self.stream.close(TransportError(f"stream from {self.url} failed: {exc}"))
        except Exception as exc:
            self._logger.error("event_source_crashed", error=str(exc), error_type=type(exc).__name__)
            self.stream.close(TransportError(f"stream from {self.url} broke: {exc}"))
        else:
            self._logger.info("event_source_exhausted")
            self.stream.close()
        finally:
            await response.aclose()


__all__ = ["EventStream", "SSEParser", "EventSource"]
