"""Watch - keeps a destination value in sync with a location's event stream.

Two-phase consumption:

    await watch.wait_for_change()     # suspends until an event is queued
    watch.apply_changes(doc)          # applies everything queued, never waits

Callers that want the whole loop can use ``run``:

    async with await client.watch(location) as watch:
        await watch.run(doc, on_change=render)
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from docsync.errors import ChangeError, EndOfStream
from docsync.events import AUTH_REVOKED, CANCEL, Event, decode_event
from docsync.logging import get_component_logger
from docsync.patch import apply_change
from docsync.stream import EventSource, EventStream


class Watch:
    """Buffered, heartbeat-filtered consumer of one event stream.

    Holds at most one lookahead event (set by ``wait_for_change``), which is
    always applied before any event drained afterwards. Not safe for more
    than one concurrent consumer.
    """

    def __init__(
        self,
        stream: EventStream,
        *,
        source: Optional[EventSource] = None,
        logger: Optional[Any] = None,
    ):
        """Initialize Watch.

        Args:
            stream: Queue the events are read from.
            source: Producer of ``stream``; closed by ``close()`` when given.
            logger: Logger instance.
        """
        self._stream = stream
        self._source = source
        self._logger = logger or get_component_logger("watch")
        self._buffered: Optional[Event] = None

    @classmethod
    async def open(cls, source: EventSource, *, logger: Optional[Any] = None) -> "Watch":
        """Connect ``source`` and return a Watch over its stream."""
        await source.connect()
        return cls(source.stream, source=source, logger=logger)

    async def wait_for_change(self) -> None:
        """Wait until an event is buffered.

        Returns immediately when an event from an earlier call is still
        buffered.

        Raises:
            EndOfStream: the source was closed cleanly
            TransportError: the source failed
        """
        if self._buffered is not None:
            return
        while True:
            event = await self._stream.get()
            if event.is_heartbeat:
                continue
            self._buffered = event
            return

    def apply_changes(self, destination: Any) -> None:
        """Apply the buffered event and every event already queued.

        The buffer is cleared even when applying it fails. Stops at the
        first failing event without draining further.

        Raises:
            ChangeError: an event could not be decoded or applied
            EndOfStream: the source was closed cleanly
            TransportError: the source failed
        """
        if self._buffered is not None:
            event, self._buffered = self._buffered, None
            self._process(destination, event)

        while True:
            event = self._stream.get_nowait()
            if event is None:
                return
            if event.is_heartbeat:
                continue
            self._process(destination, event)

    def _process(self, destination: Any, event: Event) -> None:
        change = decode_event(event)
        if change is None:
            if event.type in (CANCEL, AUTH_REVOKED):
                self._logger.warning("watch_event_ignored", event_type=event.type)
            return
        apply_change(destination, change)
        self._logger.debug("watch_change_applied", kind=change.kind, path=change.path)

    async def run(
        self,
        destination: Any,
        on_change: Optional[Callable[[Any], None]] = None,
    ) -> None:
        """Keep ``destination`` in sync until the stream ends.

        ``on_change`` is called after every batch, including one cut short
        by a rejected change. Rejected changes are logged and skipped.
        Returns on EndOfStream; transport failures propagate.
        """
        while True:
            try:
                await self.wait_for_change()
            except EndOfStream:
                self._logger.info("watch_stream_ended")
                return

            ended = False
            try:
                self.apply_changes(destination)
            except EndOfStream:
                ended = True
            except ChangeError as exc:
                self._logger.warning(
                    "watch_change_rejected",
                    error=str(exc),
                    error_type=type(exc).__name__,
                    path=exc.location,
                )

            if on_change is not None:
                on_change(destination)
            if ended:
                self._logger.info("watch_stream_ended")
                return

    async def close(self) -> None:
        """Close the underlying source, if this watch owns one."""
        if self._source is not None:
            await self._source.close()
        else:
            self._stream.close()

    async def __aenter__(self) -> "Watch":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


__all__ = ["Watch"]
