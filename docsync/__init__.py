"""docsync - in-memory mirrors of a remote hierarchical document store.

Usage:
    from docsync import DocumentClient, Location

    async with DocumentClient() as client:
        doc = {}
        async with await client.watch(Location("my-app", "rooms")) as watch:
            await watch.run(doc)
"""

from docsync.client import DocumentClient
from docsync.errors import (
    ChangeError,
    DecodeError,
    DocSyncError,
    EndOfStream,
    NavigationError,
    TransportError,
    UnwritableTargetError,
)
from docsync.events import Event, decode_event
from docsync.location import Location
from docsync.patch import (
    ChangeRecord,
    apply_change,
    apply_patch,
    apply_put,
    encode_document,
    ordered_keys,
)
from docsync.shapes import Slot
from docsync.stream import EventSource, EventStream
from docsync.watch import Watch

__version__ = "0.1.0"

__all__ = [
    "DocumentClient",
    "Location",
    "Watch",
    "Slot",
    "Event",
    "EventSource",
    "EventStream",
    "ChangeRecord",
    "decode_event",
    "apply_change",
    "apply_patch",
    "apply_put",
    "encode_document",
    "ordered_keys",
    "DocSyncError",
    "TransportError",
    "ChangeError",
    "DecodeError",
    "NavigationError",
    "UnwritableTargetError",
    "EndOfStream",
]
