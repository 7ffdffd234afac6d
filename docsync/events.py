"""Change events delivered by the streaming endpoint.

Wire shape (one SSE message per event):

    event: put
    data: {"path": "/outer/inner", "data": {"a": 1}}

    event: patch
    data: {"path": "/outer/inner", "data": {"b": 1}}

    event: keep-alive
    data: null
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ValidationError

from docsync.errors import DecodeError
from docsync.location import split_path
from docsync.patch import ChangeRecord

# Event type names
PUT = "put"
PATCH = "patch"
KEEP_ALIVE = "keep-alive"
CANCEL = "cancel"
AUTH_REVOKED = "auth_revoked"


@dataclass(frozen=True)
class Event:
    """A raw event: its type name and undecoded payload."""

    type: str
    data: Union[bytes, str] = b""
    id: Optional[str] = None

    @property
    def is_heartbeat(self) -> bool:
        return self.type == KEEP_ALIVE


class PutChange(BaseModel):
    path: str
    data: Any


class PatchChange(BaseModel):
    path: str
    data: Dict[str, Any]


def decode_event(event: Event) -> Optional[ChangeRecord]:
    """Decode a raw event into a change record.

    Returns:
        ChangeRecord for put/patch events, None for every other type

    Raises:
        DecodeError: the payload is not a well-formed change
    """
    if event.type == PUT:
        change = _parse(PutChange, event)
        return ChangeRecord(kind=PUT, keys=split_path(change.path), data=change.data)

    if event.type == PATCH:
        change = _parse(PatchChange, event)
        return ChangeRecord(kind=PATCH, keys=split_path(change.path), fields=change.data)

    return None


def _parse(model: type, event: Event):
    try:
        return model.model_validate_json(event.data)
    except ValidationError as exc:
        raise DecodeError(
            f"malformed {event.type} event: {exc.error_count()} error(s)"
        ) from exc


__all__ = [
    "Event",
    "PutChange",
    "PatchChange",
    "decode_event",
    "PUT",
    "PATCH",
    "KEEP_ALIVE",
    "CANCEL",
    "AUTH_REVOKED",
]
