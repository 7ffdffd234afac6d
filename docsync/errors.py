"""Error types raised by the synchronization engine.

Hierarchy:
    DocSyncError
    ├── TransportError           terminal for a watch
    └── ChangeError              the stream stays usable
        ├── DecodeError
        ├── NavigationError
        └── UnwritableTargetError

EndOfStream is deliberately outside the hierarchy: it is a termination
signal, not a failure.
"""

from typing import Optional, Sequence


class DocSyncError(Exception):
    """Base class for docsync failures."""


class TransportError(DocSyncError):
    """The connection to the remote store failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ChangeError(DocSyncError):
    """A single change could not be applied to the destination."""

    def __init__(self, message: str, path: Sequence[str] = ()):
        self.path = tuple(path)
        super().__init__(message)

    @property
    def location(self) -> str:
        return "/" + "/".join(self.path)


class DecodeError(ChangeError):
    """An event or field payload could not be decoded."""


class NavigationError(ChangeError):
    """A path addresses through a value that is not a container."""


class UnwritableTargetError(ChangeError):
    """The mutation target exists but cannot be written to."""


class EndOfStream(Exception):
    """The event source was closed cleanly."""


__all__ = [
    "DocSyncError",
    "TransportError",
    "ChangeError",
    "DecodeError",
    "NavigationError",
    "UnwritableTargetError",
    "EndOfStream",
]
