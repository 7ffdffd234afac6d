"""Location handles for nodes of a remote document."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from typing import List

from docsync.settings import DEFAULT_URL_TEMPLATE


def split_path(path: str) -> List[str]:
    """Split a "/"-separated path into keys.

    The root path "/" (or "") is the empty key list. Empty segments are
    dropped, so "/a//b/" and "a/b" both give ["a", "b"].
    """
    return [key for key in path.split("/") if key]


def join_path(base: str, key: str) -> str:
    """Join a child key onto a relative path, cleaning the result."""
    joined = posixpath.normpath(posixpath.join("/", base, key))
    return joined.lstrip("/")


@dataclass(frozen=True)
class Location:
    """Immutable handle to a path inside an application's document.

    Usage:
        root = Location("my-app")
        users = root.child("users")
        alice = users.child("alice")   # users is unchanged
    """

    app: str
    path: str = ""

    def child(self, key: str) -> "Location":
        """Return a new Location for ``key`` below this one."""
        return Location(app=self.app, path=join_path(self.path, key))

    def url(self, template: str = DEFAULT_URL_TEMPLATE) -> str:
        """Render the REST/streaming URL for this location."""
        return template.format(app=self.app, path=self.path)

    def __str__(self) -> str:
        return f"{self.app}:/{self.path}"


__all__ = ["Location", "split_path", "join_path"]
