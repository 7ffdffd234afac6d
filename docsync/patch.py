"""Patch applier: path-addressed mutation of an in-memory destination.

Usage:
    doc = {}
    apply_put(doc, "/", {"outer": {"inner": {"a": 0}}})
    apply_put(doc, "/outer/inner/a", 1)
    apply_patch(doc, "/outer/inner", {"b": 1})
    apply_put(doc, "/outer/inner/a", None)      # null deletes

Every event is applied atomically: all field payloads are decoded and all
targets checked before anything is committed, and containers materialized
along the path are removed again when the event fails.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic_core import to_jsonable_python

from docsync.errors import ChangeError, DecodeError, NavigationError, UnwritableTargetError
from docsync.location import split_path
from docsync.shapes import (
    Journal,
    Slot,
    cell_for,
    decode,
    is_frozen,
    is_record,
    normalize,
    record_fields,
)

PathLike = Union[str, Sequence[str]]


@dataclass
class ChangeRecord:
    """A decoded change: replace at ``keys`` or merge ``fields`` at ``keys``."""

    kind: str
    keys: List[str]
    data: Any = None
    fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def path(self) -> str:
        return "/" + "/".join(self.keys)


def _keys(path: PathLike) -> List[str]:
    if isinstance(path, str):
        return split_path(path)
    return list(path)


def apply_put(destination: Any, path: PathLike, data: Any) -> None:
    """Replace the subtree at ``path`` with ``data``.

    A put at a non-root path is the same operation as a patch of the parent
    with a single field.
    """
    keys = _keys(path)
    if not keys:
        replace_root(destination, data)
        return
    apply_patch(destination, keys[:-1], {keys[-1]: data})


def apply_patch(destination: Any, path: PathLike, fields: Mapping[str, Any]) -> None:
    """Merge ``fields`` into the container at ``path``.

    Siblings not named in ``fields`` are left untouched. ``None`` values
    delete a key or reset a record field to its default.

    Raises:
        NavigationError: the path crosses a value that is not a container
        DecodeError: a payload does not fit the declared type of its target
        UnwritableTargetError: the target is frozen or read-only
    """
    keys = _keys(path)
    journal: Journal = []
    try:
        node = _navigate(destination, keys, journal)
        commits = []
        for name, payload in fields.items():
            commit = node.stage(name, payload)
            if commit is not None:
                commits.append(commit)
    except ChangeError:
        _rollback(journal)
        raise

    for commit in commits:
        commit()


def apply_change(destination: Any, change: Optional[ChangeRecord]) -> None:
    """Apply a decoded change record; ``None`` is a no-op."""
    if change is None:
        return
    if change.kind == "put":
        apply_put(destination, change.keys, change.data)
    elif change.kind == "patch":
        apply_patch(destination, change.keys, change.fields)


def _navigate(destination: Any, keys: Sequence[str], journal: Journal):
    cell = cell_for(destination)
    walked: List[str] = []
    node = normalize(cell, journal, walked)
    for key in keys:
        cell = node.child(key, journal)
        walked.append(key)
        node = normalize(cell, journal, walked)
    return node


def _rollback(journal: Journal) -> None:
    for undo in reversed(journal):
        undo()
    journal.clear()


def replace_root(destination: Any, data: Any) -> None:
    """Replace the entire content of ``destination`` with ``data``."""
    if isinstance(destination, Slot):
        destination.value = None if data is None else decode(destination.hint, data)
        return

    if isinstance(destination, Mapping):
        if not isinstance(destination, MutableMapping):
            raise UnwritableTargetError(
                f"can not write to read-only {type(destination).__name__}"
            )
        if data is not None and not isinstance(data, Mapping):
            raise DecodeError(
                f"cannot decode {type(data).__name__} into {type(destination).__name__}"
            )
        destination.clear()
        destination.update(data or {})
        return

    if is_record(destination):
        record_type = type(destination)
        if is_frozen(destination):
            raise UnwritableTargetError(f"can not write frozen {record_type.__name__}")
        specs = record_fields(record_type)
        if data is None:
            values = {name: spec.default() for name, spec in specs.items()}
        else:
            replacement = decode(record_type, data)
            values = {name: getattr(replacement, name, None) for name in specs}
        for name, value in values.items():
            setattr(destination, name, value)
        return

    raise NavigationError(f"invalid type: {type(destination).__name__}")


def ordered_keys(container: Mapping[str, Any]) -> List[str]:
    """Keys of a keyed container in lexicographic order."""
    return sorted(str(key) for key in container.keys())


def encode_document(value: Any, *, exclude_none: bool = False) -> str:
    """Compact JSON encoding of a destination value."""
    if isinstance(value, Slot):
        value = value.value
    plain = to_jsonable_python(value)
    if exclude_none:
        plain = _prune_none(plain)
    return json.dumps(plain, separators=(",", ":"))


def _prune_none(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _prune_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_prune_none(v) for v in value]
    return value


__all__ = [
    "ChangeRecord",
    "apply_put",
    "apply_patch",
    "apply_change",
    "replace_root",
    "ordered_keys",
    "encode_document",
]
