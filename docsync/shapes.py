"""Destination shapes understood by the patch applier.

A destination node is one of a closed set of shapes:

    dynamic slot      a ``Slot`` or record field declared ``Any``
    keyed container   any ``Mapping`` (writable when it is a ``MutableMapping``)
    record            a dataclass or pydantic model instance
    optional          a slot or field declared ``Optional[X]`` holding ``None``

Values live in *cells* (the root slot, a record attribute, a mapping entry).
``normalize`` materializes an empty cell according to its declared type and
returns the node found there; ``KeyedNode`` and ``RecordNode`` provide the
uniform child/stage operations the applier needs.
"""

from __future__ import annotations

import dataclasses
import types
import typing
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, Generic, List, Optional, Protocol, Sequence, Tuple, TypeVar, Union

from pydantic import BaseModel, TypeAdapter, ValidationError

from docsync.errors import DecodeError, NavigationError, UnwritableTargetError

T = TypeVar("T")

# Undo actions recorded while a path is materialized
Journal = List[Callable[[], None]]
Commit = Callable[[], None]


class Slot(Generic[T]):
    """Mutable box holding one value of a declared type.

    Use a Slot as the destination when the root itself may be unset or
    should be replaced wholesale:

        doc = Slot()                      # dynamic: becomes a dict
        profile = Slot(Optional[Profile]) # allocated on first write
    """

    def __init__(self, hint: Any = Any, value: Optional[T] = None):
        self.hint = hint
        self.value = value

    def __repr__(self) -> str:
        return f"Slot({self.value!r})"


# =============================================================================
# TYPE INSPECTION
# =============================================================================

def unwrap_optional(hint: Any) -> Tuple[bool, Any]:
    """Split ``Optional[X]`` into ``(True, X)``; other hints give ``(False, hint)``."""
    origin = typing.get_origin(hint)
    if origin is Union or (hasattr(types, "UnionType") and origin is types.UnionType):
        args = typing.get_args(hint)
        rest = [arg for arg in args if arg is not type(None)]
        if len(rest) < len(args):
            return True, rest[0] if len(rest) == 1 else Any
    return False, hint


def is_dynamic(hint: Any) -> bool:
    return hint is Any or hint is object


def is_mapping_hint(hint: Any) -> bool:
    origin = typing.get_origin(hint) or hint
    return isinstance(origin, type) and issubclass(origin, Mapping)


def mapping_value_hint(hint: Any) -> Any:
    """Declared value type of a mapping hint, ``Any`` when unknown."""
    if is_mapping_hint(hint):
        args = typing.get_args(hint)
        if len(args) == 2:
            return args[1]
    return Any


def is_record(value: Any) -> bool:
    if isinstance(value, type):
        return False
    return isinstance(value, BaseModel) or dataclasses.is_dataclass(value)


def is_record_type(hint: Any) -> bool:
    if not isinstance(hint, type):
        return False
    return issubclass(hint, BaseModel) or dataclasses.is_dataclass(hint)


def is_frozen(record: Any) -> bool:
    if isinstance(record, BaseModel):
        return bool(type(record).model_config.get("frozen", False))
    params = getattr(type(record), "__dataclass_params__", None)
    return bool(params is not None and params.frozen)


# =============================================================================
# RECORD FIELDS
# =============================================================================

@dataclass(frozen=True)
class FieldSpec:
    """A named field of a record type."""

    name: str
    hint: Any
    default: Callable[[], Any]
    alias: Optional[str] = None


@lru_cache(maxsize=None)
def record_fields(record_type: type) -> Dict[str, FieldSpec]:
    """Fields of a dataclass or pydantic model, keyed by attribute name."""
    specs: Dict[str, FieldSpec] = {}

    if issubclass(record_type, BaseModel):
        for name, info in record_type.model_fields.items():
            hint = info.annotation if info.annotation is not None else Any
            if info.is_required():
                default = _zero_factory(hint)
            else:
                default = _pydantic_default(info)
            specs[name] = FieldSpec(name=name, hint=hint, default=default, alias=info.alias)
        return specs

    hints = typing.get_type_hints(record_type)
    for f in dataclasses.fields(record_type):
        hint = hints.get(f.name, Any)
        if f.default is not dataclasses.MISSING:
            default = _constant(f.default)
        elif f.default_factory is not dataclasses.MISSING:
            default = f.default_factory
        else:
            default = _zero_factory(hint)
        specs[f.name] = FieldSpec(name=f.name, hint=hint, default=default)
    return specs


def _constant(value: Any) -> Callable[[], Any]:
    return lambda: value


def _zero_factory(hint: Any) -> Callable[[], Any]:
    return lambda: zero_value(hint)


def _pydantic_default(info: Any) -> Callable[[], Any]:
    return lambda: info.get_default(call_default_factory=True)


def resolve_field(record_type: type, key: str) -> Optional[FieldSpec]:
    """Find the field addressed by ``key``.

    Exact attribute name (or pydantic alias) first, then a case-insensitive
    match on the attribute name.
    """
    fields = record_fields(record_type)
    if key in fields:
        return fields[key]
    for spec in fields.values():
        if spec.alias == key:
            return spec
    folded = key.casefold()
    for spec in fields.values():
        if spec.name.casefold() == folded:
            return spec
    return None


# =============================================================================
# DEFAULTS AND DECODING
# =============================================================================

_SCALAR_ZEROS = {int: 0, float: 0.0, str: "", bool: False, bytes: b""}


def zero_value(hint: Any) -> Any:
    """The empty value of a declared type; ``None`` when there is none."""
    optional, inner = unwrap_optional(hint)
    if optional or is_dynamic(inner):
        return None
    if inner in _SCALAR_ZEROS:
        return _SCALAR_ZEROS[inner]
    if is_mapping_hint(inner):
        return {}
    origin = typing.get_origin(inner) or inner
    if isinstance(origin, type) and issubclass(origin, (list, set, tuple)):
        return origin()
    if is_record_type(inner):
        return new_record(inner)
    return None


def new_record(record_type: type) -> Any:
    """Build a record with defaults, zero-filling required fields."""
    fields = record_fields(record_type)
    if issubclass(record_type, BaseModel):
        required = {
            name: spec.default()
            for name, spec in fields.items()
            if record_type.model_fields[name].is_required()
        }
        return record_type.model_construct(**required)

    required = {
        f.name: fields[f.name].default()
        for f in dataclasses.fields(record_type)
        if f.init
        and f.default is dataclasses.MISSING
        and f.default_factory is dataclasses.MISSING
    }
    return record_type(**required)


def default_instance(hint: Any) -> Any:
    """Fresh container for an unset cell of type ``hint``."""
    if is_dynamic(hint):
        return {}
    if is_mapping_hint(hint):
        origin = typing.get_origin(hint) or hint
        return origin() if issubclass(origin, dict) else {}
    if is_record_type(hint):
        return new_record(hint)
    value = zero_value(hint)
    return {} if value is None else value


@lru_cache(maxsize=256)
def _adapter(hint: Any) -> TypeAdapter:
    return TypeAdapter(hint)


def canonical_payload(hint: Any, payload: Any) -> Any:
    """Rewrite record keys in ``payload`` to the names ``hint`` validates by.

    Keys are matched with ``resolve_field``; unknown keys are dropped and
    fields that are missing or null take their defaults. Mappings of
    records are rewritten value by value.
    """
    if not isinstance(payload, Mapping):
        return payload
    _, inner = unwrap_optional(hint)

    if is_record_type(inner):
        fields = record_fields(inner)
        rewritten: Dict[str, Any] = {}
        for key, value in payload.items():
            spec = resolve_field(inner, key)
            if spec is None or value is None:
                continue
            rewritten[spec.name] = canonical_payload(spec.hint, value)
        return {
            spec.alias or name: rewritten[name] if name in rewritten else spec.default()
            for name, spec in fields.items()
        }

    if is_mapping_hint(inner):
        value_hint = mapping_value_hint(inner)
        return {key: canonical_payload(value_hint, value) for key, value in payload.items()}

    return payload


def decode(hint: Any, payload: Any, path: Sequence[str] = ()) -> Any:
    """Decode a parsed JSON payload into a value of type ``hint``."""
    if is_dynamic(hint):
        return payload
    try:
        adapter = _adapter(hint)
    except TypeError:
        adapter = TypeAdapter(hint)
    try:
        return adapter.validate_python(canonical_payload(hint, payload))
    except ValidationError as exc:
        raise DecodeError(
            f"cannot decode payload as {_type_name(hint)}: {exc.error_count()} error(s)",
            path,
        ) from exc


def _type_name(hint: Any) -> str:
    return getattr(hint, "__name__", None) or repr(hint)


# =============================================================================
# CELLS
# =============================================================================

class Cell(Protocol):
    """A place holding a value with a declared type."""
    hint: Any
    def get(self) -> Any: ...
    def set(self, value: Any) -> None: ...


class SlotCell:
    def __init__(self, slot: Slot):
        self.slot = slot
        self.hint = slot.hint

    def get(self) -> Any:
        return self.slot.value

    def set(self, value: Any) -> None:
        self.slot.value = value


class FixedCell:
    """The caller's root object; it is mutated, never rebound."""

    def __init__(self, value: Any):
        self.value = value
        self.hint = type(value)

    def get(self) -> Any:
        return self.value

    def set(self, value: Any) -> None:
        raise UnwritableTargetError(
            f"cannot rebind root {type(self.value).__name__}, wrap it in a Slot"
        )


class AttributeCell:
    def __init__(self, record: Any, spec: FieldSpec, path: Sequence[str]):
        self.record = record
        self.spec = spec
        self.hint = spec.hint
        self.path = tuple(path)

    def get(self) -> Any:
        return getattr(self.record, self.spec.name, None)

    def set(self, value: Any) -> None:
        if is_frozen(self.record):
            raise UnwritableTargetError(
                f"can not write field {self.spec.name!r} of frozen {type(self.record).__name__}",
                self.path,
            )
        setattr(self.record, self.spec.name, value)


class EntryCell:
    def __init__(self, mapping: MutableMapping, key: str, hint: Any):
        self.mapping = mapping
        self.key = key
        self.hint = hint

    def get(self) -> Any:
        return self.mapping.get(self.key)

    def set(self, value: Any) -> None:
        self.mapping[self.key] = value


def cell_for(destination: Any) -> Cell:
    if isinstance(destination, Slot):
        return SlotCell(destination)
    return FixedCell(destination)


# =============================================================================
# NODES
# =============================================================================

class KeyedNode:
    """A mapping from string key to values of ``value_hint``."""

    def __init__(self, mapping: Mapping, value_hint: Any, path: Sequence[str]):
        self.mapping = mapping
        self.value_hint = value_hint
        self.path = tuple(path)

    def _writable(self) -> MutableMapping:
        if not isinstance(self.mapping, MutableMapping):
            raise UnwritableTargetError(
                f"can not write to read-only {type(self.mapping).__name__}", self.path
            )
        return self.mapping

    def child(self, key: str, journal: Journal) -> Cell:
        if key not in self.mapping:
            mapping = self._writable()
            _, inner = unwrap_optional(self.value_hint)
            mapping[key] = default_instance(inner)
            journal.append(lambda: mapping.pop(key, None))
        return EntryCell(self.mapping, key, self.value_hint)

    def stage(self, field: str, payload: Any) -> Optional[Commit]:
        mapping = self._writable()
        if payload is None:
            return lambda: mapping.pop(field, None)
        value = decode(self.value_hint, payload, self.path + (field,))
        return lambda: mapping.__setitem__(field, value)


class RecordNode:
    """A dataclass or pydantic model instance."""

    def __init__(self, record: Any, path: Sequence[str]):
        self.record = record
        self.path = tuple(path)

    def child(self, key: str, journal: Journal) -> Cell:
        spec = resolve_field(type(self.record), key)
        if spec is None:
            raise NavigationError(
                f"{type(self.record).__name__} has no field {key!r}", self.path + (key,)
            )
        return AttributeCell(self.record, spec, self.path + (key,))

    def stage(self, field: str, payload: Any) -> Optional[Commit]:
        spec = resolve_field(type(self.record), field)
        if spec is None:
            return None
        if is_frozen(self.record):
            raise UnwritableTargetError(
                f"can not write field {spec.name!r} of frozen {type(self.record).__name__}",
                self.path,
            )
        if payload is None:
            value = spec.default()
        else:
            value = decode(spec.hint, payload, self.path + (field,))
        record, name = self.record, spec.name
        return lambda: setattr(record, name, value)


Node = Union[KeyedNode, RecordNode]


def normalize(cell: Cell, journal: Journal, path: Sequence[str]) -> Node:
    """Materialize an unset cell and return the node stored there."""
    value = cell.get()
    optional, hint = unwrap_optional(cell.hint)
    if value is None and (optional or is_dynamic(hint) or is_mapping_hint(hint)):
        value = default_instance(hint)
        cell.set(value)
        journal.append(lambda: cell.set(None))

    if isinstance(value, Mapping):
        value_hint = mapping_value_hint(hint) if is_mapping_hint(hint) else Any
        return KeyedNode(value, value_hint, path)
    if is_record(value):
        return RecordNode(value, path)
    raise NavigationError(f"invalid type: {type(value).__name__}", path)


__all__ = [
    "Slot",
    "FieldSpec",
    "KeyedNode",
    "RecordNode",
    "Cell",
    "cell_for",
    "normalize",
    "decode",
    "zero_value",
    "new_record",
    "default_instance",
    "record_fields",
    "resolve_field",
    "unwrap_optional",
    "is_record",
    "is_frozen",
]
