"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Cache key derivation helpers.

Keys are built as ``<operation>|<args>[|<kwargs>]`` where the argument parts
are canonical JSON: mapping keys are sorted and set members are ordered, so
structurally equal arguments always collide regardless of insertion order.
Values that are not plain JSON scalars or containers are wrapped as
``{"__type__": "<module>.<qualname>", "value": ...}`` so that, for example,
``b"x"``, ``"x"`` and a ``StrEnum`` member valued ``"x"`` never share a key.
"""

from __future__ import annotations

import dataclasses
import functools
import json
from collections.abc import Callable, Hashable
from typing import Any

from pydantic import BaseModel
from pydantic_core import PydanticSerializationError, to_jsonable_python

from .defaults import ANONYMOUS_OPERATION, KEY_SEPARATOR
from .errors import KeyDerivationError

# Called as generator(identifier, *args, **kwargs); declare the identifier
# positional-only so callers may pass any keyword, including "name".
KeyGenerator = Callable[..., Hashable]

_JSON_SCALARS = (str, int, float, bool)


def _tagged(value: Any, encoded: Any) -> dict[str, Any]:
    kind = type(value)
    return {"__type__": f"{kind.__module__}.{kind.__qualname__}", "value": encoded}


def _canonical(value: Any, active: set[int]) -> Any:
    """Convert a value into JSON-native data with type tags for everything else."""
    if value is None or type(value) in _JSON_SCALARS:
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _tagged(value, bytes(value).hex())

    marker = id(value)
    if marker in active:
        raise ValueError("Circular reference detected")
    active.add(marker)
    try:
        if type(value) is dict:
            return {key: _canonical(item, active) for key, item in value.items()}
        if type(value) in (list, tuple):
            return [_canonical(item, active) for item in value]
        if isinstance(value, (set, frozenset)):
            members = [_canonical(item, active) for item in value]
            return _tagged(value, sorted(members, key=_dumps))
        if isinstance(value, BaseModel):
            fields = {name: _canonical(item, active) for name, item in value}
            return _tagged(value, fields)
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            fields = {
                field.name: _canonical(getattr(value, field.name), active)
                for field in dataclasses.fields(value)
            }
            return _tagged(value, fields)
        if isinstance(value, dict):
            return _tagged(
                value, {key: _canonical(item, active) for key, item in value.items()}
            )
        return _tagged(value, to_jsonable_python(value, bytes_mode="base64"))
    finally:
        active.discard(marker)


def _dumps(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def canonical_serialize(value: Any) -> str:
    """Serialize a value into a stable, type-distinguishing JSON string."""
    try:
        return _dumps(_canonical(value, set()))
    except PydanticSerializationError as exc:
        raise KeyDerivationError(f"Unserializable argument: {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise KeyDerivationError(f"Cannot canonicalize arguments: {exc}") from exc


def unwrap_operation(
    operation: Callable[..., Any],
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
) -> tuple[Callable[..., Any], tuple[Any, ...], dict[str, Any]]:
    """Fold `functools.partial` layers into the call arguments."""
    while isinstance(operation, functools.partial):
        args = (*operation.args, *args)
        kwargs = {**operation.keywords, **kwargs}
        operation = operation.func
    return operation, args, kwargs


def operation_name(operation: Callable[..., Any]) -> str:
    """
    Return a stable identifier for a callable.

    Functions and methods use ``<module>.<qualname>``; callable instances use
    their class. Bound methods and callable instances are not told apart by
    receiver, so pass a key generator when the receiver matters.
    """
    name = getattr(operation, "__qualname__", None) or getattr(
        operation, "__name__", None
    )
    if not name and callable(operation) and not isinstance(operation, type):
        name = getattr(type(operation), "__qualname__", None)
    if not name:
        return ANONYMOUS_OPERATION
    module = getattr(operation, "__module__", None)
    return f"{module}.{name}" if module else name


def default_key(name: str, /, *args: Any, **kwargs: Any) -> str:
    """Build the default cache key for one operation call."""
    parts = [name, canonical_serialize(list(args))]
    if kwargs:
        parts.append(canonical_serialize(kwargs))
    return KEY_SEPARATOR.join(parts)


def derive_key(
    operation: Callable[..., Any],
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
    *,
    generator: KeyGenerator | None = None,
) -> Hashable:
    """Resolve the cache key for `operation(*args, **kwargs)`."""
    operation, args, kwargs = unwrap_operation(operation, args, kwargs)
    name = operation_name(operation)
    if generator is None:
        return default_key(name, *args, **kwargs)
    try:
        key = generator(name, *args, **kwargs)
        hash(key)
        return key
    except Exception as exc:
        raise KeyDerivationError(f"Key generator failed for '{name}': {exc}") from exc
