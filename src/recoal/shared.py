"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Process-wide default coalescer and free-function facade over it.

The default instance is built lazily from `CoalescerSettings.from_env()`.
Use your own `Coalescer` when a component needs its own TTL, limits or
logger.
"""

from __future__ import annotations

import threading
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from .coalescer import Coalescer
from .keys import KeyGenerator
from .settings import CoalescerSettings

T = TypeVar("T")

_DEFAULT: Coalescer | None = None
_DEFAULT_LOCK = threading.Lock()


def get_default_coalescer() -> Coalescer:
    """Return process-wide coalescer singleton."""
    global _DEFAULT
    if _DEFAULT is not None:
        return _DEFAULT
    with _DEFAULT_LOCK:
        if _DEFAULT is None:
            _DEFAULT = Coalescer.from_settings(CoalescerSettings.from_env())
    return _DEFAULT


def reset_default_coalescer() -> None:
    """
    Drop the default coalescer and its state (for tests).

    The old instance's prune task is not stopped; it ends with its event
    loop. Use `areset_default_coalescer` from async code to stop it.
    """
    global _DEFAULT
    with _DEFAULT_LOCK:
        if _DEFAULT is not None:
            _DEFAULT.clear()
        _DEFAULT = None


async def areset_default_coalescer() -> None:
    """Shut down and drop the default coalescer."""
    global _DEFAULT
    with _DEFAULT_LOCK:
        previous, _DEFAULT = _DEFAULT, None
    if previous is not None:
        previous.clear()
        await previous.shutdown()


async def coalesce(
    operation: Callable[..., Awaitable[T] | T],
    /,
    *args: Any,
    **kwargs: Any,
) -> T:
    """`Coalescer.coalesce` on the default instance."""
    return await get_default_coalescer().coalesce(operation, *args, **kwargs)


def is_coalesced(operation: Callable[..., Any], /, *args: Any, **kwargs: Any) -> bool:
    """`Coalescer.is_coalesced` on the default instance."""
    return get_default_coalescer().is_coalesced(operation, *args, **kwargs)


def invalidate(operation: Callable[..., Any], /, *args: Any, **kwargs: Any) -> None:
    """`Coalescer.invalidate` on the default instance."""
    get_default_coalescer().invalidate(operation, *args, **kwargs)


def clear() -> None:
    get_default_coalescer().clear()


def prune() -> None:
    get_default_coalescer().prune()


def set_key_generator(generator: KeyGenerator | None) -> None:
    get_default_coalescer().set_key_generator(generator)
