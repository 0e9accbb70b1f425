"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: decorators.py.
"""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from .coalescer import Coalescer
from .shared import get_default_coalescer

T = TypeVar("T")


def coalesced(
    coalescer: Coalescer | None = None,
) -> Callable[[Callable[..., Awaitable[T] | T]], Callable[..., Awaitable[T]]]:
    """
    Route every call of the decorated callable through a coalescer.

    The wrapper is always a coroutine function, even for sync callables. It
    also exposes ``invalidate(*args, **kwargs)`` and
    ``is_coalesced(*args, **kwargs)`` bound to the wrapped callable. Without
    an explicit coalescer the process-wide default is resolved at call time.

    Usage:

        @coalesced()
        async def load_user(user_id: str) -> dict: ...
    """

    def _target() -> Coalescer:
        return coalescer if coalescer is not None else get_default_coalescer()

    def decorator(operation: Callable[..., Awaitable[T] | T]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(operation)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await _target().coalesce(operation, *args, **kwargs)

        def invalidate(*args: Any, **kwargs: Any) -> None:
            _target().invalidate(operation, *args, **kwargs)

        def is_coalesced(*args: Any, **kwargs: Any) -> bool:
            return _target().is_coalesced(operation, *args, **kwargs)

        wrapper.invalidate = invalidate  # type: ignore[attr-defined]
        wrapper.is_coalesced = is_coalesced  # type: ignore[attr-defined]
        return wrapper

    return decorator
