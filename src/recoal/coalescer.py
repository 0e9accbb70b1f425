"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Request coalescer: in-flight deduplication plus short-lived result caching.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Any, TypeVar

from .defaults import DEFAULT_MAX_CONCURRENCY, DEFAULT_PRUNE_INTERVAL_S, DEFAULT_TTL_S
from .errors import ConcurrencyLimitExceeded
from .keys import KeyGenerator, derive_key
from .settings import CoalescerSettings

T = TypeVar("T")

_logger = logging.getLogger("recoal.coalescer")


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """One cached result with the clock reading taken when it was stored."""

    result: Any
    timestamp: float


class Coalescer:
    """
    Deduplicate concurrent calls and cache their results for a short TTL.

    Calls are identified by the callable plus its arguments. While a call is
    running, identical calls join it and observe the same result or the same
    exception. A successful result stays authoritative while its age is below
    ``ttl_s``; failures are never cached.

    All bookkeeping happens on the event loop thread between suspension
    points, so no locks are taken. Expired entries are reclaimed by a
    background prune task that starts on first use and stops on
    ``shutdown()``.
    """

    def __init__(
        self,
        *,
        prune_interval_s: float = DEFAULT_PRUNE_INTERVAL_S,
        ttl_s: float = DEFAULT_TTL_S,
        max_concurrency: int | None = DEFAULT_MAX_CONCURRENCY,
        logger: logging.Logger | None = None,
        key_generator: KeyGenerator | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = CoalescerSettings(
            prune_interval_s=prune_interval_s,
            ttl_s=ttl_s,
            max_concurrency=max_concurrency,
        )
        self._prune_interval_s = settings.prune_interval_s
        self._ttl_s = settings.ttl_s
        self._max_concurrency = settings.max_concurrency
        self._logger = logger or _logger
        self._key_generator = key_generator
        self._clock = clock
        self._concurrency = 0
        self._in_flight: dict[Hashable, asyncio.Task[Any]] = {}
        self._results: dict[Hashable, CacheEntry] = {}
        self._expiry_handles: dict[Hashable, asyncio.TimerHandle] = {}
        self._prune_task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(
        cls,
        settings: CoalescerSettings,
        **overrides: Any,
    ) -> "Coalescer":
        """
        Build a coalescer from validated settings.

        Overrides may replace settings fields (``ttl_s`` etc.) or pass the
        remaining constructor arguments (``logger``, ``key_generator``,
        ``clock``).
        """
        values = settings.model_dump()
        for name in CoalescerSettings.model_fields:
            if name in overrides:
                values[name] = overrides.pop(name)
        return cls(**values, **overrides)

    async def __aenter__(self) -> "Coalescer":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    @property
    def ttl_s(self) -> float:
        return self._ttl_s

    @property
    def prune_interval_s(self) -> float:
        return self._prune_interval_s

    @property
    def max_concurrency(self) -> int | None:
        return self._max_concurrency

    @property
    def current_concurrency(self) -> int:
        """Number of underlying executions currently running."""
        return self._concurrency

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    @property
    def cached_count(self) -> int:
        """Number of stored results, including expired rows not yet pruned."""
        return len(self._results)

    @property
    def is_pruning(self) -> bool:
        """Whether the background prune task is alive."""
        task = self._prune_task
        return (
            task is not None
            and not task.done()
            and not task.get_loop().is_closed()
        )

    def start(self) -> None:
        """
        Start the background prune task on the running loop.

        Calling this while the task is alive is a no-op. `coalesce` calls it
        lazily, so explicit calls are only needed to start pruning early.
        """
        if self.is_pruning:
            return
        loop = asyncio.get_running_loop()
        self._prune_task = loop.create_task(self._prune_loop())
        self._logger.debug(
            "[recoal] Started pruning every %.3fs", self._prune_interval_s
        )

    async def shutdown(self) -> None:
        """
        Stop the prune task and drop pending expiry timers.

        Cached results stay readable. Running executions are not cancelled.
        A later `coalesce` call starts pruning again.
        """
        task = self._prune_task
        self._prune_task = None
        if task is not None and not task.done():
            task.cancel()
            if task.get_loop() is asyncio.get_running_loop():
                await asyncio.gather(task, return_exceptions=True)
        self._cancel_all_expiry()
        self._logger.debug("[recoal] Stopped pruning")

    def set_key_generator(self, generator: KeyGenerator | None) -> None:
        """
        Replace key derivation for subsequent calls.

        The generator is called as ``generator(identifier, *args, **kwargs)``.
        Declare the identifier positional-only (``def gen(identifier, /, *args,
        **kwargs)``) so calls with any keyword argument still work. Existing
        entries keep their old keys; pass ``None`` to restore the default
        derivation.
        """
        self._key_generator = generator

    async def coalesce(
        self,
        operation: Callable[..., Awaitable[T] | T],
        /,
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """
        Run `operation(*args, **kwargs)` at most once per key at a time.

        Returns the in-flight result when an identical call is running, the
        cached result while it is fresh, and otherwise dispatches a new
        execution. Sync callables and awaitable-returning callables are both
        accepted.

        Raises:
            KeyDerivationError: arguments could not be turned into a key.
            ConcurrencyLimitExceeded: a new dispatch would exceed
                ``max_concurrency``.
        """
        key = self._key(operation, args, kwargs)
        self.start()

        existing = self._in_flight.get(key)
        if existing is not None:
            self._logger.debug("[recoal] Reusing in-flight request for key: %s", key)
            return await asyncio.shield(existing)

        entry = self._results.get(key)
        if entry is not None and self._is_fresh(entry, self._clock()):
            self._logger.debug("[recoal] Returning cached result for key: %s", key)
            return entry.result

        if (
            self._max_concurrency is not None
            and self._concurrency >= self._max_concurrency
        ):
            self._logger.warning(
                "[recoal] Max concurrency (%d) reached. Rejecting request for key: %s",
                self._max_concurrency,
                key,
            )
            raise ConcurrencyLimitExceeded(self._max_concurrency, key)

        self._concurrency += 1
        task = asyncio.get_running_loop().create_task(
            self._execute(key, operation, args, kwargs)
        )
        self._in_flight[key] = task
        self._logger.debug("[recoal] Created new in-flight request for key: %s", key)
        return await asyncio.shield(task)

    def is_coalesced(
        self,
        operation: Callable[..., Any],
        /,
        *args: Any,
        **kwargs: Any,
    ) -> bool:
        """Return whether an identical call is in flight or freshly cached."""
        key = self._key(operation, args, kwargs)
        if key in self._in_flight:
            return True
        entry = self._results.get(key)
        return entry is not None and self._is_fresh(entry, self._clock())

    def invalidate(
        self,
        operation: Callable[..., Any],
        /,
        *args: Any,
        **kwargs: Any,
    ) -> None:
        """
        Forget the cached result and in-flight entry for one call.

        A running execution is detached rather than cancelled: it still
        settles for the callers already waiting on it, but its result is not
        cached.
        """
        key = self._key(operation, args, kwargs)
        self._results.pop(key, None)
        self._cancel_expiry(key)
        self._in_flight.pop(key, None)
        self._logger.debug("[recoal] Invalidated cache and in-flight for key: %s", key)

    def clear(self) -> None:
        """Drop every cached result and in-flight entry. Pruning keeps running."""
        self._results.clear()
        self._in_flight.clear()
        self._cancel_all_expiry()
        self._logger.debug("[recoal] Cleared all cache and in-flight requests")

    def prune(self) -> None:
        """Remove expired cache entries. In-flight entries clean up on settlement."""
        now = self._clock()
        expired = [
            key
            for key, entry in self._results.items()
            if not self._is_fresh(entry, now)
        ]
        for key in expired:
            del self._results[key]
            self._cancel_expiry(key)
        self._logger.debug("[recoal] Pruned %d expired entries", len(expired))

    def _key(
        self,
        operation: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> Hashable:
        return derive_key(operation, args, kwargs, generator=self._key_generator)

    def _is_fresh(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.timestamp < self._ttl_s

    async def _execute(
        self,
        key: Hashable,
        operation: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> Any:
        task = asyncio.current_task()
        try:
            result = operation(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            # Detached executions (invalidate/clear) must not repopulate the cache.
            if self._in_flight.get(key) is task:
                self._store(key, result)
            return result
        except Exception:
            self._logger.exception("[recoal] Error processing request for key: %s", key)
            raise
        finally:
            if self._in_flight.get(key) is task:
                del self._in_flight[key]
            self._concurrency -= 1
            self._logger.debug("[recoal] Cleared in-flight request for key: %s", key)

    def _store(self, key: Hashable, result: Any) -> None:
        self._results[key] = CacheEntry(result=result, timestamp=self._clock())
        self._cancel_expiry(key)
        self._expiry_handles[key] = asyncio.get_running_loop().call_later(
            self._ttl_s, self._expire, key
        )

    def _expire(self, key: Hashable) -> None:
        self._expiry_handles.pop(key, None)
        entry = self._results.get(key)
        if entry is not None and not self._is_fresh(entry, self._clock()):
            del self._results[key]
            self._logger.debug("[recoal] Cleared cached result for key: %s", key)

    def _cancel_expiry(self, key: Hashable) -> None:
        handle = self._expiry_handles.pop(key, None)
        if handle is not None:
            handle.cancel()

    def _cancel_all_expiry(self) -> None:
        for handle in self._expiry_handles.values():
            handle.cancel()
        self._expiry_handles.clear()

    async def _prune_loop(self) -> None:
        while True:
            await asyncio.sleep(self._prune_interval_s)
            try:
                self.prune()
            except Exception:  # noqa: BLE001
                self._logger.exception("[recoal] Periodic prune failed")
