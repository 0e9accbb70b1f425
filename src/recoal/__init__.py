"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

recoal: request coalescing and short-lived result caching.

Usage (default instance):

    from recoal import coalesce, is_coalesced
    await coalesce(fetch_user, "u-1")
    active = is_coalesced(fetch_user, "u-1")

Usage (own instance):

    from recoal import Coalescer
    async with Coalescer(ttl_s=5.0, max_concurrency=16) as coalescer:
        await coalescer.coalesce(fetch_user, "u-1")
"""

from .coalescer import CacheEntry, Coalescer
from .decorators import coalesced
from .shared import (
    clear,
    coalesce,
    get_default_coalescer,
    invalidate,
    is_coalesced,
    prune,
    areset_default_coalescer,
    reset_default_coalescer,
    set_key_generator,
)
from .defaults import DEFAULT_MAX_CONCURRENCY, DEFAULT_PRUNE_INTERVAL_S, DEFAULT_TTL_S
from .errors import ConcurrencyLimitExceeded, KeyDerivationError, RecoalError
from .keys import KeyGenerator, canonical_serialize, default_key, operation_name
from .settings import CoalescerSettings

__all__ = [
    "Coalescer",
    "CacheEntry",
    "CoalescerSettings",
    "coalesced",
    "coalesce",
    "is_coalesced",
    "invalidate",
    "clear",
    "prune",
    "set_key_generator",
    "get_default_coalescer",
    "reset_default_coalescer",
    "areset_default_coalescer",
    "RecoalError",
    "ConcurrencyLimitExceeded",
    "KeyDerivationError",
    "KeyGenerator",
    "canonical_serialize",
    "default_key",
    "operation_name",
    "DEFAULT_PRUNE_INTERVAL_S",
    "DEFAULT_TTL_S",
    "DEFAULT_MAX_CONCURRENCY",
]
