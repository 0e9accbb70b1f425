"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: errors.py.
"""

from __future__ import annotations

from collections.abc import Hashable


class RecoalError(RuntimeError):
    """Base error for coalescer failures."""


class ConcurrencyLimitExceeded(RecoalError):
    """Raised when a new dispatch would exceed the configured concurrency limit."""

    def __init__(self, limit: int, key: Hashable) -> None:
        super().__init__(f"Max concurrency ({limit}) reached; rejecting key '{key}'")
        self.limit = limit
        self.key = key


class KeyDerivationError(RecoalError, TypeError):
    """Raised when a cache key cannot be derived from operation arguments."""
