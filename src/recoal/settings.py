"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Coalescer settings and explicit config loading.
"""

from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict, Field

from .defaults import DEFAULT_MAX_CONCURRENCY, DEFAULT_PRUNE_INTERVAL_S, DEFAULT_TTL_S

_UNBOUNDED = {"", "none", "inf", "infinity", "unbounded"}


class CoalescerSettings(BaseModel):
    """Validated configuration shared by `Coalescer` instances."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    prune_interval_s: float = Field(default=DEFAULT_PRUNE_INTERVAL_S, gt=0)
    ttl_s: float = Field(default=DEFAULT_TTL_S, ge=0)
    max_concurrency: int | None = Field(default=DEFAULT_MAX_CONCURRENCY, ge=1)

    @staticmethod
    def from_env() -> "CoalescerSettings":
        """Load settings from environment variables."""
        raw_limit = os.getenv("RECOAL_MAX_CONCURRENCY")
        max_concurrency: str | None = None
        if raw_limit is not None and raw_limit.strip().lower() not in _UNBOUNDED:
            max_concurrency = raw_limit.strip()
        return CoalescerSettings(
            prune_interval_s=os.getenv(
                "RECOAL_PRUNE_INTERVAL_S", str(DEFAULT_PRUNE_INTERVAL_S)
            ),
            ttl_s=os.getenv("RECOAL_TTL_S", str(DEFAULT_TTL_S)),
            max_concurrency=max_concurrency,
        )
