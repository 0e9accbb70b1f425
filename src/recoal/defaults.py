"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: defaults.py.
"""

from __future__ import annotations

# Interval between sweeps of expired cache entries.
DEFAULT_PRUNE_INTERVAL_S = 60.0

# How long a successful result stays authoritative.
DEFAULT_TTL_S = 1.0

# None means no limit on concurrently executing keys.
DEFAULT_MAX_CONCURRENCY: int | None = None

KEY_SEPARATOR = "|"
ANONYMOUS_OPERATION = "anonymous"
