"""
Core types for stalewise.

Type aliases over kungfu shared by the cache layer.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from kungfu import LazyCoroResult

# ═══════════════════════════════════════════════════════════════════════════════
# Lazy Computation Aliases
# ═══════════════════════════════════════════════════════════════════════════════

type Lazy[T, E] = LazyCoroResult[T, E]
"""Lazy async computation that may fail; await it to get a Result."""

type Compute = Callable[[], Awaitable[Any]]
"""
Caller-supplied computation.

Zero-arg callable; the awaitable yields a bare value, a WithTtl,
a Result wrapping either of them, or raises.
"""

# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ("Lazy", "Compute")
