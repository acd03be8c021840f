"""
Freshness policy — pure classification of an entry for one request.
"""

from __future__ import annotations

from datetime import datetime

from stalewise.cache._options import CacheOptions
from stalewise.cache._types import CacheEntry, Freshness


def classify(
    entry: CacheEntry | None,
    now: datetime,
    options: CacheOptions,
) -> Freshness:
    """
    Classify entry state for this request.

    Positive entries:
        now < soft_expiry                → FRESH
        soft_expiry <= now < hard_expiry → STALE (EXPIRED unless allow_stale)
        now >= hard_expiry               → EXPIRED

    Negative entries are judged by age against the caller's negative_ttl,
    not by the expiry stored at write time.
    """
    if entry is None:
        return Freshness.ABSENT

    if entry.is_negative:
        if entry.age(now) < options.negative_ttl:
            return Freshness.NEGATIVE_HIT
        return Freshness.NEGATIVE_EXPIRED

    if now < entry.soft_expiry:
        return Freshness.FRESH
    if now < entry.hard_expiry and options.allow_stale:
        return Freshness.STALE
    return Freshness.EXPIRED


__all__ = ("classify",)
