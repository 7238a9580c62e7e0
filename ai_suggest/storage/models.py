"""
Data models for storage layer.

Defines the persisted records and how they are read back.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class CacheEntry:
    """A suggestion previously obtained for a normalized input."""
    key: str
    suggestion: str
    created_at: float

    def is_fresh(self, now: float, ttl: float) -> bool:
        """True while ``now - created_at < ttl``."""
        return now - self.created_at < ttl

    def to_dict(self) -> Dict[str, Any]:
        return {"suggestion": self.suggestion, "timestamp": self.created_at}

    @classmethod
    def from_dict(cls, key: Any, data: Any) -> Optional["CacheEntry"]:
        """Parse a persisted entry, returning None for malformed records."""
        if not isinstance(key, str) or not isinstance(data, dict):
            return None
        suggestion = data.get("suggestion")
        timestamp = data.get("timestamp")
        if not isinstance(suggestion, str) or not suggestion:
            return None
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            return None
        return cls(key=key, suggestion=suggestion, created_at=float(timestamp))


@dataclass
class UsageRecord:
    """Process-wide request counters and running cost estimate.

    ``daily_requests`` belongs to the calendar day in ``last_reset_date``
    (ISO format); it is zeroed whenever that date is not today.
    """
    total_requests: int = 0
    cached_hits: int = 0
    daily_requests: int = 0
    last_reset_date: str = ""
    cost_estimate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "cached_hits": self.cached_hits,
            "daily_requests": self.daily_requests,
            "last_reset_date": self.last_reset_date,
            "cost_estimate": self.cost_estimate,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["UsageRecord"]:
        """Parse a persisted record.

        Unknown keys are ignored. Returns None if the blob is not a mapping or
        any known field has the wrong type.
        """
        if not isinstance(data, dict):
            return None
        record = cls()
        for name in ("total_requests", "cached_hits", "daily_requests"):
            value = data.get(name, 0)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                return None
            setattr(record, name, value)
        last_reset = data.get("last_reset_date", "")
        if not isinstance(last_reset, str):
            return None
        record.last_reset_date = last_reset
        cost = data.get("cost_estimate", 0.0)
        if isinstance(cost, bool) or not isinstance(cost, (int, float)) or cost < 0:
            return None
        record.cost_estimate = float(cost)
        return record
