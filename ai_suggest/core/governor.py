"""
Request-rate and quota governor.

Decides whether a new remote call is allowed and keeps usage statistics.

Checks, in order:
1. Daily quota - ``daily_requests`` must be below the configured limit
2. Cooldown - a fixed interval must have passed since the last request

Either check alone is enough to deny a call. Daily counters belong to a
calendar day and reset the first time the governor is consulted on a new one.
"""

import logging
import time
from dataclasses import dataclass
from datetime import date
from enum import Enum, auto
from typing import Callable, Optional

from .pricing import DEFAULT_PRICING, ModelPricing, add_cost, calculate_cost
from .token_counter import TokenUsage
from ai_suggest.storage.models import UsageRecord
from ai_suggest.storage.store import PersistentStore

logger = logging.getLogger(__name__)


class GovernorDecision(Enum):
    """Outcome of a rate check."""
    ALLOW = auto()        # A remote call may be made
    DAILY_LIMIT = auto()  # Today's quota is used up
    COOLDOWN = auto()     # The previous request was too recent


@dataclass(frozen=True)
class UsageStats:
    """Read-only usage summary for display."""
    total_requests: int
    daily_requests: int
    daily_limit: int
    cached_hits: int
    cache_hit_rate: float
    estimated_cost: float


class UsageGovernor:
    """Tracks request counts, daily quota, cooldown and estimated cost.

    The check is advisory: it does not reserve a slot, so callers must not
    run the suggestion pipeline concurrently with itself.
    """

    def __init__(
        self,
        store: PersistentStore,
        daily_limit: int = 100,
        cooldown_seconds: float = 5.0,
        pricing: ModelPricing = DEFAULT_PRICING,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the governor and load the persisted usage record.

        Args:
            store: Backing JSON store for the usage record
            daily_limit: Maximum remote requests per calendar day
            cooldown_seconds: Minimum interval between remote requests
            pricing: Rates used for the cost estimate
            clock: Returns the current time in seconds
        """
        if daily_limit <= 0:
            raise ValueError("daily_limit must be > 0")
        if cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must be >= 0")

        self.store = store
        self.daily_limit = daily_limit
        self.cooldown_seconds = cooldown_seconds
        self.pricing = pricing
        self.clock = clock
        self.last_request_time: Optional[float] = None
        self.record = self._load()
        self._roll_day()

    def _load(self) -> UsageRecord:
        data = self.store.load()
        if data is None:
            return UsageRecord(last_reset_date=self._today())
        record = UsageRecord.from_dict(data)
        if record is None:
            logger.warning("Ignoring malformed usage record in %s", self.store.path)
            return UsageRecord(last_reset_date=self._today())
        return record

    def _today(self) -> str:
        return date.fromtimestamp(self.clock()).isoformat()

    def _persist(self) -> None:
        self.store.save(self.record.to_dict())

    def _roll_day(self) -> bool:
        """Zero the daily counter if the stored date is not today."""
        today = self._today()
        if self.record.last_reset_date == today:
            return False
        logger.debug(
            "New day %s (was %r), resetting %d daily requests",
            today, self.record.last_reset_date, self.record.daily_requests,
        )
        self.record.daily_requests = 0
        self.record.last_reset_date = today
        return True

    def check(self) -> GovernorDecision:
        """Evaluate quota and cooldown for a new remote call."""
        self._roll_day()

        if self.record.daily_requests >= self.daily_limit:
            return GovernorDecision.DAILY_LIMIT

        if (self.last_request_time is not None and
                self.clock() - self.last_request_time < self.cooldown_seconds):
            return GovernorDecision.COOLDOWN

        return GovernorDecision.ALLOW

    def can_make_request(self) -> bool:
        """True if a remote call is currently allowed."""
        return self.check() == GovernorDecision.ALLOW

    def record_request(self, token_count: int = 0) -> None:
        """Account for a completed remote call and persist the record.

        Args:
            token_count: Total tokens reported by the endpoint
        """
        self._roll_day()
        cost = calculate_cost(TokenUsage(total_tokens=max(0, token_count)), self.pricing)

        self.record.total_requests += 1
        self.record.daily_requests += 1
        self.record.cost_estimate = add_cost(self.record.cost_estimate, cost)
        self.last_request_time = self.clock()
        self._persist()

    def record_cache_hit(self) -> None:
        """Count a suggestion served from the cache."""
        self.record.cached_hits += 1
        self._persist()

    def get_stats(self) -> UsageStats:
        """Current usage summary; the hit rate is hits over remote requests."""
        if self._roll_day():
            self._persist()

        total = self.record.total_requests
        return UsageStats(
            total_requests=total,
            daily_requests=self.record.daily_requests,
            daily_limit=self.daily_limit,
            cached_hits=self.record.cached_hits,
            cache_hit_rate=(self.record.cached_hits / total) if total > 0 else 0.0,
            estimated_cost=self.record.cost_estimate,
        )

    def reset(self) -> None:
        """Discard all usage statistics and persist the empty record."""
        self.record = UsageRecord(last_reset_date=self._today())
        self.last_request_time = None
        self._persist()
