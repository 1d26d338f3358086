"""Per-provider request budgets."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from nutrition_lookup.domain.nutrition import ProviderBudget
from nutrition_lookup.services.locks import KeyedLocks

_logger = logging.getLogger(__name__)


@dataclass
class RateLimiter:
    """Window-aligned request counter per provider.

    Windows start at wall-clock multiples of ``window_seconds``; a new window
    is detected when a call observes that the boundary has been crossed.
    """

    default_limit: int = 60
    limits: dict[str, int] = field(default_factory=dict)
    window_seconds: float = 60.0
    clock: Callable[[], float] = time.time
    _budgets: dict[str, ProviderBudget] = field(default_factory=dict)
    _locks: KeyedLocks = field(default_factory=KeyedLocks)

    def try_acquire(self, provider_id: str) -> bool:
        """Consume one unit of budget; False when the window is exhausted."""
        with self._locks.lock_for(provider_id):
            budget = self._current(provider_id)
            if budget.count >= budget.limit:
                _logger.warning(
                    "Rate limit reached: provider=%s limit=%s", provider_id, budget.limit
                )
                self._budgets[provider_id] = budget
                return False
            self._budgets[provider_id] = ProviderBudget(
                window_start_ms=budget.window_start_ms,
                count=budget.count + 1,
                limit=budget.limit,
            )
            return True

    def seconds_until_reset(self, provider_id: str) -> float:
        """Seconds left before the provider's window rolls over."""
        with self._locks.lock_for(provider_id):
            budget = self._current(provider_id)
        window_end_ms = budget.window_start_ms + int(self.window_seconds * 1000)
        return max(0.0, (window_end_ms - self._now_ms()) / 1000)

    def snapshot(self) -> dict[str, ProviderBudget]:
        """Return the current budget of every provider seen so far."""
        return {
            provider_id: self._locked_current(provider_id)
            for provider_id in list(self._budgets)
        }

    def limit_for(self, provider_id: str) -> int:
        return self.limits.get(provider_id, self.default_limit)

    def _locked_current(self, provider_id: str) -> ProviderBudget:
        with self._locks.lock_for(provider_id):
            return self._current(provider_id)

    def _current(self, provider_id: str) -> ProviderBudget:
        """Budget for the active window; caller holds the provider lock."""
        window_ms = int(self.window_seconds * 1000)
        window_start_ms = self._now_ms() // window_ms * window_ms
        budget = self._budgets.get(provider_id)
        if budget is None or budget.window_start_ms != window_start_ms:
            return ProviderBudget(
                window_start_ms=window_start_ms,
                count=0,
                limit=self.limit_for(provider_id),
            )
        return budget

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)
