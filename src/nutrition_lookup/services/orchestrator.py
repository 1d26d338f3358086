"""Lookup orchestration across the cache and nutrition providers."""

import asyncio
import logging
from collections.abc import Callable, Coroutine, Sequence
from dataclasses import dataclass, field, replace
from functools import partial

from nutrition_lookup.adapters.provider import ProviderAdapter, ProviderId
from nutrition_lookup.domain.errors import (
    NoReliableData,
    ProviderAuthError,
    ProviderUnavailable,
    RateLimited,
)
from nutrition_lookup.domain.nutrition import (
    PLACEHOLDER_SOURCE,
    FoodQuery,
    LookupMode,
    LookupOptions,
    LookupResult,
    Macros,
    NotFound,
    NutritionRecord,
    OutcomeStatus,
    PlaceholderResult,
    ProviderOutcome,
    ReconciledResult,
    ServingBasis,
)
from nutrition_lookup.services.cache import TieredCache, normalize_key
from nutrition_lookup.services.rate_limiter import RateLimiter
from nutrition_lookup.services.reconciliation import ReconciliationEngine

_logger = logging.getLogger(__name__)

_Attempt = tuple[NutritionRecord | None, ProviderOutcome]


@dataclass(frozen=True)
class OrchestratorConfig:
    """Static policy for one orchestrator instance."""

    priority: tuple[str, ...] = tuple(provider.value for provider in ProviderId)
    mode: LookupMode = LookupMode.PARALLEL_RECONCILE
    max_providers: int | None = None
    timeout_seconds: float | None = 10.0
    ttl_seconds: float = 86400
    max_attempts: int = 2
    backoff_base_seconds: float = 0.3
    backoff_factor: float = 2.0
    max_backoff_seconds: float = 5.0
    max_results: int = 5
    coalesce_requests: bool = False
    debug: bool = False


@dataclass(frozen=True)
class _Plan:
    mode: LookupMode
    max_providers: int | None
    timeout_seconds: float | None
    ttl_seconds: float


@dataclass
class _InFlight:
    task: "asyncio.Task[LookupResult]"
    waiters: int = 0


@dataclass
class FallbackOrchestrator:
    """Resolves lookups from cache or providers, never raising provider errors.

    A lookup moves through cache check, provider queries (with retries),
    reconciliation and cache write-back. When no provider yields trustworthy
    data the caller receives a :class:`PlaceholderResult` instead of an error.
    Cancelling the awaiting task abandons in-flight provider calls and skips
    the cache write.
    """

    providers: Sequence[ProviderAdapter]
    cache: TieredCache
    engine: ReconciliationEngine
    config: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    rate_limiter: RateLimiter | None = None
    _disabled: dict[str, str] = field(default_factory=dict)
    _in_flight: dict[str, _InFlight] = field(default_factory=dict)

    async def lookup_by_name(
        self, text: str, options: LookupOptions | None = None
    ) -> ReconciledResult | PlaceholderResult:
        """Look up a food by free text."""
        result = await self._lookup(FoodQuery.by_name(text), options)
        if isinstance(result, NotFound):
            return self._placeholder(result.query, "no provider matched", result.outcomes)
        return result

    async def lookup_by_barcode(
        self, code: str, options: LookupOptions | None = None
    ) -> LookupResult:
        """Look up a packaged product by barcode."""
        return await self._lookup(FoodQuery.by_barcode(code), options)

    def provider_status(self) -> dict[str, object]:
        """Describe configured providers, disabled ones and their budgets."""
        budgets = self.rate_limiter.snapshot() if self.rate_limiter else {}
        providers = []
        for adapter in self._ordered(self.providers):
            provider_id = adapter.provider_id.value
            budget = budgets.get(provider_id)
            providers.append(
                {
                    "provider_id": provider_id,
                    "supports_barcode": adapter.supports_barcode,
                    "enabled": provider_id not in self._disabled,
                    "disabled_reason": self._disabled.get(provider_id),
                    "budget": (
                        {
                            "window_start_ms": budget.window_start_ms,
                            "count": budget.count,
                            "limit": budget.limit,
                        }
                        if budget
                        else None
                    ),
                }
            )
        return {"mode": self.config.mode.value, "providers": providers}

    async def _lookup(
        self, query: FoodQuery, options: LookupOptions | None
    ) -> LookupResult:
        plan = self._plan(options)
        cached = self.cache.get(query.cache_key)
        if cached is not None:
            if self.config.debug:
                _logger.info("Lookup cache hit: query=%s", query.label)
            return replace(cached, from_cache=True)

        if not self.config.coalesce_requests:
            return await self._resolve(query, plan)
        flight_key = (
            f"{normalize_key(query.cache_key)}|{plan.mode}|{plan.max_providers}"
        )
        return await self._coalesced(flight_key, partial(self._resolve, query, plan))

    async def _resolve(self, query: FoodQuery, plan: _Plan) -> LookupResult:
        """Query providers, reconcile and cache; the cache-miss path."""
        selected, outcomes = self._select(query, plan)
        if plan.mode is LookupMode.FIRST_SUCCESS:
            records, queried = await self._query_sequential(selected, query, plan)
        else:
            records, queried = await self._query_parallel(selected, query, plan)
        outcomes = self._sorted_outcomes(outcomes + queried)

        if not records:
            if queried and all(
                outcome.status is OutcomeStatus.NOT_FOUND for outcome in queried
            ):
                return NotFound(query=query, outcomes=outcomes)
            return self._placeholder(query, "no provider returned data", outcomes)

        try:
            result = self.engine.reconcile(records, priority=self.config.priority)
        except NoReliableData as exc:
            _logger.warning("No reliable data for %s: %s", query.label, exc)
            return self._placeholder(query, str(exc), outcomes)

        result = replace(result, outcomes=outcomes)
        self.cache.put(query.cache_key, result, plan.ttl_seconds)
        if self.config.debug:
            _logger.info(
                "Lookup resolved: query=%s chosen=%s confidence=%.2f",
                query.label,
                result.chosen.source_id,
                result.confidence,
            )
        return result

    def _select(
        self, query: FoodQuery, plan: _Plan
    ) -> tuple[list[ProviderAdapter], tuple[ProviderOutcome, ...]]:
        """Pick providers to query; the rest are reported as skipped."""
        selected: list[ProviderAdapter] = []
        skipped: list[ProviderOutcome] = []
        for adapter in self._ordered(self.providers):
            provider_id = adapter.provider_id.value
            if provider_id in self._disabled:
                reason = f"disabled: {self._disabled[provider_id]}"
            elif query.barcode is not None and not adapter.supports_barcode:
                reason = "barcode lookup not supported"
            elif plan.max_providers is not None and len(selected) >= plan.max_providers:
                reason = "max providers reached"
            else:
                selected.append(adapter)
                continue
            skipped.append(
                ProviderOutcome(provider_id, OutcomeStatus.SKIPPED, error=reason)
            )
        return selected, tuple(skipped)

    async def _query_parallel(
        self, providers: list[ProviderAdapter], query: FoodQuery, plan: _Plan
    ) -> tuple[list[NutritionRecord], tuple[ProviderOutcome, ...]]:
        """Query every provider at once and join at completion or timeout."""
        if not providers:
            return [], ()
        tasks = [
            asyncio.create_task(self._call_provider(adapter, query))
            for adapter in providers
        ]
        try:
            _, pending = await asyncio.wait(tasks, timeout=plan.timeout_seconds)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        records: list[NutritionRecord] = []
        outcomes: list[ProviderOutcome] = []
        for adapter, task in zip(providers, tasks, strict=True):
            if task in pending:
                _logger.warning(
                    "Provider %s timed out for %s", adapter.provider_id, query.label
                )
                outcomes.append(
                    ProviderOutcome(
                        adapter.provider_id.value,
                        OutcomeStatus.TIMED_OUT,
                        error="request timeout",
                    )
                )
                continue
            record, outcome = task.result()
            outcomes.append(outcome)
            if record is not None:
                records.append(record)
        return records, tuple(outcomes)

    async def _query_sequential(
        self, providers: list[ProviderAdapter], query: FoodQuery, plan: _Plan
    ) -> tuple[list[NutritionRecord], tuple[ProviderOutcome, ...]]:
        """Query providers in priority order until one returns a valid record."""
        records: list[NutritionRecord] = []
        outcomes: list[ProviderOutcome] = []
        remaining = list(providers)
        try:
            async with asyncio.timeout(plan.timeout_seconds):
                while remaining:
                    record, outcome = await self._call_provider(remaining[0], query)
                    remaining.pop(0)
                    outcomes.append(outcome)
                    if record is None:
                        continue
                    records.append(record)
                    if self.engine.validator.validate(record).valid:
                        break
        except TimeoutError:
            _logger.warning("Lookup timed out for %s", query.label)
            for index, adapter in enumerate(remaining):
                status = OutcomeStatus.TIMED_OUT if index == 0 else OutcomeStatus.SKIPPED
                outcomes.append(
                    ProviderOutcome(
                        adapter.provider_id.value, status, error="request timeout"
                    )
                )
        return records, tuple(outcomes)

    async def _call_provider(
        self, adapter: ProviderAdapter, query: FoodQuery
    ) -> _Attempt:
        """Call one provider with exponential backoff on transient failures."""
        provider_id = adapter.provider_id.value
        attempt = 0
        while True:
            attempt += 1
            try:
                if query.barcode is not None:
                    record = await adapter.lookup_by_barcode(query.barcode)
                else:
                    found = await adapter.search_by_name(
                        query.text, max_results=self.config.max_results
                    )
                    record = found[0] if found else None
            except ProviderAuthError as exc:
                self._disabled[provider_id] = str(exc)
                _logger.warning("Disabling provider %s: %s", provider_id, exc)
                return None, ProviderOutcome(
                    provider_id, OutcomeStatus.FAILED, attempt, str(exc)
                )
            except (ProviderUnavailable, RateLimited) as exc:
                delay = self._backoff_delay(attempt, exc)
                _logger.warning(
                    "Provider %s failed (attempt %s/%s): %s",
                    provider_id,
                    attempt,
                    self.config.max_attempts,
                    exc,
                )
                if delay is None or attempt >= self.config.max_attempts:
                    return None, ProviderOutcome(
                        provider_id, OutcomeStatus.FAILED, attempt, str(exc)
                    )
                await asyncio.sleep(delay)
                continue
            except Exception as exc:
                _logger.exception("Provider %s raised unexpectedly", provider_id)
                return None, ProviderOutcome(
                    provider_id, OutcomeStatus.FAILED, attempt, repr(exc)
                )
            if record is None:
                return None, ProviderOutcome(
                    provider_id, OutcomeStatus.NOT_FOUND, attempt
                )
            return record, ProviderOutcome(provider_id, OutcomeStatus.FOUND, attempt)

    def _backoff_delay(self, attempt: int, exc: Exception) -> float | None:
        """Seconds to wait before the next attempt, None to give up now."""
        delay = self.config.backoff_base_seconds * (
            self.config.backoff_factor ** (attempt - 1)
        )
        if isinstance(exc, RateLimited):
            if exc.retry_after > self.config.max_backoff_seconds:
                return None
            delay = max(delay, exc.retry_after)
        return min(delay, self.config.max_backoff_seconds)

    async def _coalesced(
        self,
        key: str,
        factory: Callable[[], Coroutine[object, object, LookupResult]],
    ) -> LookupResult:
        """Share one in-flight lookup between identical concurrent requests."""
        flight = self._in_flight.get(key)
        if flight is None or flight.task.done() or flight.task.cancelling():
            flight = _InFlight(task=asyncio.create_task(factory()))
            self._in_flight[key] = flight
            flight.task.add_done_callback(partial(self._forget_flight, key, flight))
        flight.waiters += 1
        try:
            return await asyncio.shield(flight.task)
        except asyncio.CancelledError:
            if flight.waiters == 1 and not flight.task.done():
                # Late joiners must start a new flight, not await this one.
                self._forget_flight(key, flight)
                flight.task.cancel()
            raise
        finally:
            flight.waiters -= 1

    def _forget_flight(
        self,
        key: str,
        flight: _InFlight,
        _task: "asyncio.Task[LookupResult] | None" = None,
    ) -> None:
        if self._in_flight.get(key) is flight:
            del self._in_flight[key]

    def _plan(self, options: LookupOptions | None) -> _Plan:
        options = options or LookupOptions()
        return _Plan(
            mode=options.mode or self.config.mode,
            max_providers=(
                options.max_providers
                if options.max_providers is not None
                else self.config.max_providers
            ),
            timeout_seconds=(
                options.timeout_ms / 1000
                if options.timeout_ms is not None
                else self.config.timeout_seconds
            ),
            ttl_seconds=(
                options.ttl_ms / 1000
                if options.ttl_ms is not None
                else self.config.ttl_seconds
            ),
        )

    def _ordered(self, providers: Sequence[ProviderAdapter]) -> list[ProviderAdapter]:
        rank = {provider_id: index for index, provider_id in enumerate(self.config.priority)}
        return sorted(
            providers, key=lambda adapter: rank.get(adapter.provider_id.value, len(rank))
        )

    def _sorted_outcomes(
        self, outcomes: Sequence[ProviderOutcome]
    ) -> tuple[ProviderOutcome, ...]:
        rank = {provider_id: index for index, provider_id in enumerate(self.config.priority)}
        return tuple(
            sorted(outcomes, key=lambda outcome: rank.get(outcome.provider_id, len(rank)))
        )

    def _placeholder(
        self, query: FoodQuery, reason: str, outcomes: Sequence[ProviderOutcome]
    ) -> PlaceholderResult:
        """Build the unverified manual-entry stand-in."""
        record = self.engine.validator.sanitize(
            NutritionRecord(
                source_id=PLACEHOLDER_SOURCE,
                name=query.label,
                calories_kcal=None,
                serving_basis=ServingBasis.PER_SERVING,
                macros=Macros(),
            )
        )
        return PlaceholderResult(
            query=query, record=record, reason=reason, outcomes=tuple(outcomes)
        )
