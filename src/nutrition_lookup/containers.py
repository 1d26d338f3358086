"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from nutrition_lookup.adapters.calorieninjas_client import CalorieNinjasProvider
from nutrition_lookup.adapters.edamam_client import EdamamProvider
from nutrition_lookup.adapters.fatsecret_client import FatSecretProvider
from nutrition_lookup.adapters.file_cache_store import JsonFileCacheStore
from nutrition_lookup.adapters.nutritionix_client import NutritionixProvider
from nutrition_lookup.adapters.openfoodfacts_client import OpenFoodFactsProvider
from nutrition_lookup.adapters.provider import HttpxProvider
from nutrition_lookup.adapters.supabase_cache_store import SupabaseCacheStore
from nutrition_lookup.adapters.usda_client import UsdaProvider
from nutrition_lookup.config import (
    Settings,
    parse_provider_priority,
    parse_rate_limit_overrides,
)
from nutrition_lookup.domain.nutrition import LookupMode
from nutrition_lookup.services.cache import CacheStore, TieredCache
from nutrition_lookup.services.orchestrator import (
    FallbackOrchestrator,
    OrchestratorConfig,
)
from nutrition_lookup.services.rate_limiter import RateLimiter
from nutrition_lookup.services.reconciliation import ReconciliationEngine
from nutrition_lookup.services.validator import NutritionValidator


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    rate_limiter: RateLimiter
    cache: TieredCache
    orchestrator: FallbackOrchestrator
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    rate_limiter = RateLimiter(
        default_limit=resolved_settings.rate_limit_per_minute,
        limits=parse_rate_limit_overrides(resolved_settings.rate_limit_overrides),
        window_seconds=resolved_settings.rate_limit_window_seconds,
    )
    providers = build_providers(resolved_settings, rate_limiter)
    cache = TieredCache(
        store=build_cache_store(resolved_settings),
        max_entries=resolved_settings.cache_max_entries,
    )
    validator = NutritionValidator(
        consistency_threshold=resolved_settings.consistency_threshold,
        max_calories=resolved_settings.max_calories,
    )
    priority = parse_provider_priority(resolved_settings.provider_priority)
    engine = ReconciliationEngine(
        validator=validator,
        priority=priority,
        agreement_threshold=resolved_settings.agreement_threshold,
    )
    orchestrator = FallbackOrchestrator(
        providers=providers,
        cache=cache,
        engine=engine,
        config=OrchestratorConfig(
            priority=priority,
            mode=LookupMode(resolved_settings.lookup_mode),
            max_providers=resolved_settings.max_providers,
            timeout_seconds=resolved_settings.request_timeout_ms / 1000,
            ttl_seconds=resolved_settings.cache_ttl_seconds,
            max_attempts=resolved_settings.retry_attempts,
            backoff_base_seconds=resolved_settings.retry_backoff_seconds,
            backoff_factor=resolved_settings.retry_backoff_factor,
            max_backoff_seconds=resolved_settings.retry_max_backoff_seconds,
            max_results=resolved_settings.max_results,
            coalesce_requests=resolved_settings.coalesce_requests,
            debug=resolved_settings.debug,
        ),
        rate_limiter=rate_limiter,
    )

    async def close_resources() -> None:
        for provider in providers:
            await provider.close()

    return AppContainer(
        settings=resolved_settings,
        rate_limiter=rate_limiter,
        cache=cache,
        orchestrator=orchestrator,
        close_resources=close_resources,
    )


def build_providers(settings: Settings, rate_limiter: RateLimiter) -> list[HttpxProvider]:
    """Create a provider for every data source that has credentials."""
    providers: list[HttpxProvider] = []
    if settings.usda_api_key:
        providers.append(
            UsdaProvider.create(
                api_key=settings.usda_api_key,
                base_url=settings.usda_base_url,
                rate_limiter=rate_limiter,
            )
        )
    if settings.openfoodfacts_enabled:
        providers.append(
            OpenFoodFactsProvider.create(
                base_url=settings.openfoodfacts_base_url,
                rate_limiter=rate_limiter,
            )
        )
    if settings.edamam_app_id and settings.edamam_app_key:
        providers.append(
            EdamamProvider.create(
                app_id=settings.edamam_app_id,
                app_key=settings.edamam_app_key,
                base_url=settings.edamam_base_url,
                rate_limiter=rate_limiter,
            )
        )
    if settings.calorieninjas_api_key:
        providers.append(
            CalorieNinjasProvider.create(
                api_key=settings.calorieninjas_api_key,
                base_url=settings.calorieninjas_base_url,
                rate_limiter=rate_limiter,
            )
        )
    if settings.fatsecret_client_id and settings.fatsecret_client_secret:
        providers.append(
            FatSecretProvider.create(
                client_id=settings.fatsecret_client_id,
                client_secret=settings.fatsecret_client_secret,
                base_url=settings.fatsecret_base_url,
                rate_limiter=rate_limiter,
            )
        )
    if settings.nutritionix_app_id and settings.nutritionix_app_key:
        providers.append(
            NutritionixProvider.create(
                app_id=settings.nutritionix_app_id,
                app_key=settings.nutritionix_app_key,
                base_url=settings.nutritionix_base_url,
                rate_limiter=rate_limiter,
            )
        )
    return providers


def build_cache_store(settings: Settings) -> CacheStore:
    """Create the durable cache tier selected by ``cache_backend``."""
    if settings.cache_backend == "supabase":
        if not settings.supabase_url or not settings.supabase_service_key:
            raise ValueError("cache_backend=supabase requires supabase_url and key")
        return SupabaseCacheStore(
            create_client(settings.supabase_url, settings.supabase_service_key)
        )
    if settings.cache_backend == "file":
        return JsonFileCacheStore.create(settings.cache_dir)
    raise ValueError(f"Unknown cache_backend: {settings.cache_backend}")
