"""Shared test fixtures."""

import pytest

from nutrition_lookup.adapters.provider import ProviderId
from nutrition_lookup.config import Settings
from nutrition_lookup.containers import AppContainer
from nutrition_lookup.domain.nutrition import LookupMode
from nutrition_lookup.services.cache import TieredCache
from nutrition_lookup.services.orchestrator import (
    FallbackOrchestrator,
    OrchestratorConfig,
)
from tests.fakes import (
    PRIORITY,
    FakeClock,
    FakeProvider,
    build_orchestrator,
    make_record,
)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        usda_api_key="fdc-key",
        edamam_app_id="edamam-id",
        edamam_app_key="edamam-key",
        calorieninjas_api_key="ninjas-key",
        fatsecret_client_id="fs-id",
        fatsecret_client_secret="fs-secret",
        nutritionix_app_id="nix-id",
        nutritionix_app_key="nix-key",
        cache_dir=str(tmp_path / "cache"),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> OrchestratorConfig:
    return OrchestratorConfig(
        priority=PRIORITY,
        mode=LookupMode.PARALLEL_RECONCILE,
        timeout_seconds=2.0,
        ttl_seconds=3600,
        max_attempts=3,
        backoff_base_seconds=0.0,
        max_backoff_seconds=0.05,
    )


@pytest.fixture
def providers() -> list[FakeProvider]:
    return [
        FakeProvider(
            ProviderId.USDA,
            records=[make_record("usda", 165, protein=31, carbs=0, fat=3.6)],
        ),
        FakeProvider(
            ProviderId.NUTRITIONIX,
            records=[make_record("nutritionix", 170, protein=32, carbs=0, fat=3.7)],
        ),
        FakeProvider(
            ProviderId.EDAMAM,
            records=[make_record("edamam", 160, protein=30, carbs=0, fat=3.5)],
        ),
    ]


@pytest.fixture
def orchestrator(
    providers: list[FakeProvider], config: OrchestratorConfig
) -> FallbackOrchestrator:
    return build_orchestrator(providers, config)


@pytest.fixture
def container(
    settings: Settings,
    providers: list[FakeProvider],
    config: OrchestratorConfig,
) -> AppContainer:
    cache = TieredCache()
    orchestrator = build_orchestrator(providers, config, cache=cache)

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        rate_limiter=orchestrator.rate_limiter,
        cache=cache,
        orchestrator=orchestrator,
        close_resources=close_resources,
    )
