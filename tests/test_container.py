"""Tests for container wiring."""

import asyncio

import pytest

from nutrition_lookup.adapters.file_cache_store import JsonFileCacheStore
from nutrition_lookup.config import Settings
from nutrition_lookup.containers import build_cache_store, build_container


def test_build_container_creates_services(settings: Settings) -> None:
    container = build_container(settings)

    assert container.orchestrator is not None
    assert isinstance(container.cache.store, JsonFileCacheStore)
    status = container.orchestrator.provider_status()
    assert [item["provider_id"] for item in status["providers"]] == [
        "usda",
        "nutritionix",
        "fatsecret",
        "edamam",
        "calorieninjas",
        "openfoodfacts",
    ]
    asyncio.run(container.close_resources())


def test_providers_without_credentials_are_skipped(tmp_path) -> None:
    settings = Settings(_env_file=None, cache_dir=str(tmp_path))

    container = build_container(settings)

    status = container.orchestrator.provider_status()
    assert [item["provider_id"] for item in status["providers"]] == ["openfoodfacts"]
    asyncio.run(container.close_resources())


def test_rate_limit_overrides_reach_limiter(settings: Settings) -> None:
    settings.rate_limit_overrides = "usda=5"

    container = build_container(settings)

    assert container.rate_limiter.limit_for("usda") == 5
    assert container.rate_limiter.limit_for("edamam") == settings.rate_limit_per_minute
    asyncio.run(container.close_resources())


def test_cache_backend_validation(tmp_path) -> None:
    with pytest.raises(ValueError):
        build_cache_store(Settings(_env_file=None, cache_backend="supabase"))
    with pytest.raises(ValueError):
        build_cache_store(Settings(_env_file=None, cache_backend="redis"))
