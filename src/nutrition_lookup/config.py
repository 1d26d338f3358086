"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    usda_api_key: str | None = None
    usda_base_url: str = "https://api.nal.usda.gov/fdc/v1"
    openfoodfacts_enabled: bool = True
    openfoodfacts_base_url: str = "https://world.openfoodfacts.org"
    edamam_app_id: str | None = None
    edamam_app_key: str | None = None
    edamam_base_url: str = "https://api.edamam.com/api/food-database/v2"
    calorieninjas_api_key: str | None = None
    calorieninjas_base_url: str = "https://api.calorieninjas.com/v1"
    fatsecret_client_id: str | None = None
    fatsecret_client_secret: str | None = None
    fatsecret_base_url: str = "https://platform.fatsecret.com/rest/server.api"
    nutritionix_app_id: str | None = None
    nutritionix_app_key: str | None = None
    nutritionix_base_url: str = "https://trackapi.nutritionix.com/v2"

    provider_priority: str = (
        "usda,nutritionix,fatsecret,edamam,calorieninjas,openfoodfacts"
    )
    lookup_mode: str = "parallel-reconcile"
    max_providers: int | None = None
    max_results: int = 5
    request_timeout_ms: int = 10000
    cache_ttl_seconds: int = 86400
    retry_attempts: int = 2
    retry_backoff_seconds: float = 0.3
    retry_backoff_factor: float = 2.0
    retry_max_backoff_seconds: float = 5.0
    coalesce_requests: bool = False

    rate_limit_per_minute: int = 60
    rate_limit_overrides: str | None = None
    rate_limit_window_seconds: float = 60.0

    cache_backend: str = "file"
    cache_dir: str = ".cache/nutrition_lookup"
    cache_max_entries: int = 1024
    supabase_url: str | None = None
    supabase_service_key: str | None = None

    agreement_threshold: float = 0.15
    consistency_threshold: float = 0.20
    max_calories: float = 10000.0

    debug: bool = False
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_provider_priority(raw: str | None) -> tuple[str, ...]:
    """Parse a comma-separated provider priority list, dropping duplicates."""
    if raw is None:
        return ()
    seen: list[str] = []
    for chunk in raw.split(","):
        value = chunk.strip().lower()
        if value and value not in seen:
            seen.append(value)
    return tuple(seen)


def parse_rate_limit_overrides(raw: str | None) -> dict[str, int]:
    """Parse ``provider=limit`` pairs such as ``usda=30,edamam=10``."""
    if raw is None:
        return {}
    limits: dict[str, int] = {}
    for chunk in raw.split(","):
        name, sep, value = chunk.partition("=")
        name = name.strip().lower()
        value = value.strip()
        if not sep or not name or not value.isdigit():
            continue
        limits[name] = int(value)
    return limits
