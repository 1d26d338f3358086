"""CalorieNinjas provider."""

from dataclasses import dataclass
from typing import ClassVar

import httpx

from nutrition_lookup.adapters.provider import (
    PARSE_ERRORS,
    HttpxProvider,
    ProviderId,
    optional_float,
)
from nutrition_lookup.domain.nutrition import Macros, NutritionRecord, ServingBasis
from nutrition_lookup.services.rate_limiter import RateLimiter


@dataclass
class CalorieNinjasProvider(HttpxProvider):
    """CalorieNinjas natural-language nutrition client. Name search only."""

    provider_id: ClassVar[ProviderId] = ProviderId.CALORIE_NINJAS
    supports_barcode: ClassVar[bool] = False

    api_key: str = ""
    base_url: str = "https://api.calorieninjas.com/v1"

    @classmethod
    def create(
        cls, api_key: str, base_url: str, rate_limiter: RateLimiter
    ) -> "CalorieNinjasProvider":
        """Create a provider with a managed httpx session."""
        return cls(
            http_client=httpx.AsyncClient(),
            rate_limiter=rate_limiter,
            api_key=api_key,
            base_url=base_url,
        )

    async def search_by_name(
        self, text: str, max_results: int = 5
    ) -> list[NutritionRecord]:
        """Analyze free text into nutrition items."""
        self._acquire()
        payload = await self._request_json(
            "GET",
            f"{self.base_url}/nutrition",
            params={"query": text},
            headers={"X-Api-Key": self.api_key},
        )
        if payload is None:
            return []
        try:
            return [_parse_item(item) for item in payload.get("items", [])[:max_results]]
        except PARSE_ERRORS as exc:
            raise self._malformed(exc) from exc


def _parse_item(item: dict[str, object]) -> NutritionRecord:
    """Map a CalorieNinjas item; values refer to ``serving_size_g``."""
    return NutritionRecord(
        source_id=ProviderId.CALORIE_NINJAS.value,
        name=str(item.get("name", "")),
        calories_kcal=optional_float(item.get("calories")),
        serving_basis=ServingBasis.PER_SERVING,
        macros=Macros(
            protein_g=optional_float(item.get("protein_g")),
            carbs_g=optional_float(item.get("carbohydrates_total_g")),
            fat_g=optional_float(item.get("fat_total_g")),
            fiber_g=optional_float(item.get("fiber_g")),
            sugar_g=optional_float(item.get("sugar_g")),
        ),
        raw_payload=item,
        serving_size_g=optional_float(item.get("serving_size_g")),
    )
