"""Nutritionix provider."""

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
class NutritionixProvider(HttpxProvider):
    """Nutritionix track API client, authenticated by app id and key headers."""

    provider_id: ClassVar[ProviderId] = ProviderId.NUTRITIONIX
    supports_barcode: ClassVar[bool] = True

    app_id: str = ""
    app_key: str = ""
    base_url: str = "https://trackapi.nutritionix.com/v2"

    @classmethod
    def create(
        cls, app_id: str, app_key: str, base_url: str, rate_limiter: RateLimiter
    ) -> "NutritionixProvider":
        """Create a provider with a managed httpx session."""
        return cls(
            http_client=httpx.AsyncClient(),
            rate_limiter=rate_limiter,
            app_id=app_id,
            app_key=app_key,
            base_url=base_url,
        )

    async def search_by_name(
        self, text: str, max_results: int = 5
    ) -> list[NutritionRecord]:
        """Run the natural-language nutrients endpoint."""
        self._acquire()
        payload = await self._request_json(
            "POST",
            f"{self.base_url}/natural/nutrients",
            json={"query": text},
            headers=self._headers(),
        )
        if payload is None:
            return []
        try:
            return [_parse_food(food) for food in payload.get("foods", [])[:max_results]]
        except PARSE_ERRORS as exc:
            raise self._malformed(exc) from exc

    async def lookup_by_barcode(self, code: str) -> NutritionRecord | None:
        """Look up a branded item by UPC."""
        self._acquire()
        payload = await self._request_json(
            "GET",
            f"{self.base_url}/search/item",
            params={"upc": code},
            headers=self._headers(),
        )
        if payload is None:
            return None
        try:
            foods = payload.get("foods", [])
            return _parse_food(foods[0]) if foods else None
        except PARSE_ERRORS as exc:
            raise self._malformed(exc) from exc

    def _headers(self) -> dict[str, str]:
        return {
            "x-app-id": self.app_id,
            "x-app-key": self.app_key,
            "x-remote-user-id": "0",
        }


def _parse_food(food: dict[str, object]) -> NutritionRecord:
    """Map a Nutritionix food; values refer to one serving."""
    return NutritionRecord(
        source_id=ProviderId.NUTRITIONIX.value,
        name=str(food.get("food_name", "")),
        calories_kcal=optional_float(food.get("nf_calories")),
        serving_basis=ServingBasis.PER_SERVING,
        macros=Macros(
            protein_g=optional_float(food.get("nf_protein")),
            carbs_g=optional_float(food.get("nf_total_carbohydrate")),
            fat_g=optional_float(food.get("nf_total_fat")),
            fiber_g=optional_float(food.get("nf_dietary_fiber")),
            sugar_g=optional_float(food.get("nf_sugars")),
        ),
        raw_payload=food,
        serving_size_g=optional_float(food.get("serving_weight_grams")),
        external_id=(
            str(food["nix_item_id"]) if food.get("nix_item_id") else None
        ),
    )
