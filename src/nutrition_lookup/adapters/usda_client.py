"""USDA FoodData Central provider."""

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

_NUTRIENT_IDS = {
    "calories": 1008,
    "protein": 1003,
    "fat": 1004,
    "carbs": 1005,
    "fiber": 1079,
    "sugar": 2000,
}


@dataclass
class UsdaProvider(HttpxProvider):
    """HTTPX-backed FDC provider."""

    provider_id: ClassVar[ProviderId] = ProviderId.USDA
    supports_barcode: ClassVar[bool] = True

    api_key: str = ""
    base_url: str = "https://api.nal.usda.gov/fdc/v1"

    @classmethod
    def create(
        cls, api_key: str, base_url: str, rate_limiter: RateLimiter
    ) -> "UsdaProvider":
        """Create an FDC provider with a managed httpx session."""
        return cls(
            http_client=httpx.AsyncClient(),
            rate_limiter=rate_limiter,
            api_key=api_key,
            base_url=base_url,
        )

    async def search_by_name(
        self, text: str, max_results: int = 5
    ) -> list[NutritionRecord]:
        """Search foods by query."""
        payload = await self._search({"query": text, "pageSize": max_results})
        try:
            return [_parse_food(food) for food in payload.get("foods", [])]
        except PARSE_ERRORS as exc:
            raise self._malformed(exc) from exc

    async def lookup_by_barcode(self, code: str) -> NutritionRecord | None:
        """Find a branded food whose GTIN/UPC matches the code."""
        payload = await self._search(
            {"query": code, "dataType": ["Branded"], "pageSize": 10}
        )
        try:
            for food in payload.get("foods", []):
                if _same_gtin(str(food.get("gtinUpc", "")), code):
                    return _parse_food(food)
        except PARSE_ERRORS as exc:
            raise self._malformed(exc) from exc
        return None

    async def _search(self, body: dict[str, object]) -> dict[str, object]:
        self._acquire()
        payload = await self._request_json(
            "POST",
            f"{self.base_url}/foods/search",
            params={"api_key": self.api_key},
            json=body,
        )
        return payload or {}


def _same_gtin(left: str, right: str) -> bool:
    """Compare barcodes ignoring leading zero padding (UPC-A vs EAN-13)."""
    return bool(left) and left.lstrip("0") == right.strip().lstrip("0")


def _parse_food(food: dict[str, object]) -> NutritionRecord:
    """Map an FDC food into the canonical record."""
    values = _extract_nutrients(food.get("foodNutrients", []))
    return NutritionRecord(
        source_id=ProviderId.USDA.value,
        name=str(food.get("description", "")),
        calories_kcal=values.get("calories"),
        serving_basis=ServingBasis.PER_100G,
        macros=Macros(
            protein_g=values.get("protein"),
            carbs_g=values.get("carbs"),
            fat_g=values.get("fat"),
            fiber_g=values.get("fiber"),
            sugar_g=values.get("sugar"),
        ),
        raw_payload=food,
        serving_size_g=optional_float(food.get("servingSize")),
        external_id=str(food["fdcId"]),
    )


def _extract_nutrients(food_nutrients: list[dict[str, object]]) -> dict[str, float]:
    """Extract known nutrients; search results use ``value``, details ``amount``."""
    names_by_id = {nutrient_id: name for name, nutrient_id in _NUTRIENT_IDS.items()}
    values: dict[str, float] = {}
    for nutrient in food_nutrients:
        nutrient_info = nutrient.get("nutrient") or {}
        nutrient_id = nutrient_info.get("id") or nutrient.get("nutrientId")
        name = names_by_id.get(nutrient_id)
        if name is None:
            continue
        amount = optional_float(nutrient.get("value", nutrient.get("amount")))
        if amount is not None:
            values[name] = amount
    return values
