"""Edamam Food Database provider."""

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
class EdamamProvider(HttpxProvider):
    """Edamam food parser client, authenticated by app id and key."""

    provider_id: ClassVar[ProviderId] = ProviderId.EDAMAM
    supports_barcode: ClassVar[bool] = True

    app_id: str = ""
    app_key: str = ""
    base_url: str = "https://api.edamam.com/api/food-database/v2"

    @classmethod
    def create(
        cls, app_id: str, app_key: str, base_url: str, rate_limiter: RateLimiter
    ) -> "EdamamProvider":
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
        """Parse free text into matching foods."""
        payload = await self._parser({"ingr": text})
        if payload is None:
            return []
        try:
            foods = _collect_foods(payload)
            return [_parse_food(food) for food in foods[:max_results]]
        except PARSE_ERRORS as exc:
            raise self._malformed(exc) from exc

    async def lookup_by_barcode(self, code: str) -> NutritionRecord | None:
        """Look up a UPC/EAN code."""
        payload = await self._parser({"upc": code})
        if payload is None:
            return None
        try:
            foods = _collect_foods(payload)
            return _parse_food(foods[0]) if foods else None
        except PARSE_ERRORS as exc:
            raise self._malformed(exc) from exc

    async def _parser(self, params: dict[str, str]) -> dict[str, object] | None:
        self._acquire()
        return await self._request_json(
            "GET",
            f"{self.base_url}/parser",
            params={"app_id": self.app_id, "app_key": self.app_key, **params},
        )


def _collect_foods(payload: dict[str, object]) -> list[dict[str, object]]:
    """Exact parses first, then hints, without duplicate food ids."""
    foods: list[dict[str, object]] = []
    seen: set[str] = set()
    for section in ("parsed", "hints"):
        for entry in payload.get(section) or []:
            food = entry.get("food") or {}
            food_id = str(food.get("foodId", ""))
            if not food or food_id in seen:
                continue
            seen.add(food_id)
            foods.append(food)
    return foods


def _parse_food(food: dict[str, object]) -> NutritionRecord:
    """Map an Edamam food into the canonical record, per 100 g."""
    nutrients = food.get("nutrients") or {}
    return NutritionRecord(
        source_id=ProviderId.EDAMAM.value,
        name=str(food.get("label", "")),
        calories_kcal=optional_float(nutrients.get("ENERC_KCAL")),
        serving_basis=ServingBasis.PER_100G,
        macros=Macros(
            protein_g=optional_float(nutrients.get("PROCNT")),
            carbs_g=optional_float(nutrients.get("CHOCDF")),
            fat_g=optional_float(nutrients.get("FAT")),
            fiber_g=optional_float(nutrients.get("FIBTG")),
            sugar_g=optional_float(nutrients.get("SUGAR")),
        ),
        raw_payload=food,
        external_id=str(food["foodId"]) if food.get("foodId") else None,
    )
