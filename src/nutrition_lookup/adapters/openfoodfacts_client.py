"""Open Food Facts provider."""

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

_KJ_PER_KCAL = 4.184
_USER_AGENT = "nutrition-lookup/0.1"


@dataclass
class OpenFoodFactsProvider(HttpxProvider):
    """Open Food Facts provider; no credentials required."""

    provider_id: ClassVar[ProviderId] = ProviderId.OPEN_FOOD_FACTS
    supports_barcode: ClassVar[bool] = True

    base_url: str = "https://world.openfoodfacts.org"

    @classmethod
    def create(cls, base_url: str, rate_limiter: RateLimiter) -> "OpenFoodFactsProvider":
        """Create a provider with a managed httpx session."""
        return cls(
            http_client=httpx.AsyncClient(headers={"User-Agent": _USER_AGENT}),
            rate_limiter=rate_limiter,
            base_url=base_url,
        )

    async def search_by_name(
        self, text: str, max_results: int = 5
    ) -> list[NutritionRecord]:
        """Full-text product search."""
        self._acquire()
        payload = await self._request_json(
            "GET",
            f"{self.base_url}/cgi/search.pl",
            params={
                "search_terms": text,
                "search_simple": 1,
                "action": "process",
                "json": 1,
                "page_size": max_results,
            },
        )
        if payload is None:
            return []
        try:
            return [
                _parse_product(product, code=product.get("code"))
                for product in payload.get("products", [])[:max_results]
            ]
        except PARSE_ERRORS as exc:
            raise self._malformed(exc) from exc

    async def lookup_by_barcode(self, code: str) -> NutritionRecord | None:
        """Fetch a product by barcode."""
        self._acquire()
        payload = await self._request_json(
            "GET", f"{self.base_url}/api/v2/product/{code}.json"
        )
        if payload is None or payload.get("status") != 1:
            return None
        try:
            return _parse_product(payload.get("product", {}), code=code)
        except PARSE_ERRORS as exc:
            raise self._malformed(exc) from exc


def _parse_product(product: dict[str, object], code: object) -> NutritionRecord:
    """Map an OFF product into the canonical record, per 100 g."""
    nutriments = product.get("nutriments") or {}

    def nutrient(key: str) -> float | None:
        return optional_float(nutriments.get(key))

    kcal = nutrient("energy-kcal_100g")
    if kcal is None:
        energy_kj = nutrient("energy_100g")
        if energy_kj is not None:
            kcal = energy_kj / _KJ_PER_KCAL

    name = product.get("product_name") or product.get("generic_name") or "Unknown"
    return NutritionRecord(
        source_id=ProviderId.OPEN_FOOD_FACTS.value,
        name=str(name),
        calories_kcal=kcal,
        serving_basis=ServingBasis.PER_100G,
        macros=Macros(
            protein_g=nutrient("proteins_100g"),
            carbs_g=nutrient("carbohydrates_100g"),
            fat_g=nutrient("fat_100g"),
            fiber_g=nutrient("fiber_100g"),
            sugar_g=nutrient("sugars_100g"),
        ),
        raw_payload=product,
        serving_size_g=optional_float(product.get("serving_quantity")),
        external_id=str(code) if code is not None else None,
    )
