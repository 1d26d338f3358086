"""FatSecret Platform provider."""

import re
import time
from dataclasses import dataclass, field
from typing import ClassVar

import httpx

from nutrition_lookup.adapters.provider import (
    PARSE_ERRORS,
    HttpxProvider,
    ProviderId,
    optional_float,
)
from nutrition_lookup.domain.errors import ProviderAuthError
from nutrition_lookup.domain.nutrition import Macros, NutritionRecord, ServingBasis
from nutrition_lookup.services.rate_limiter import RateLimiter

# FatSecret reports OAuth problems as HTTP 200 with an error code in the body.
_AUTH_ERROR_CODES = {2, 3, 4, 5, 6, 7, 8, 9, 13, 14, 21}
_TOKEN_REFRESH_MARGIN_SECONDS = 60

_DESCRIPTION_BASIS = re.compile(r"^Per\s+(?P<basis>.+?)\s+-", re.IGNORECASE)
_DESCRIPTION_FIELDS = {
    "calories": re.compile(r"Calories:\s*(?P<value>[\d.]+)\s*kcal", re.IGNORECASE),
    "fat": re.compile(r"Fat:\s*(?P<value>[\d.]+)\s*g", re.IGNORECASE),
    "carbs": re.compile(r"Carbs:\s*(?P<value>[\d.]+)\s*g", re.IGNORECASE),
    "protein": re.compile(r"Protein:\s*(?P<value>[\d.]+)\s*g", re.IGNORECASE),
}
_GRAMS = re.compile(r"^(?P<grams>[\d.]+)\s*g$", re.IGNORECASE)


@dataclass
class FatSecretProvider(HttpxProvider):
    """FatSecret REST client using OAuth2 client credentials."""

    provider_id: ClassVar[ProviderId] = ProviderId.FATSECRET
    supports_barcode: ClassVar[bool] = True

    client_id: str = ""
    client_secret: str = ""
    base_url: str = "https://platform.fatsecret.com/rest/server.api"
    token_url: str = "https://oauth.fatsecret.com/connect/token"
    _token: str | None = field(default=None, init=False, repr=False)
    _token_expires_at: float = field(default=0.0, init=False, repr=False)

    @classmethod
    def create(
        cls,
        client_id: str,
        client_secret: str,
        base_url: str,
        rate_limiter: RateLimiter,
    ) -> "FatSecretProvider":
        """Create a provider with a managed httpx session."""
        return cls(
            http_client=httpx.AsyncClient(),
            rate_limiter=rate_limiter,
            client_id=client_id,
            client_secret=client_secret,
            base_url=base_url,
        )

    async def search_by_name(
        self, text: str, max_results: int = 5
    ) -> list[NutritionRecord]:
        """Search foods and parse their summary descriptions."""
        self._acquire()
        payload = await self._call(
            {
                "method": "foods.search",
                "search_expression": text,
                "max_results": max_results,
            }
        )
        try:
            foods = _as_list((payload.get("foods") or {}).get("food"))
            return [_parse_search_food(food) for food in foods[:max_results]]
        except PARSE_ERRORS as exc:
            raise self._malformed(exc) from exc

    async def lookup_by_barcode(self, code: str) -> NutritionRecord | None:
        """Resolve a GTIN-13 to a food id, then fetch its servings."""
        self._acquire()
        found = await self._call(
            {"method": "food.find_id_for_barcode", "barcode": _to_gtin13(code)}
        )
        try:
            food_id = str((found.get("food_id") or {}).get("value", "0"))
        except PARSE_ERRORS as exc:
            raise self._malformed(exc) from exc
        if food_id in {"", "0"}:
            return None
        payload = await self._call({"method": "food.get.v2", "food_id": food_id})
        food = payload.get("food")
        if not food:
            return None
        try:
            return _parse_detailed_food(food)
        except PARSE_ERRORS as exc:
            raise self._malformed(exc) from exc

    async def _call(self, params: dict[str, object]) -> dict[str, object]:
        token = await self._access_token()
        payload = await self._request_json(
            "GET",
            self.base_url,
            params={**params, "format": "json"},
            headers={"Authorization": f"Bearer {token}"},
        )
        if payload is None:
            return {}
        error = payload.get("error")
        if isinstance(error, dict):
            try:
                code = int(error.get("code", 0))
            except PARSE_ERRORS as exc:
                raise self._malformed(exc) from exc
            message = str(error.get("message", ""))
            if code in _AUTH_ERROR_CODES:
                self._token = None
                raise ProviderAuthError(self.provider_id, message)
            raise self._malformed(ValueError(f"error {code}: {message}"))
        return payload

    async def _access_token(self) -> str:
        """Return a cached bearer token, fetching a new one near expiry."""
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token
        payload = await self._request_json(
            "POST",
            self.token_url,
            data={"grant_type": "client_credentials", "scope": "basic"},
            auth=(self.client_id, self.client_secret),
        )
        if not payload or "access_token" not in payload:
            raise ProviderAuthError(self.provider_id, "token request rejected")
        self._token = str(payload["access_token"])
        try:
            expires_in = float(payload.get("expires_in", 0))
        except PARSE_ERRORS as exc:
            raise self._malformed(exc) from exc
        self._token_expires_at = (
            time.monotonic() + expires_in - _TOKEN_REFRESH_MARGIN_SECONDS
        )
        return self._token


def _as_list(value: object) -> list[dict[str, object]]:
    """FatSecret returns a bare object instead of a one-element list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _to_gtin13(code: str) -> str:
    digits = code.strip()
    return digits.zfill(13) if len(digits) < 13 else digits


def _parse_search_food(food: dict[str, object]) -> NutritionRecord:
    """Parse ``Per 100g - Calories: 165kcal | Fat: 3.57g | ...`` summaries."""
    description = str(food.get("food_description", ""))
    values: dict[str, float | None] = {}
    for name, pattern in _DESCRIPTION_FIELDS.items():
        match = pattern.search(description)
        values[name] = optional_float(match.group("value")) if match else None
    basis_match = _DESCRIPTION_BASIS.search(description)
    basis_text = basis_match.group("basis") if basis_match else ""
    grams_match = _GRAMS.match(basis_text)
    per_100g = grams_match is not None and float(grams_match.group("grams")) == 100
    return NutritionRecord(
        source_id=ProviderId.FATSECRET.value,
        name=str(food.get("food_name", "")),
        calories_kcal=values["calories"],
        serving_basis=ServingBasis.PER_100G if per_100g else ServingBasis.PER_SERVING,
        macros=Macros(
            protein_g=values["protein"],
            carbs_g=values["carbs"],
            fat_g=values["fat"],
        ),
        raw_payload=food,
        serving_size_g=float(grams_match.group("grams")) if grams_match else None,
        external_id=str(food["food_id"]) if food.get("food_id") else None,
    )


def _parse_detailed_food(food: dict[str, object]) -> NutritionRecord:
    """Map ``food.get.v2`` output using its first serving."""
    servings = _as_list((food.get("servings") or {}).get("serving"))
    serving = servings[0] if servings else {}
    grams = None
    if str(serving.get("metric_serving_unit", "")).lower() == "g":
        grams = optional_float(serving.get("metric_serving_amount"))
    return NutritionRecord(
        source_id=ProviderId.FATSECRET.value,
        name=str(food.get("food_name", "")),
        calories_kcal=optional_float(serving.get("calories")),
        serving_basis=ServingBasis.PER_100G if grams == 100 else ServingBasis.PER_SERVING,
        macros=Macros(
            protein_g=optional_float(serving.get("protein")),
            carbs_g=optional_float(serving.get("carbohydrate")),
            fat_g=optional_float(serving.get("fat")),
            fiber_g=optional_float(serving.get("fiber")),
            sugar_g=optional_float(serving.get("sugar")),
        ),
        raw_payload=food,
        serving_size_g=grams,
        external_id=str(food["food_id"]) if food.get("food_id") else None,
    )
