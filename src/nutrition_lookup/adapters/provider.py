"""Common interface and HTTP plumbing for nutrition providers."""

from dataclasses import dataclass
from enum import StrEnum
from typing import ClassVar, Protocol

import httpx

from nutrition_lookup.domain.errors import (
    ProviderAuthError,
    ProviderUnavailable,
    RateLimited,
)
from nutrition_lookup.domain.nutrition import NutritionRecord
from nutrition_lookup.services.rate_limiter import RateLimiter

_AUTH_STATUS_CODES = {401, 403}
_TOO_MANY_REQUESTS = 429
_NOT_FOUND = 404

# Raised when a payload does not have the shape a parser expects.
PARSE_ERRORS = (AttributeError, KeyError, TypeError, ValueError)


class ProviderId(StrEnum):
    """Every supported nutrition data source."""

    USDA = "usda"
    OPEN_FOOD_FACTS = "openfoodfacts"
    EDAMAM = "edamam"
    CALORIE_NINJAS = "calorieninjas"
    FATSECRET = "fatsecret"
    NUTRITIONIX = "nutritionix"


class ProviderAdapter(Protocol):
    """Interface for nutrition data providers."""

    provider_id: ClassVar[ProviderId]
    supports_barcode: ClassVar[bool]

    async def search_by_name(
        self, text: str, max_results: int = 5
    ) -> list[NutritionRecord]:
        """Search foods by free text; an empty list means no match."""

    async def lookup_by_barcode(self, code: str) -> NutritionRecord | None:
        """Fetch one product by barcode; None means not found."""


@dataclass
class HttpxProvider:
    """Shared httpx plumbing: budget check, error mapping, JSON decoding."""

    provider_id: ClassVar[ProviderId]
    supports_barcode: ClassVar[bool] = False
    timeout_seconds: ClassVar[float] = 15

    http_client: httpx.AsyncClient
    rate_limiter: RateLimiter

    async def lookup_by_barcode(self, code: str) -> NutritionRecord | None:
        """Barcode lookup is not offered by this provider."""
        raise NotImplementedError(f"{self.provider_id} does not support barcodes")

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    def _acquire(self) -> None:
        """Consume one request from the budget or fail before any I/O."""
        if not self.rate_limiter.try_acquire(self.provider_id):
            raise RateLimited(
                self.provider_id,
                "local request budget exhausted",
                retry_after=self.rate_limiter.seconds_until_reset(self.provider_id),
            )

    async def _request_json(
        self, method: str, url: str, **kwargs: object
    ) -> dict[str, object] | None:
        """Send a request and decode JSON; None on 404."""
        try:
            response = await self.http_client.request(
                method, url, timeout=self.timeout_seconds, **kwargs
            )
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(self.provider_id, str(exc) or repr(exc)) from exc
        if response.status_code == _NOT_FOUND:
            return None
        if response.status_code in _AUTH_STATUS_CODES:
            raise ProviderAuthError(
                self.provider_id, f"credentials rejected ({response.status_code})"
            )
        if response.status_code == _TOO_MANY_REQUESTS:
            raise RateLimited(
                self.provider_id,
                "upstream rate limit",
                retry_after=_retry_after(response),
            )
        if response.is_error:
            raise ProviderUnavailable(
                self.provider_id, f"HTTP {response.status_code}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderUnavailable(self.provider_id, "invalid JSON body") from exc
        if not isinstance(payload, dict):
            raise ProviderUnavailable(self.provider_id, "unexpected JSON body")
        return payload

    def _malformed(self, exc: Exception) -> ProviderUnavailable:
        return ProviderUnavailable(self.provider_id, f"malformed response: {exc!r}")


def _retry_after(response: httpx.Response) -> float:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return 0.0
    try:
        return max(0.0, float(raw))
    except ValueError:
        return 0.0


def optional_float(value: object) -> float | None:
    """Coerce provider numbers (possibly strings) to float, None if unusable."""
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
