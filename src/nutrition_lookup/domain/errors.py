"""Error taxonomy for nutrition lookups."""


class NutritionLookupError(Exception):
    """Base class for lookup errors."""


class ProviderError(NutritionLookupError):
    """A failure attributed to a single provider."""

    def __init__(self, provider_id: str, message: str = "") -> None:
        self.provider_id = provider_id
        super().__init__(f"{provider_id}: {message}" if message else provider_id)


class ProviderUnavailable(ProviderError):
    """Network error, timeout, 5xx or unreadable response. Retried."""


class ProviderAuthError(ProviderError):
    """Credentials were rejected. The provider is disabled, never retried."""


class RateLimited(ProviderError):
    """Request budget exhausted, locally or upstream."""

    def __init__(
        self, provider_id: str, message: str = "", retry_after: float = 0.0
    ) -> None:
        self.retry_after = retry_after
        super().__init__(provider_id, message)


class NoReliableData(NutritionLookupError):
    """No candidate record survived validation."""
