"""Nutrition lookup domain models."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

PLACEHOLDER_SOURCE = "user_input"


class ServingBasis(StrEnum):
    """What quantity a record's values refer to."""

    PER_100G = "per100g"
    PER_SERVING = "perServing"


class LookupMode(StrEnum):
    """How the orchestrator drives providers."""

    PARALLEL_RECONCILE = "parallel-reconcile"
    FIRST_SUCCESS = "first-success"


class OutcomeStatus(StrEnum):
    """Terminal state of one provider within a lookup."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    FAILED = "failed"
    SKIPPED = "skipped"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class FoodQuery:
    """A lookup request by free text or by barcode."""

    text: str | None = None
    barcode: str | None = None

    def __post_init__(self) -> None:
        if (self.text is None) == (self.barcode is None):
            raise ValueError("FoodQuery needs exactly one of text or barcode")

    @classmethod
    def by_name(cls, text: str) -> "FoodQuery":
        return cls(text=text.strip())

    @classmethod
    def by_barcode(cls, code: str) -> "FoodQuery":
        return cls(barcode=code.strip())

    @property
    def cache_key(self) -> str:
        if self.barcode is not None:
            return f"barcode:{self.barcode}"
        return f"name:{self.text}"

    @property
    def label(self) -> str:
        return self.text if self.text is not None else str(self.barcode)


@dataclass(frozen=True)
class Macros:
    """Macronutrient grams; None means the provider did not report it."""

    protein_g: float | None = None
    carbs_g: float | None = None
    fat_g: float | None = None
    fiber_g: float | None = None
    sugar_g: float | None = None

    def to_dict(self) -> dict[str, float | None]:
        return {
            "protein_g": self.protein_g,
            "carbs_g": self.carbs_g,
            "fat_g": self.fat_g,
            "fiber_g": self.fiber_g,
            "sugar_g": self.sugar_g,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "Macros":
        return cls(
            protein_g=_optional_float(data.get("protein_g")),
            carbs_g=_optional_float(data.get("carbs_g")),
            fat_g=_optional_float(data.get("fat_g")),
            fiber_g=_optional_float(data.get("fiber_g")),
            sugar_g=_optional_float(data.get("sugar_g")),
        )


@dataclass(frozen=True)
class NutritionRecord:
    """Canonical nutrition data produced by one provider."""

    source_id: str
    name: str
    calories_kcal: float | None
    serving_basis: ServingBasis
    macros: Macros
    raw_payload: dict[str, object] = field(default_factory=dict, compare=False)
    fetched_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    serving_size_g: float | None = None
    external_id: str | None = None

    def to_dict(self) -> dict[str, object]:
        """Serialize into JSON-compatible primitives."""
        return {
            "source_id": self.source_id,
            "name": self.name,
            "calories_kcal": self.calories_kcal,
            "serving_basis": self.serving_basis.value,
            "macros": self.macros.to_dict(),
            "raw_payload": self.raw_payload,
            "fetched_at": self.fetched_at.isoformat(),
            "serving_size_g": self.serving_size_g,
            "external_id": self.external_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "NutritionRecord":
        """Rebuild a record from :meth:`to_dict` output."""
        raw_payload = data.get("raw_payload")
        return cls(
            source_id=str(data["source_id"]),
            name=str(data.get("name", "")),
            calories_kcal=_optional_float(data.get("calories_kcal")),
            serving_basis=ServingBasis(data.get("serving_basis", ServingBasis.PER_100G)),
            macros=Macros.from_dict(data.get("macros") or {}),
            raw_payload=raw_payload if isinstance(raw_payload, dict) else {},
            fetched_at=datetime.fromisoformat(str(data["fetched_at"])),
            serving_size_g=_optional_float(data.get("serving_size_g")),
            external_id=(
                str(data["external_id"]) if data.get("external_id") is not None else None
            ),
        )


@dataclass(frozen=True)
class ValidationReport:
    """Outcome of validating a single record."""

    valid: bool
    issues: tuple[str, ...] = ()


@dataclass(frozen=True)
class ProviderOutcome:
    """What happened to one provider during a lookup."""

    provider_id: str
    status: OutcomeStatus
    attempts: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "provider_id": self.provider_id,
            "status": self.status.value,
            "attempts": self.attempts,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "ProviderOutcome":
        error = data.get("error")
        return cls(
            provider_id=str(data["provider_id"]),
            status=OutcomeStatus(data["status"]),
            attempts=int(data.get("attempts", 0)),
            error=str(error) if error is not None else None,
        )


@dataclass(frozen=True)
class ReconciledResult:
    """Confidence-scored answer merged from one or more providers."""

    chosen: NutritionRecord
    agreeing_sources: frozenset[str]
    confidence: float
    all_candidates: tuple[NutritionRecord, ...]
    issues: dict[str, tuple[str, ...]] = field(default_factory=dict, compare=False)
    outcomes: tuple[ProviderOutcome, ...] = field(default=(), compare=False)
    from_cache: bool = field(default=False, compare=False)

    def to_dict(self) -> dict[str, object]:
        """Serialize into JSON-compatible primitives."""
        return {
            "chosen": self.chosen.to_dict(),
            "agreeing_sources": sorted(self.agreeing_sources),
            "confidence": self.confidence,
            "all_candidates": [record.to_dict() for record in self.all_candidates],
            "issues": {source: list(items) for source, items in self.issues.items()},
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "from_cache": self.from_cache,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "ReconciledResult":
        """Rebuild a result from :meth:`to_dict` output."""
        issues = data.get("issues") or {}
        return cls(
            chosen=NutritionRecord.from_dict(data["chosen"]),
            agreeing_sources=frozenset(data.get("agreeing_sources") or []),
            confidence=float(data["confidence"]),
            all_candidates=tuple(
                NutritionRecord.from_dict(item) for item in data.get("all_candidates") or []
            ),
            issues={source: tuple(items) for source, items in issues.items()},
            outcomes=tuple(
                ProviderOutcome.from_dict(item) for item in data.get("outcomes") or []
            ),
            from_cache=bool(data.get("from_cache", False)),
        )


@dataclass(frozen=True)
class PlaceholderResult:
    """Unverified stand-in returned when no provider could be trusted."""

    query: FoodQuery
    record: NutritionRecord
    reason: str
    outcomes: tuple[ProviderOutcome, ...] = ()
    confidence: float = 0.0
    verified: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "query": self.query.label,
            "record": self.record.to_dict(),
            "reason": self.reason,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "confidence": self.confidence,
            "verified": self.verified,
        }


@dataclass(frozen=True)
class NotFound:
    """Every queried provider reported that the item does not exist."""

    query: FoodQuery
    outcomes: tuple[ProviderOutcome, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "query": self.query.label,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


@dataclass(frozen=True)
class LookupOptions:
    """Per-call overrides of the orchestrator configuration."""

    max_providers: int | None = None
    mode: LookupMode | None = None
    timeout_ms: int | None = None
    ttl_ms: int | None = None


@dataclass(frozen=True)
class ProviderBudget:
    """Request counter for one provider within the current window."""

    window_start_ms: int
    count: int
    limit: int


LookupResult = ReconciledResult | PlaceholderResult | NotFound


def _optional_float(value: object) -> float | None:
    if value is None:
        return None
    return float(value)
