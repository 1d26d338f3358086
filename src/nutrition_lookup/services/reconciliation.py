"""Merging of candidate records from several providers."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from nutrition_lookup.domain.errors import NoReliableData
from nutrition_lookup.domain.nutrition import (
    NutritionRecord,
    ReconciledResult,
    ServingBasis,
)
from nutrition_lookup.services.validator import NutritionValidator

_logger = logging.getLogger(__name__)


def sort_by_priority(
    records: Sequence[NutritionRecord], priority: Sequence[str]
) -> list[NutritionRecord]:
    """Order records by provider priority; unranked sources go last, in order."""
    rank = {source_id: index for index, source_id in enumerate(priority)}
    unranked = len(rank)
    return sorted(records, key=lambda record: rank.get(record.source_id, unranked))


@dataclass
class ReconciliationEngine:
    """Chooses one record among validated candidates and scores agreement."""

    validator: NutritionValidator = field(default_factory=NutritionValidator)
    priority: tuple[str, ...] = ()
    agreement_threshold: float = 0.15

    def reconcile(
        self,
        records: Sequence[NutritionRecord],
        priority: Sequence[str] | None = None,
    ) -> ReconciledResult:
        """Merge candidate records into a confidence-scored result.

        Raises:
            NoReliableData: If no record passes validation.
        """
        ordered = sort_by_priority(records, self.priority if priority is None else priority)
        issues: dict[str, tuple[str, ...]] = {}
        survivors: list[NutritionRecord] = []
        for record in ordered:
            report = self.validator.validate(record)
            if report.issues:
                issues[record.source_id] = report.issues
            if report.valid:
                survivors.append(record)
            else:
                _logger.warning(
                    "Discarding record from %s: %s",
                    record.source_id,
                    "; ".join(report.issues),
                )

        if not survivors:
            raise NoReliableData(f"none of {len(ordered)} candidate(s) passed validation")

        if len(survivors) == 1:
            chosen = survivors[0]
            return ReconciledResult(
                chosen=chosen,
                agreeing_sources=frozenset({chosen.source_id}),
                confidence=1.0,
                all_candidates=tuple(ordered),
                issues=issues,
            )

        values = _comparable_calories(survivors, issues)
        comparable = [value for value in values if value is not None]
        mean = sum(comparable) / len(comparable)
        agreeing = [
            record
            for record, value in zip(survivors, values, strict=True)
            if value is not None and self._agrees(value, mean)
        ]
        if not agreeing:
            agreeing = [survivors[0]]
        chosen = agreeing[0]
        return ReconciledResult(
            chosen=chosen,
            agreeing_sources=frozenset(record.source_id for record in agreeing),
            confidence=len(agreeing) / len(survivors),
            all_candidates=tuple(ordered),
            issues=issues,
        )

    def _agrees(self, calories: float, mean: float) -> bool:
        if mean == 0:
            return calories == 0
        return abs(calories - mean) / mean <= self.agreement_threshold


def _comparable_calories(
    records: Sequence[NutritionRecord], issues: dict[str, tuple[str, ...]]
) -> list[float | None]:
    """Calories on a shared basis; per 100 g whenever the bases differ.

    Per-serving records without a serving weight cannot be scaled and get
    ``None`` plus an issue.
    """
    if len({record.serving_basis for record in records}) == 1:
        return [record.calories_kcal for record in records]
    values: list[float | None] = []
    for record in records:
        if record.serving_basis is ServingBasis.PER_100G:
            values.append(record.calories_kcal)
        elif record.serving_size_g:
            values.append(record.calories_kcal * 100 / record.serving_size_g)
        else:
            issues[record.source_id] = (
                *issues.get(record.source_id, ()),
                "serving basis differs and serving size is unknown",
            )
            values.append(None)
    return values
