"""Sanity checks for provider records."""

from dataclasses import dataclass, replace

from nutrition_lookup.domain.nutrition import Macros, NutritionRecord, ValidationReport

_KCAL_PER_G_PROTEIN = 4
_KCAL_PER_G_CARBS = 4
_KCAL_PER_G_FAT = 9


@dataclass
class NutritionValidator:
    """Decides whether a record can be trusted and produces clean copies."""

    consistency_threshold: float = 0.20
    max_calories: float = 10000.0

    def validate(self, record: NutritionRecord) -> ValidationReport:
        """Check a record.

        Missing or negative calories and negative macros make a record
        invalid. Macro/calorie disagreement and implausibly high calories are
        reported as issues but leave the record usable.
        """
        issues: list[str] = []
        valid = True
        calories = record.calories_kcal
        if calories is None:
            issues.append("calories missing")
            valid = False
        elif calories < 0:
            issues.append(f"negative calories: {calories}")
            valid = False
        for name, value in record.macros.to_dict().items():
            if value is not None and value < 0:
                issues.append(f"negative {name}: {value}")
                valid = False
        if calories is not None and calories > self.max_calories:
            issues.append(f"calories above {self.max_calories:g}: {calories}")
        if valid and calories is not None and self.is_suspect(record):
            issues.append("suspect: macro calories disagree with reported calories")
        return ValidationReport(valid=valid, issues=tuple(issues))

    def is_suspect(self, record: NutritionRecord) -> bool:
        """True when protein, carbs and fat disagree with the calorie count."""
        macros = record.macros
        calories = record.calories_kcal
        if calories is None or None in (macros.protein_g, macros.carbs_g, macros.fat_g):
            return False
        derived = (
            macros.protein_g * _KCAL_PER_G_PROTEIN
            + macros.carbs_g * _KCAL_PER_G_CARBS
            + macros.fat_g * _KCAL_PER_G_FAT
        )
        if calories == 0:
            return derived > 0
        return abs(derived - calories) / calories > self.consistency_threshold

    @staticmethod
    def sanitize(record: NutritionRecord) -> NutritionRecord:
        """Return a copy with values clamped, rounded and zero-filled."""
        macros = record.macros
        return replace(
            record,
            calories_kcal=_clean(record.calories_kcal),
            macros=Macros(
                protein_g=_clean(macros.protein_g),
                carbs_g=_clean(macros.carbs_g),
                fat_g=_clean(macros.fat_g),
                fiber_g=_clean(macros.fiber_g),
                sugar_g=_clean(macros.sugar_g),
            ),
        )


def _clean(value: float | None) -> float:
    if value is None or value < 0:
        return 0.0
    return float(round(value))
