"""Dosage Validation.

Validates a prescribed dose against reference ranges:
- Adult single-dose range
- Pediatric weight-based ceiling (mg/kg, capped)
- Renal-function adjusted dose

Doses in g, mg or mcg are converted to mg before comparison; any other
unit cannot be checked and is reported as unparseable.

Medications without reference data always validate, with no message.
Missing reference data never makes a dose invalid.
"""

import logging
import re
from dataclasses import dataclass

from medsafety.schemas.base import RenalFunction, Severity
from medsafety.schemas.results import DosageValidation, PediatricDosageValidation, RenalDosageAdjustment
from medsafety.services.knowledge_base import KnowledgeBase, get_knowledge_base

logger = logging.getLogger(__name__)

_DOSE_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*([a-zA-Zµμ]+)?")
_THOUSANDS_SEPARATOR = re.compile(r"(?<=\d),(?=\d{3}(?!\d))")

# Micrograms per unit. Reference tables are in mg.
_UNIT_MICROGRAMS = {
    "mg": 1000,
    "milligram": 1000,
    "milligrams": 1000,
    "g": 1_000_000,
    "gram": 1_000_000,
    "grams": 1_000_000,
    "mcg": 1,
    "ug": 1,
    "µg": 1,
    "μg": 1,
    "microgram": 1,
    "micrograms": 1,
}

# Pediatric dose problems are advisory; adult range violations are critical
PEDIATRIC_FINDING_SEVERITY = Severity.WARNING
ADULT_FINDING_SEVERITY = Severity.CRITICAL

UNPARSEABLE_DOSE_MESSAGE = "Could not parse dosage format"
UNPARSEABLE_DOSE_SUGGESTION = 'Use format like "500mg", "1g" or "250 mcg"'


@dataclass(frozen=True)
class ParsedDose:
    """Numeric value and unit pulled from a free-text dose."""

    value: float
    unit: str

    @property
    def mg(self) -> float:
        """The dose converted to milligrams."""
        return self.value * _UNIT_MICROGRAMS[self.unit] / 1000


def parse_dose(dosage: str | None) -> ParsedDose | None:
    """Parse the first number (and optional unit) out of a dose string.

    Examples: "500mg", "500 mg", "2.5 mg tablet", "1g", "1,000 mcg". The unit
    defaults to mg. A unit that is not a mass (e.g. "ml", "tablet") gives
    None, since it cannot be compared against mg reference data.
    """
    if not dosage:
        return None
    match = _DOSE_PATTERN.search(_THOUSANDS_SEPARATOR.sub("", dosage))
    if match is None:
        return None
    unit = (match.group(2) or "mg").lower()
    if unit not in _UNIT_MICROGRAMS:
        return None
    return ParsedDose(value=float(match.group(1)), unit=unit)


def _fmt(value: float) -> str:
    return f"{value:g}"


def validate_dosage(medication: str, dosage: str | None, kb: KnowledgeBase | None = None) -> DosageValidation:
    """Validate an adult dose against the standard range for the medication."""
    kb = kb or get_knowledge_base()
    dose_range = kb.find_dosage_range(medication)

    if dose_range is None or not dosage:
        return DosageValidation(medication=medication, dosage=dosage, is_valid=True)

    parsed = parse_dose(dosage)
    if parsed is None:
        return DosageValidation(
            medication=medication,
            dosage=dosage,
            is_valid=False,
            severity=Severity.WARNING,
            message=UNPARSEABLE_DOSE_MESSAGE,
            suggestion=UNPARSEABLE_DOSE_SUGGESTION,
        )

    unit = dose_range.unit
    if parsed.mg < dose_range.min_mg or parsed.mg > dose_range.max_mg:
        return DosageValidation(
            medication=medication,
            dosage=dosage,
            is_valid=False,
            severity=ADULT_FINDING_SEVERITY,
            message=(
                f"Dosage {_fmt(parsed.value)}{parsed.unit} is outside standard range "
                f"({_fmt(dose_range.min_mg)}-{_fmt(dose_range.max_mg)}{unit})"
            ),
            suggestion=(
                f"Standard range: {_fmt(dose_range.min_mg)}-{_fmt(dose_range.max_mg)}{unit} "
                f"{dose_range.frequency}. Max daily: {_fmt(dose_range.max_daily_mg)}{unit}"
            ),
        )

    return DosageValidation(
        medication=medication,
        dosage=dosage,
        is_valid=True,
        is_standard=True,
        message="Dosage within standard range",
    )


def validate_pediatric_dosage(
    medication: str,
    dosage: str | None,
    weight_kg: float,
    kb: KnowledgeBase | None = None,
) -> PediatricDosageValidation:
    """Validate a child's dose against the weight-based ceiling.

    Args:
        medication: Medication name.
        dosage: Dose string, e.g. "250mg".
        weight_kg: Body weight in kilograms.
        kb: Knowledge base to use (defaults to the process-wide one).

    Returns:
        PediatricDosageValidation, invalid when the dose exceeds
        ``min(weight_kg * mg_per_kg, max_mg)`` or cannot be parsed.

    Raises:
        ValueError: If ``weight_kg`` is not positive.
    """
    if weight_kg <= 0:
        raise ValueError(f"weight_kg must be positive, got {weight_kg}")

    kb = kb or get_knowledge_base()
    rule = kb.find_pediatric_rule(medication)
    if rule is None or not dosage:
        return PediatricDosageValidation(medication=medication, dosage=dosage, is_valid=True, weight_kg=weight_kg)

    max_dose = rule.max_dose(weight_kg)
    parsed = parse_dose(dosage)
    if parsed is None:
        return PediatricDosageValidation(
            medication=medication,
            dosage=dosage,
            is_valid=False,
            severity=PEDIATRIC_FINDING_SEVERITY,
            message=UNPARSEABLE_DOSE_MESSAGE,
            suggestion=UNPARSEABLE_DOSE_SUGGESTION,
            weight_kg=weight_kg,
            max_dose_mg=max_dose,
        )

    if parsed.mg > max_dose:
        return PediatricDosageValidation(
            medication=medication,
            dosage=dosage,
            is_valid=False,
            severity=PEDIATRIC_FINDING_SEVERITY,
            message=f"Pediatric dosage {_fmt(parsed.mg)}mg exceeds weight-based limit ({_fmt(max_dose)}mg)",
            suggestion=f"For {_fmt(weight_kg)}kg child, max dosage: {_fmt(max_dose)}mg",
            weight_kg=weight_kg,
            max_dose_mg=max_dose,
            adjusted_dosage=f"{_fmt(max_dose)}mg",
        )

    return PediatricDosageValidation(
        medication=medication,
        dosage=dosage,
        is_valid=True,
        is_standard=True,
        message="Pediatric dosage appropriate for weight",
        weight_kg=weight_kg,
        max_dose_mg=max_dose,
    )


def validate_renal_dosage(
    medication: str,
    dosage: str | None,
    renal_function: RenalFunction,
    kb: KnowledgeBase | None = None,
) -> RenalDosageAdjustment:
    """Adjust and validate a dose for the patient's renal function.

    A 0% adjustment means the drug is contraindicated at that renal function.
    Otherwise the adjusted dose is reported, and the dose is invalid when it
    exceeds the reduced single-dose ceiling. Monitoring is required whenever a
    reduction applies.
    """
    kb = kb or get_knowledge_base()
    adjustments = kb.find_renal_adjustment(medication)

    if adjustments is None or renal_function not in adjustments:
        return RenalDosageAdjustment(medication=medication, original_dosage=dosage, renal_function=renal_function)

    percent = adjustments[renal_function]

    if percent == 0:
        return RenalDosageAdjustment(
            medication=medication,
            original_dosage=dosage,
            renal_function=renal_function,
            is_valid=False,
            contraindicated=True,
            adjustment_percent=0,
            message=f"{medication} is CONTRAINDICATED in {renal_function.value} renal function",
            requires_monitoring=True,
        )

    reduced = percent < 100
    dose_range = kb.find_dosage_range(medication)
    max_adjusted = dose_range.max_mg * percent / 100 if dose_range is not None else None
    parsed = parse_dose(dosage)

    adjusted_dosage = None
    if parsed is not None:
        adjusted_dosage = f"{_fmt(parsed.mg * percent / 100)}mg ({percent}% of normal)"

    if parsed is not None and max_adjusted is not None and parsed.mg > max_adjusted:
        return RenalDosageAdjustment(
            medication=medication,
            original_dosage=dosage,
            renal_function=renal_function,
            is_valid=False,
            adjustment_percent=percent,
            adjusted_dosage=adjusted_dosage,
            max_adjusted_dose_mg=max_adjusted,
            message=(
                f"Dosage {_fmt(parsed.mg)}mg exceeds {_fmt(max_adjusted)}mg limit for "
                f"{renal_function.value} renal function ({percent}% of normal)"
            ),
            requires_monitoring=reduced,
        )

    if reduced:
        message = f"For {renal_function.value} renal function: reduce to {percent}% of normal dose"
    else:
        message = f"No dose reduction needed for {renal_function.value} renal function"

    return RenalDosageAdjustment(
        medication=medication,
        original_dosage=dosage,
        renal_function=renal_function,
        adjustment_percent=percent,
        adjusted_dosage=adjusted_dosage,
        max_adjusted_dose_mg=max_adjusted,
        message=message,
        requires_monitoring=reduced,
    )
