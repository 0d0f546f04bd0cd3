"""Result schemas returned by the safety checks.

Every result is frozen: it is built once per rule match, handed back up the
call chain and discarded by the caller.
"""

from pydantic import Field

from medsafety.schemas.base import (
    ContraindicationReason,
    FrozenCamelModel,
    IssueSource,
    PregnancyCategory,
    RenalFunction,
    ReviewTier,
    Severity,
)


class ContraindicationCheck(FrozenCamelModel):
    """A single contraindication finding."""

    is_contraindicated: bool = Field(..., description="True only when prescribing should be blocked")
    severity: Severity
    reason: ContraindicationReason
    message: str
    recommendation: str
    alternatives: list[str] | None = Field(None, description="Suggested replacement drugs")


class DosageValidation(FrozenCamelModel):
    """Adult dose check against the reference range."""

    medication: str
    dosage: str | None = None
    is_valid: bool
    is_standard: bool = False
    message: str | None = None
    severity: Severity | None = None
    suggestion: str | None = None


class PediatricDosageValidation(DosageValidation):
    """Weight-banded dose check for children."""

    weight_kg: float
    max_dose_mg: float | None = Field(None, description="Weight-based single-dose ceiling")
    adjusted_dosage: str | None = None


class RenalDosageAdjustment(FrozenCamelModel):
    """Dose check adjusted for renal function."""

    medication: str
    original_dosage: str | None = None
    renal_function: RenalFunction
    is_valid: bool = True
    contraindicated: bool = False
    adjustment_percent: int | None = Field(None, description="Percent of the normal dose")
    adjusted_dosage: str | None = None
    max_adjusted_dose_mg: float | None = None
    message: str | None = None
    requires_monitoring: bool = False


class PregnancySafety(FrozenCamelModel):
    """Pregnancy category lookup for a medication."""

    medication: str
    is_pregnant: bool
    category: PregnancyCategory | None = None
    is_contraindicated: bool = False
    message: str | None = None
    alternative_medications: list[str] = Field(default_factory=list)


class InteractionFinding(FrozenCamelModel):
    """A known major interaction between two medications in a screen."""

    medication: str
    interacts_with: str
    severity: Severity = Severity.CRITICAL
    reason: str
    recommendation: str
    alternatives: list[str] | None = None


class AllergyMatch(FrozenCamelModel):
    """A medication whose name matches a listed allergen."""

    medication: str
    allergy: str
    severity: Severity = Severity.WARNING


class InteractionScreen(FrozenCamelModel):
    """List-level interaction and allergy screen."""

    interactions: list[InteractionFinding] = Field(default_factory=list)
    allergies: list[AllergyMatch] = Field(default_factory=list)
    has_warnings: bool = False


class MedicationContraindications(FrozenCamelModel):
    """All contraindication findings for one medication."""

    medication: str
    contraindications: list[ContraindicationCheck] = Field(default_factory=list)


class SafetyIssue(FrozenCamelModel):
    """A message routed into the errors or warnings of a verdict."""

    source: IssueSource
    tier: ReviewTier
    medication: str | None = None
    message: str


class CheckSummary(FrozenCamelModel):
    """Counts for a comprehensive verdict."""

    total_medications: int
    valid_medications: int
    warnings: int
    errors: int


class ComprehensiveResult(FrozenCamelModel):
    """Single verdict over a whole prescription."""

    dosage_validations: list[DosageValidation] = Field(default_factory=list)
    interaction_checks: list[InteractionScreen] = Field(default_factory=list)
    contraindications: list[MedicationContraindications] = Field(default_factory=list)
    pediatric_validations: list[PediatricDosageValidation] = Field(default_factory=list)
    renal_validations: list[RenalDosageAdjustment] = Field(default_factory=list)
    issues: list[SafetyIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    is_approved: bool
    requires_review: bool
    summary: CheckSummary
