"""Pydantic schemas for the medication safety engine."""

from medsafety.schemas.base import (
    AllergySeverity,
    ContraindicationReason,
    HepaticFunction,
    IssueSource,
    PregnancyCategory,
    RenalFunction,
    ReviewTier,
    Severity,
)
from medsafety.schemas.medication import (
    Allergy,
    ComprehensiveCheckRequest,
    Medication,
    PatientCondition,
    SafetyProfile,
)
from medsafety.schemas.results import (
    AllergyMatch,
    CheckSummary,
    ComprehensiveResult,
    ContraindicationCheck,
    DosageValidation,
    InteractionFinding,
    InteractionScreen,
    MedicationContraindications,
    PediatricDosageValidation,
    PregnancySafety,
    RenalDosageAdjustment,
    SafetyIssue,
)

__all__ = [
    # Enums
    "AllergySeverity",
    "ContraindicationReason",
    "HepaticFunction",
    "IssueSource",
    "PregnancyCategory",
    "RenalFunction",
    "ReviewTier",
    "Severity",
    # Inputs
    "Allergy",
    "ComprehensiveCheckRequest",
    "Medication",
    "PatientCondition",
    "SafetyProfile",
    # Results
    "AllergyMatch",
    "CheckSummary",
    "ComprehensiveResult",
    "ContraindicationCheck",
    "DosageValidation",
    "InteractionFinding",
    "InteractionScreen",
    "MedicationContraindications",
    "PediatricDosageValidation",
    "PregnancySafety",
    "RenalDosageAdjustment",
    "SafetyIssue",
]
