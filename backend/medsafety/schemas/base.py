"""Base enums and model classes for the medication safety engine."""

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Severity(str, Enum):
    """Severity of a safety finding."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"  # Only critical + contraindicated blocks prescribing


class ContraindicationReason(str, Enum):
    """Why a contraindication finding was raised."""

    ALLERGY = "allergy"
    CONDITION = "condition"
    INTERACTION = "interaction"
    PREGNANCY = "pregnancy"
    RENAL = "renal"
    HEPATIC = "hepatic"


class AllergySeverity(str, Enum):
    """Documented severity of a patient allergy."""

    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class RenalFunction(str, Enum):
    """Coarse renal function bucket used to gate dose adjustments."""

    NORMAL = "normal"
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"
    ESRD = "esrd"  # End-stage renal disease


class HepaticFunction(str, Enum):
    """Coarse hepatic function bucket."""

    NORMAL = "normal"
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class PregnancyCategory(str, Enum):
    """FDA pregnancy categories (legacy letter system)."""

    A = "A"  # Adequate studies show no risk
    B = "B"  # Animal studies no risk, no human studies
    C = "C"  # Animal studies show risk, no human studies
    D = "D"  # Evidence of human fetal risk
    X = "X"  # Contraindicated in pregnancy


class ReviewTier(str, Enum):
    """Where an aggregated issue lands in a comprehensive verdict."""

    ERROR = "error"  # Blocks approval
    WARNING = "warning"  # Requires review


class IssueSource(str, Enum):
    """Which check produced an aggregated issue."""

    ADULT_DOSAGE = "adult_dosage"
    INTERACTION_SCREEN = "interaction_screen"
    CRITICAL_CONTRAINDICATION = "critical_contraindication"
    ADVISORY_CONTRAINDICATION = "advisory_contraindication"
    PEDIATRIC_DOSAGE = "pediatric_dosage"
    RENAL_DOSAGE = "renal_dosage"


class CamelModel(BaseModel):
    """Base model that accepts and emits camelCase field names on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(BaseModel):
    """Immutable result model. Findings are never mutated once built."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)
