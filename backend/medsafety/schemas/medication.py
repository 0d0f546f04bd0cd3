"""Caller-supplied patient and prescription schemas.

These are the boundary types of the engine. Shape errors (for example a
non-list where a list of medications is required) raise a pydantic
``ValidationError`` here, before any rule is evaluated.
"""

from typing import Any

from pydantic import Field, field_validator

from medsafety.schemas.base import AllergySeverity, CamelModel, HepaticFunction, RenalFunction


class Medication(CamelModel):
    """A proposed or current medication, identified by free-text name."""

    name: str = Field(..., min_length=1, description="Drug name (generic or brand)")
    dosage: str | None = Field(None, description="Dose string, e.g. '500mg'")
    frequency: str | None = Field(None, description="Dosing frequency, e.g. 'BID'")
    duration: str | None = Field(None, description="Course length, e.g. '7 days'")


class Allergy(CamelModel):
    """A documented allergic sensitivity."""

    name: str = Field(..., min_length=1, description="Allergen (drug or drug class)")
    severity: AllergySeverity = Field(default=AllergySeverity.MODERATE, description="Documented severity")


class PatientCondition(CamelModel):
    """A diagnosed condition relevant to prescribing safety."""

    icd_code: str = Field(default="", description="ICD-10 code")
    name: str = Field(..., min_length=1, description="Condition name")


def _coerce_allergies(value: Any) -> Any:
    # Bare allergen strings carry no documented severity; treat as moderate
    if isinstance(value, list):
        return [{"name": item, "severity": AllergySeverity.MODERATE} if isinstance(item, str) else item for item in value]
    return value


def _coerce_conditions(value: Any) -> Any:
    if isinstance(value, list):
        return [{"name": item} if isinstance(item, str) else item for item in value]
    return value


class SafetyProfile(CamelModel):
    """Per-check snapshot of the patient facts the rules look at.

    Built fresh for every check and never persisted by the engine.
    """

    allergies: list[Allergy] = Field(default_factory=list)
    conditions: list[PatientCondition] = Field(default_factory=list)
    current_medications: list[str] = Field(default_factory=list)
    is_pregnant: bool = False
    renal_function_category: RenalFunction | None = None
    hepatic_function_category: HepaticFunction | None = None
    age: float | None = Field(None, ge=0, description="Age in years")
    weight_kg: float | None = Field(None, gt=0, description="Body weight in kg")

    @field_validator("allergies", mode="before")
    @classmethod
    def allergies_from_names(cls, value: Any) -> Any:
        """Accept bare allergen names alongside full allergy records."""
        return _coerce_allergies(value)

    @field_validator("conditions", mode="before")
    @classmethod
    def conditions_from_names(cls, value: Any) -> Any:
        """Accept bare condition names alongside coded conditions."""
        return _coerce_conditions(value)


class ComprehensiveCheckRequest(CamelModel):
    """A whole prescription submitted for a comprehensive safety check."""

    medications: list[Medication] = Field(..., description="Medications being prescribed")
    patient_allergies: list[Allergy] = Field(default_factory=list)
    patient_conditions: list[PatientCondition] = Field(default_factory=list)
    current_medications: list[str] = Field(default_factory=list)
    is_pregnant: bool = False
    age: float | None = Field(None, ge=0, description="Age in years")
    weight: float | None = Field(None, gt=0, description="Body weight in kg")
    renal_function: RenalFunction | None = None
    hepatic_function: HepaticFunction | None = None

    @field_validator("patient_allergies", mode="before")
    @classmethod
    def allergies_from_names(cls, value: Any) -> Any:
        """Accept bare allergen names alongside full allergy records."""
        return _coerce_allergies(value)

    @field_validator("patient_conditions", mode="before")
    @classmethod
    def conditions_from_names(cls, value: Any) -> Any:
        """Accept bare condition names alongside coded conditions."""
        return _coerce_conditions(value)

    def to_safety_profile(self) -> SafetyProfile:
        """Project the request onto the per-medication safety profile."""
        return SafetyProfile(
            allergies=self.patient_allergies,
            conditions=self.patient_conditions,
            current_medications=self.current_medications,
            is_pregnant=self.is_pregnant,
            renal_function_category=self.renal_function,
            hepatic_function_category=self.hepatic_function,
            age=self.age,
            weight_kg=self.weight,
        )
