"""Tests for input and result schemas."""

import pytest
from pydantic import ValidationError

from medsafety.schemas import (
    Allergy,
    AllergySeverity,
    ComprehensiveCheckRequest,
    ContraindicationCheck,
    ContraindicationReason,
    Medication,
    RenalFunction,
    SafetyProfile,
    Severity,
)


class TestInputSchemas:
    """Test caller-supplied schemas."""

    def test_allergy_default_severity(self):
        """Test an allergy without severity is moderate."""
        assert Allergy(name="penicillin").severity == AllergySeverity.MODERATE

    def test_allergy_invalid_severity(self):
        """Test an unknown severity is rejected."""
        with pytest.raises(ValidationError):
            Allergy(name="penicillin", severity="extreme")

    def test_medication_name_required(self):
        """Test an empty medication name is rejected."""
        with pytest.raises(ValidationError):
            Medication(name="")

    def test_profile_accepts_bare_names(self):
        """Test bare strings become allergy and condition records."""
        profile = SafetyProfile(allergies=["penicillin"], conditions=["asthma"])
        assert profile.allergies[0].name == "penicillin"
        assert profile.allergies[0].severity == AllergySeverity.MODERATE
        assert profile.conditions[0].name == "asthma"
        assert profile.conditions[0].icd_code == ""

    def test_profile_camel_case_keys(self):
        """Test a profile built from camelCase keys."""
        profile = SafetyProfile.model_validate({"isPregnant": True, "renalFunctionCategory": "esrd"})
        assert profile.is_pregnant is True
        assert profile.renal_function_category == RenalFunction.ESRD

    def test_profile_rejects_non_positive_weight(self):
        """Test weight must be positive."""
        with pytest.raises(ValidationError):
            SafetyProfile(weight_kg=0)

    def test_request_to_profile(self):
        """Test projecting a request onto a safety profile."""
        request = ComprehensiveCheckRequest(
            medications=[{"name": "metformin"}],
            patient_allergies=["sulfa"],
            current_medications=["lisinopril"],
            weight=70,
            renal_function="moderate",
        )
        profile = request.to_safety_profile()
        assert profile.allergies[0].name == "sulfa"
        assert profile.current_medications == ["lisinopril"]
        assert profile.weight_kg == 70
        assert profile.renal_function_category == RenalFunction.MODERATE

    def test_request_rejects_unknown_renal_category(self):
        """Test an unknown renal category is rejected."""
        with pytest.raises(ValidationError):
            ComprehensiveCheckRequest(medications=[], renal_function="failing")


class TestResultSchemas:
    """Test result schemas."""

    def test_results_are_frozen(self):
        """Test results cannot be modified after creation."""
        check = ContraindicationCheck(
            is_contraindicated=True,
            severity=Severity.CRITICAL,
            reason=ContraindicationReason.PREGNANCY,
            message="ibuprofen is CONTRAINDICATED in pregnancy",
            recommendation="Use alternative medication.",
        )
        with pytest.raises(ValidationError):
            check.is_contraindicated = False

    def test_enum_values_serialize(self):
        """Test enums dump as their string values."""
        check = ContraindicationCheck(
            is_contraindicated=False,
            severity=Severity.WARNING,
            reason=ContraindicationReason.CONDITION,
            message="metoprolol requires caution in copd",
            recommendation="Use with caution.",
        )
        data = check.model_dump(mode="json", by_alias=True)
        assert data["severity"] == "warning"
        assert data["reason"] == "condition"
        assert data["isContraindicated"] is False
        assert data["alternatives"] is None
