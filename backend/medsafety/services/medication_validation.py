"""Medication Validation Service.

Comprehensive prescription safety check. Fans a prescription out to the
dosage validators and contraindication resolvers, then folds their results
into one verdict:

- errors block approval (adult dosage violations, critical contraindications)
- warnings require review (interactions in the list, advisory
  contraindications, pediatric dosage, renal adjustments)

The mapping from check to errors/warnings is the ISSUE_TIERS table below.
"""

import logging
import threading
from collections.abc import Sequence
from typing import Any

from medsafety.core.config import settings
from medsafety.schemas.base import IssueSource, RenalFunction, ReviewTier, Severity
from medsafety.schemas.medication import ComprehensiveCheckRequest, Medication, SafetyProfile
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
    RenalDosageAdjustment,
    SafetyIssue,
)
from medsafety.services import contraindications, dosage
from medsafety.services.knowledge_base import KnowledgeBase, get_knowledge_base
from medsafety.services.text_matching import matches

logger = logging.getLogger(__name__)

# Pediatric dosage problems are warnings while adult ones are errors
ISSUE_TIERS: dict[IssueSource, ReviewTier] = {
    IssueSource.ADULT_DOSAGE: ReviewTier.ERROR,
    IssueSource.INTERACTION_SCREEN: ReviewTier.WARNING,
    IssueSource.CRITICAL_CONTRAINDICATION: ReviewTier.ERROR,
    IssueSource.ADVISORY_CONTRAINDICATION: ReviewTier.WARNING,
    IssueSource.PEDIATRIC_DOSAGE: ReviewTier.WARNING,
    IssueSource.RENAL_DOSAGE: ReviewTier.WARNING,
}


class _VerdictBuilder:
    """Collects routed issues while a comprehensive check runs."""

    def __init__(self) -> None:
        self.issues: list[SafetyIssue] = []

    def add(self, source: IssueSource, message: str, medication: str | None = None) -> None:
        self.issues.append(
            SafetyIssue(source=source, tier=ISSUE_TIERS[source], medication=medication, message=message)
        )

    def messages(self, tier: ReviewTier) -> list[str]:
        return [issue.message for issue in self.issues if issue.tier == tier]


class MedicationValidationService:
    """Service for validating prescriptions against the safety knowledge base.

    Usage:
        service = get_medication_validation_service()
        result = service.comprehensive_medication_check(
            ComprehensiveCheckRequest(
                medications=[Medication(name="warfarin", dosage="5mg")],
                current_medications=["aspirin"],
            )
        )
        if not result.is_approved:
            print(result.errors)
    """

    def __init__(self, kb: KnowledgeBase | None = None) -> None:
        """Initialize the service."""
        self._kb = kb or get_knowledge_base()
        logger.info("Medication validation service initialized")

    @property
    def knowledge_base(self) -> KnowledgeBase:
        """The knowledge base the checks run against."""
        return self._kb

    # ------------------------------------------------------------------
    # Single checks
    # ------------------------------------------------------------------

    def check_drug_interactions(
        self,
        medications: Sequence[Medication],
        patient_allergies: Sequence[str] = (),
        current_medications: Sequence[str] = (),
    ) -> InteractionScreen:
        """Screen a medication list for interactions and named allergens.

        Every unordered pair of proposed medications is checked once, then
        each proposed medication against each current medication. Allergy
        matches are direct name matches only.
        """
        interactions: list[InteractionFinding] = []

        for i, first in enumerate(medications):
            for second in medications[i + 1:]:
                finding = self._interaction_finding(first.name, second.name)
                if finding is not None:
                    interactions.append(finding)

        for med in medications:
            for current in current_medications:
                finding = self._interaction_finding(med.name, current)
                if finding is not None:
                    interactions.append(finding)

        allergies = [
            AllergyMatch(medication=med.name, allergy=allergy)
            for med in medications
            for allergy in patient_allergies
            if matches(self._kb.canonical_name(med.name), [self._kb.canonical_name(allergy)])
        ]

        return InteractionScreen(
            interactions=interactions,
            allergies=allergies,
            has_warnings=bool(interactions or allergies),
        )

    def _interaction_finding(self, medication: str, other: str) -> InteractionFinding | None:
        pair = self._kb.find_interaction(medication, other)
        if pair is None:
            return None
        return InteractionFinding(
            medication=medication,
            interacts_with=other,
            reason=pair.reason,
            recommendation="Avoid combination. Consider alternatives.",
            alternatives=pair.replacement_drugs(),
        )

    def validate_dosage(self, medication: str, dose: str | None) -> DosageValidation:
        """Validate an adult dose."""
        return dosage.validate_dosage(medication, dose, self._kb)

    def validate_pediatric_dosage(self, medication: str, dose: str | None, weight_kg: float) -> PediatricDosageValidation:
        """Validate a weight-based pediatric dose."""
        return dosage.validate_pediatric_dosage(medication, dose, weight_kg, self._kb)

    def validate_renal_dosage(
        self,
        medication: str,
        dose: str | None,
        renal_function_category: RenalFunction,
    ) -> RenalDosageAdjustment:
        """Validate a dose adjusted for renal function."""
        return dosage.validate_renal_dosage(medication, dose, renal_function_category, self._kb)

    def check_medication_contraindications(self, medication: str, patient_data: SafetyProfile) -> list[ContraindicationCheck]:
        """Run every contraindication check for one medication."""
        return contraindications.check_medication_contraindications(medication, patient_data, self._kb)

    # ------------------------------------------------------------------
    # Comprehensive check
    # ------------------------------------------------------------------

    def comprehensive_medication_check(self, request: ComprehensiveCheckRequest) -> ComprehensiveResult:
        """Run the full safety check for a prescription.

        Args:
            request: Validated prescription request.

        Returns:
            ComprehensiveResult. ``is_approved`` is False when any error was
            raised; ``requires_review`` is True when any warning was raised.
            An empty medication list is approved without review.
        """
        verdict = _VerdictBuilder()
        medications = request.medications

        # 1. Adult dosage
        dosage_validations = []
        for med in medications:
            validation = self.validate_dosage(med.name, med.dosage)
            dosage_validations.append(validation)
            if not validation.is_valid:
                verdict.add(IssueSource.ADULT_DOSAGE, f"{med.name}: {validation.message or 'Invalid dosage'}", med.name)

        # 2. Interaction screen across the list and current medications
        screen = self.check_drug_interactions(
            medications,
            [allergy.name for allergy in request.patient_allergies],
            request.current_medications,
        )
        if screen.has_warnings:
            verdict.add(IssueSource.INTERACTION_SCREEN, "Drug interactions detected")

        # 3. Contraindications per medication
        profile = request.to_safety_profile()
        contraindication_results = []
        for med in medications:
            findings = self.check_medication_contraindications(med.name, profile)
            contraindication_results.append(MedicationContraindications(medication=med.name, contraindications=findings))

            if any(f.severity == Severity.CRITICAL for f in findings):
                verdict.add(IssueSource.CRITICAL_CONTRAINDICATION, f"{med.name}: Critical contraindication detected", med.name)
            for finding in findings:
                if finding.severity != Severity.CRITICAL:
                    verdict.add(IssueSource.ADVISORY_CONTRAINDICATION, f"{med.name}: {finding.message}", med.name)

        # 4. Pediatric dosage
        pediatric_validations = []
        if request.age is not None and request.weight is not None and request.age < settings.pediatric_age_threshold:
            for med in medications:
                validation = self.validate_pediatric_dosage(med.name, med.dosage, request.weight)
                pediatric_validations.append(validation)
                if not validation.is_valid:
                    verdict.add(IssueSource.PEDIATRIC_DOSAGE, f"Pediatric: {med.name} - {validation.message}", med.name)

        # 5. Renal dosage
        renal_validations = []
        if request.renal_function is not None and request.renal_function != RenalFunction.NORMAL:
            for med in medications:
                adjustment = self.validate_renal_dosage(med.name, med.dosage, request.renal_function)
                renal_validations.append(adjustment)
                if adjustment.requires_monitoring:
                    verdict.add(IssueSource.RENAL_DOSAGE, f"Renal: {adjustment.message}", med.name)

        # 6. Verdict
        errors = verdict.messages(ReviewTier.ERROR)
        warnings = verdict.messages(ReviewTier.WARNING)
        summary = CheckSummary(
            total_medications=len(medications),
            valid_medications=sum(1 for v in dosage_validations if v.is_valid),
            warnings=len(warnings),
            errors=len(errors),
        )

        logger.debug(
            f"Comprehensive check: {summary.total_medications} medication(s), "
            f"{summary.errors} error(s), {summary.warnings} warning(s)"
        )

        return ComprehensiveResult(
            dosage_validations=dosage_validations,
            interaction_checks=[screen],
            contraindications=contraindication_results,
            pediatric_validations=pediatric_validations,
            renal_validations=renal_validations,
            issues=verdict.issues,
            warnings=warnings,
            errors=errors,
            is_approved=not errors,
            requires_review=bool(warnings),
            summary=summary,
        )

    def get_stats(self) -> dict[str, Any]:
        """Get statistics about the underlying knowledge base."""
        return self._kb.get_stats()


# ============================================================================
# Singleton
# ============================================================================

_medication_validation_service: MedicationValidationService | None = None
_medication_validation_lock = threading.Lock()


def get_medication_validation_service() -> MedicationValidationService:
    """Get the singleton medication validation service instance."""
    global _medication_validation_service
    if _medication_validation_service is None:
        with _medication_validation_lock:
            if _medication_validation_service is None:
                _medication_validation_service = MedicationValidationService()
    return _medication_validation_service


def reset_medication_validation_service() -> None:
    """Reset the singleton instance (for testing)."""
    global _medication_validation_service
    with _medication_validation_lock:
        _medication_validation_service = None


# ============================================================================
# Function API
# ============================================================================


def check_drug_interactions(
    medications: Sequence[Medication | dict[str, Any]],
    patient_allergies: Sequence[str] = (),
    current_medications: Sequence[str] = (),
) -> InteractionScreen:
    """Screen a medication list for interactions and named allergens.

    Blank allergy names are ignored.
    """
    request = ComprehensiveCheckRequest(
        medications=medications,
        patient_allergies=[allergy for allergy in patient_allergies if allergy.strip()],
        current_medications=list(current_medications),
    )
    return get_medication_validation_service().check_drug_interactions(
        request.medications,
        [allergy.name for allergy in request.patient_allergies],
        request.current_medications,
    )


def validate_dosage(medication: str, dose: str | None) -> DosageValidation:
    """Validate an adult dose."""
    return get_medication_validation_service().validate_dosage(medication, dose)


def validate_pediatric_dosage(medication: str, dose: str | None, weight_kg: float) -> PediatricDosageValidation:
    """Validate a weight-based pediatric dose."""
    return get_medication_validation_service().validate_pediatric_dosage(medication, dose, weight_kg)


def validate_renal_dosage(
    medication: str,
    dose: str | None,
    renal_function_category: RenalFunction | str,
) -> RenalDosageAdjustment:
    """Validate a dose adjusted for renal function."""
    return get_medication_validation_service().validate_renal_dosage(
        medication, dose, RenalFunction(renal_function_category)
    )


def check_medication_contraindications(
    medication: str,
    patient_data: SafetyProfile | dict[str, Any],
) -> list[ContraindicationCheck]:
    """Run every contraindication check for one medication."""
    profile = SafetyProfile.model_validate(patient_data)
    return get_medication_validation_service().check_medication_contraindications(medication, profile)


def comprehensive_medication_check(params: ComprehensiveCheckRequest | dict[str, Any]) -> ComprehensiveResult:
    """Run the full safety check for a prescription.

    Raises:
        pydantic.ValidationError: If the request is malformed, for example
            when ``medications`` is not a list.
    """
    request = ComprehensiveCheckRequest.model_validate(params)
    return get_medication_validation_service().comprehensive_medication_check(request)
