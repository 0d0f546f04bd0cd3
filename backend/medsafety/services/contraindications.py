"""Contraindication Checking.

Checks a proposed medication against a patient's:
- Diagnosed conditions (absolute and relative contraindications)
- Allergies (direct and class cross-reactivity)
- Current medications (major drug-drug interactions)
- Pregnancy, renal and hepatic status

Each resolver returns a single ContraindicationCheck or None. None means no
known contraindication, not that the medication is safe. Resolvers never raise
for medications missing from the knowledge base.
"""

import logging

from medsafety.schemas.base import (
    AllergySeverity,
    ContraindicationReason,
    HepaticFunction,
    PregnancyCategory,
    RenalFunction,
    Severity,
)
from medsafety.schemas.medication import Allergy, PatientCondition, SafetyProfile
from medsafety.schemas.results import ContraindicationCheck, PregnancySafety
from medsafety.services.knowledge_base import KnowledgeBase, get_knowledge_base
from medsafety.services.text_matching import matches

logger = logging.getLogger(__name__)

_RENAL_BLOCKING = (RenalFunction.SEVERE, RenalFunction.ESRD)


def check_condition_contraindications(
    medication: str,
    patient_conditions: list[PatientCondition],
    kb: KnowledgeBase | None = None,
) -> ContraindicationCheck | None:
    """Check if a medication is contraindicated by the patient's conditions.

    Absolute contraindications are checked first and short-circuit; relative
    ones only warn. Only the first matching condition is reported.
    """
    kb = kb or get_knowledge_base()
    rule = kb.find_rule(medication)
    if rule is None:
        return None

    condition_names = [c.name for c in patient_conditions]

    for condition in rule.absolute_conditions:
        if matches(condition, condition_names):
            return ContraindicationCheck(
                is_contraindicated=True,
                severity=Severity.CRITICAL,
                reason=ContraindicationReason.CONDITION,
                message=f"{medication} is ABSOLUTELY CONTRAINDICATED in {condition}",
                recommendation="Do not prescribe. Consider alternative medications.",
            )

    for condition in rule.relative_conditions:
        if matches(condition, condition_names):
            return ContraindicationCheck(
                is_contraindicated=False,
                severity=Severity.WARNING,
                reason=ContraindicationReason.CONDITION,
                message=f"{medication} requires caution in {condition}",
                recommendation="Use with caution. Consider dose adjustment or monitoring.",
            )

    return None


def check_allergy_contraindications(
    medication: str,
    patient_allergies: list[Allergy],
    kb: KnowledgeBase | None = None,
) -> ContraindicationCheck | None:
    """Check a medication against documented allergies.

    A direct name match is graded by the allergy's own severity. A
    class-level (cross-reactive) match is always critical, whatever the
    documented severity.
    """
    kb = kb or get_knowledge_base()
    canonical = kb.canonical_name(medication)

    # Direct medication allergy
    for allergy in patient_allergies:
        if matches(canonical, [kb.canonical_name(allergy.name)]):
            severe = allergy.severity == AllergySeverity.SEVERE
            return ContraindicationCheck(
                is_contraindicated=severe,
                severity=Severity.CRITICAL if severe else Severity.WARNING,
                reason=ContraindicationReason.ALLERGY,
                message=f"Patient has documented {allergy.severity.value} allergy to {medication}",
                recommendation="CONTRAINDICATED. Do not prescribe." if severe else "Use alternative if available.",
            )

    # Cross-reactivity with allergy groups
    for group_name in kb.allergy_groups:
        terms = kb.allergy_group_terms(group_name)
        allergic_to_group = any(matches(kb.canonical_name(a.name), terms) for a in patient_allergies)
        if allergic_to_group and matches(canonical, kb.expand_allergy_group(group_name)):
            return ContraindicationCheck(
                is_contraindicated=True,
                severity=Severity.CRITICAL,
                reason=ContraindicationReason.ALLERGY,
                message=f"{medication} is in the {group_name} class - patient allergic to this class",
                recommendation="CONTRAINDICATED due to cross-reactivity. Use alternative class.",
            )

    return None


def check_drug_drug_contraindications(
    medication: str,
    current_medications: list[str],
    kb: KnowledgeBase | None = None,
) -> ContraindicationCheck | None:
    """Check a proposed medication against the patient's current medications.

    Matching is direction-agnostic. Only the first interacting pair found is
    reported.
    """
    kb = kb or get_knowledge_base()

    for current in current_medications:
        pair = kb.find_interaction(medication, current)
        if pair is not None:
            return ContraindicationCheck(
                is_contraindicated=True,
                severity=Severity.CRITICAL,
                reason=ContraindicationReason.INTERACTION,
                message=f"MAJOR INTERACTION: {medication} + {current}. {pair.reason}",
                recommendation="Avoid combination. Consider alternatives.",
                alternatives=pair.replacement_drugs(),
            )

    return None


def check_pregnancy_contraindication(
    medication: str,
    is_pregnant: bool,
    kb: KnowledgeBase | None = None,
) -> ContraindicationCheck | None:
    """Flag medications whose rule marks them as contraindicated in pregnancy."""
    if not is_pregnant:
        return None

    kb = kb or get_knowledge_base()
    rule = kb.find_rule(medication)
    if rule is None or not rule.pregnancy_contraindicated:
        return None

    alternatives = kb.find_pregnancy_alternatives(medication)
    return ContraindicationCheck(
        is_contraindicated=True,
        severity=Severity.CRITICAL,
        reason=ContraindicationReason.PREGNANCY,
        message=f"{medication} is CONTRAINDICATED in pregnancy",
        recommendation="Use alternative medication. Consult obstetrics.",
        alternatives=list(alternatives) or None,
    )


def check_renal_contraindication(
    medication: str,
    renal_function: RenalFunction | None,
    kb: KnowledgeBase | None = None,
) -> ContraindicationCheck | None:
    """Flag renally contraindicated medications for impaired kidney function."""
    if renal_function is None or renal_function in (RenalFunction.NORMAL, RenalFunction.MILD):
        return None

    kb = kb or get_knowledge_base()
    rule = kb.find_rule(medication)
    if rule is None or not rule.renal_contraindicated:
        return None

    if renal_function in _RENAL_BLOCKING:
        return ContraindicationCheck(
            is_contraindicated=True,
            severity=Severity.CRITICAL,
            reason=ContraindicationReason.RENAL,
            message=f"{medication} is CONTRAINDICATED in {renal_function.value} renal impairment",
            recommendation="Do not prescribe. Choose a non-renally cleared alternative.",
        )

    return ContraindicationCheck(
        is_contraindicated=False,
        severity=Severity.WARNING,
        reason=ContraindicationReason.RENAL,
        message=f"{medication} requires caution in {renal_function.value} renal impairment",
        recommendation="Reduce dose and monitor renal function.",
    )


def check_hepatic_contraindication(
    medication: str,
    hepatic_function: HepaticFunction | None,
    kb: KnowledgeBase | None = None,
) -> ContraindicationCheck | None:
    """Flag hepatically contraindicated medications for impaired liver function."""
    if hepatic_function is None or hepatic_function in (HepaticFunction.NORMAL, HepaticFunction.MILD):
        return None

    kb = kb or get_knowledge_base()
    rule = kb.find_rule(medication)
    if rule is None or not rule.hepatic_contraindicated:
        return None

    if hepatic_function == HepaticFunction.SEVERE:
        return ContraindicationCheck(
            is_contraindicated=True,
            severity=Severity.CRITICAL,
            reason=ContraindicationReason.HEPATIC,
            message=f"{medication} is CONTRAINDICATED in severe hepatic impairment",
            recommendation="Do not prescribe. Choose an alternative not cleared by the liver.",
        )

    return ContraindicationCheck(
        is_contraindicated=False,
        severity=Severity.WARNING,
        reason=ContraindicationReason.HEPATIC,
        message=f"{medication} requires caution in {hepatic_function.value} hepatic impairment",
        recommendation="Use with caution. Monitor liver function tests.",
    )


def check_medication_contraindications(
    medication: str,
    patient_data: SafetyProfile,
    kb: KnowledgeBase | None = None,
) -> list[ContraindicationCheck]:
    """Run every contraindication check for one medication.

    Args:
        medication: Proposed medication name.
        patient_data: Patient safety profile for this check.
        kb: Knowledge base to use (defaults to the process-wide one).

    Returns:
        Findings in check order: condition, allergy, interaction, pregnancy,
        renal, hepatic. Empty when nothing is known against the medication.
    """
    kb = kb or get_knowledge_base()

    checks = (
        check_condition_contraindications(medication, patient_data.conditions, kb),
        check_allergy_contraindications(medication, patient_data.allergies, kb),
        check_drug_drug_contraindications(medication, patient_data.current_medications, kb),
        check_pregnancy_contraindication(medication, patient_data.is_pregnant, kb),
        check_renal_contraindication(medication, patient_data.renal_function_category, kb),
        check_hepatic_contraindication(medication, patient_data.hepatic_function_category, kb),
    )
    contraindications = [check for check in checks if check is not None]

    if contraindications:
        logger.debug(
            f"{medication}: {len(contraindications)} contraindication(s) "
            f"({', '.join(c.reason.value for c in contraindications)})"
        )
    return contraindications


def validate_pregnancy_safety(
    medication: str,
    is_pregnant: bool,
    kb: KnowledgeBase | None = None,
) -> PregnancySafety:
    """Look up the pregnancy category of a medication.

    Categories D and X are contraindicated. An unknown medication has no
    category and is not flagged, but the message asks for verification.
    """
    if not is_pregnant:
        return PregnancySafety(medication=medication, is_pregnant=False, message="Patient not pregnant")

    kb = kb or get_knowledge_base()
    category = kb.find_pregnancy_category(medication)

    if category is None:
        return PregnancySafety(
            medication=medication,
            is_pregnant=True,
            message=f"Pregnancy category for {medication} not found. Verify before prescribing.",
        )

    is_contraindicated = category in (PregnancyCategory.D, PregnancyCategory.X)
    if is_contraindicated:
        message = f"{medication} is CONTRAINDICATED in pregnancy (Category {category.value})"
    else:
        message = f"{medication} is generally safe in pregnancy (Category {category.value})"

    return PregnancySafety(
        medication=medication,
        is_pregnant=True,
        category=category,
        is_contraindicated=is_contraindicated,
        message=message,
        alternative_medications=list(kb.find_pregnancy_alternatives(medication)),
    )
