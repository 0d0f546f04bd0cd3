"""Medication safety services."""

from medsafety.services.contraindications import (
    check_allergy_contraindications,
    check_condition_contraindications,
    check_drug_drug_contraindications,
    check_hepatic_contraindication,
    check_pregnancy_contraindication,
    check_renal_contraindication,
    validate_pregnancy_safety,
)
from medsafety.services.knowledge_base import (
    KnowledgeBase,
    get_knowledge_base,
    load_knowledge_base,
    reset_knowledge_base,
)
from medsafety.services.medication_validation import (
    ISSUE_TIERS,
    MedicationValidationService,
    check_drug_interactions,
    check_medication_contraindications,
    comprehensive_medication_check,
    get_medication_validation_service,
    reset_medication_validation_service,
    validate_dosage,
    validate_pediatric_dosage,
    validate_renal_dosage,
)
from medsafety.services.text_matching import matches, normalize_text

__all__ = [
    # Matching
    "matches",
    "normalize_text",
    # Knowledge base
    "KnowledgeBase",
    "get_knowledge_base",
    "load_knowledge_base",
    "reset_knowledge_base",
    # Resolvers
    "check_allergy_contraindications",
    "check_condition_contraindications",
    "check_drug_drug_contraindications",
    "check_hepatic_contraindication",
    "check_pregnancy_contraindication",
    "check_renal_contraindication",
    "validate_pregnancy_safety",
    # Aggregator
    "ISSUE_TIERS",
    "MedicationValidationService",
    "check_drug_interactions",
    "check_medication_contraindications",
    "comprehensive_medication_check",
    "get_medication_validation_service",
    "reset_medication_validation_service",
    "validate_dosage",
    "validate_pediatric_dosage",
    "validate_renal_dosage",
]
