"""Medication Safety Knowledge Base.

Static reference data for the safety checks:
- Per-medication contraindication rules (conditions, allergy groups,
  pregnancy/renal/hepatic flags)
- Allergy cross-reactivity groups (groups may nest other groups)
- Major drug-drug interaction pairs
- Adult, pediatric and renal dosage tables
- Pregnancy categories and alternatives
- Brand-to-generic aliases

All tables are declared as literals below and frozen into a read-only
KnowledgeBase once per process. A missing entry means "no known
contraindication", never "safe".

Note: This is a clinical decision support tool and should not replace
clinical judgment. Always consult current prescribing information.
"""

import json
import logging
import re
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, TypeVar

from pydantic import TypeAdapter

from medsafety.core.config import settings
from medsafety.schemas.base import PregnancyCategory, RenalFunction
from medsafety.services.text_matching import contains_fragment, matches, normalize_text

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ContraindicationRule:
    """Contraindication rule for one medication."""

    medication: str
    absolute_conditions: tuple[str, ...] = ()
    relative_conditions: tuple[str, ...] = ()
    allergy_groups: tuple[str, ...] = ()
    pregnancy_contraindicated: bool = False
    renal_contraindicated: bool = False
    hepatic_contraindicated: bool = False


@dataclass(frozen=True)
class AlternativeSuggestion:
    """Replace one drug of an interacting pair with one of ``replacements``."""

    replace: str
    replacements: tuple[str, ...]


@dataclass(frozen=True)
class InteractionPair:
    """An unordered pair of drugs (or drug classes) that must not be combined."""

    drug1: str
    drug2: str
    reason: str
    alternatives: tuple[AlternativeSuggestion, ...] = ()

    def replacement_drugs(self) -> list[str] | None:
        """Flatten the alternative suggestions, or None when there are none."""
        if not self.alternatives:
            return None
        return [drug for suggestion in self.alternatives for drug in suggestion.replacements]


@dataclass(frozen=True)
class DosageRange:
    """Standard adult single-dose range."""

    min_mg: float
    max_mg: float
    unit: str
    frequency: str
    max_daily_mg: float


@dataclass(frozen=True)
class PediatricDosingRule:
    """Weight-based single-dose ceiling for children."""

    mg_per_kg: float
    max_mg: float  # Never exceed the adult ceiling, whatever the weight

    def max_dose(self, weight_kg: float) -> float:
        """Compute the single-dose ceiling for a given body weight."""
        return min(weight_kg * self.mg_per_kg, self.max_mg)


# ============================================================================
# Contraindication Rules
# ============================================================================

# Keys are matched as fragments of the medication name, first in declaration
# order wins.
MEDICATION_CONTRAINDICATIONS: dict[str, ContraindicationRule] = {
    # NSAIDs
    "ibuprofen": ContraindicationRule(
        medication="ibuprofen",
        absolute_conditions=("active peptic ulcer", "severe renal disease", "severe heart failure"),
        relative_conditions=("chronic kidney disease", "asthma", "hypertension"),
        allergy_groups=("nsaids",),
        pregnancy_contraindicated=True,
        renal_contraindicated=True,
    ),
    "naproxen": ContraindicationRule(
        medication="naproxen",
        absolute_conditions=("active peptic ulcer", "severe renal disease", "severe heart failure"),
        relative_conditions=("chronic kidney disease", "asthma"),
        allergy_groups=("nsaids",),
        renal_contraindicated=True,
    ),
    # ACE inhibitors
    "lisinopril": ContraindicationRule(
        medication="lisinopril",
        absolute_conditions=("angioedema history",),
        relative_conditions=("hyperkalemia", "bilateral renal artery stenosis"),
        pregnancy_contraindicated=True,
    ),
    "enalapril": ContraindicationRule(
        medication="enalapril",
        absolute_conditions=("angioedema history",),
        relative_conditions=("hyperkalemia",),
        pregnancy_contraindicated=True,
    ),
    # Beta blockers
    "metoprolol": ContraindicationRule(
        medication="metoprolol",
        absolute_conditions=("uncontrolled asthma", "severe bradycardia", "cardiogenic shock"),
        relative_conditions=("asthma", "copd", "diabetes"),
    ),
    "propranolol": ContraindicationRule(
        medication="propranolol",
        absolute_conditions=("uncontrolled asthma", "bradycardia", "asthma"),
        relative_conditions=("diabetes", "peripheral arterial disease"),
    ),
    # Statins
    "atorvastatin": ContraindicationRule(
        medication="atorvastatin",
        relative_conditions=("liver disease", "muscle disorders"),
        allergy_groups=("statins",),
        pregnancy_contraindicated=True,
        hepatic_contraindicated=True,
    ),
    "simvastatin": ContraindicationRule(
        medication="simvastatin",
        relative_conditions=("liver disease", "myopathy"),
        allergy_groups=("statins",),
        pregnancy_contraindicated=True,
        hepatic_contraindicated=True,
    ),
    # Anticoagulants
    "warfarin": ContraindicationRule(
        medication="warfarin",
        absolute_conditions=("active bleeding", "thrombocytopenia"),
        relative_conditions=("peptic ulcer disease", "recent trauma"),
        pregnancy_contraindicated=True,
    ),
    # PPIs
    "omeprazole": ContraindicationRule(
        medication="omeprazole",
        relative_conditions=("prolonged use",),
    ),
    # Biguanides
    "metformin": ContraindicationRule(
        medication="metformin",
        absolute_conditions=("severe renal disease",),
        relative_conditions=("moderate chronic kidney disease", "heart failure"),
        renal_contraindicated=True,
        hepatic_contraindicated=True,
    ),
    # Fluoroquinolones
    "ciprofloxacin": ContraindicationRule(
        medication="ciprofloxacin",
        relative_conditions=("myasthenia gravis", "qt prolongation"),
        allergy_groups=("fluoroquinolones",),
    ),
    "levofloxacin": ContraindicationRule(
        medication="levofloxacin",
        relative_conditions=("myasthenia gravis", "qt prolongation"),
        allergy_groups=("fluoroquinolones",),
    ),
    # Antihistamines
    "diphenhydramine": ContraindicationRule(
        medication="diphenhydramine",
        relative_conditions=("glaucoma", "urinary retention", "benign prostatic hyperplasia"),
    ),
    # Salicylates
    "aspirin": ContraindicationRule(
        medication="aspirin",
        absolute_conditions=("active bleeding", "severe thrombocytopenia"),
        allergy_groups=("salicylates",),
        pregnancy_contraindicated=True,
    ),
    # Antibiotics
    "amoxicillin": ContraindicationRule(
        medication="amoxicillin",
        relative_conditions=("infectious mononucleosis",),
        allergy_groups=("penicillins", "beta-lactams"),
    ),
    "azithromycin": ContraindicationRule(
        medication="azithromycin",
        relative_conditions=("qt prolongation", "myasthenia gravis"),
    ),
    # Methylxanthines
    "theophylline": ContraindicationRule(
        medication="theophylline",
        relative_conditions=("cardiac arrhythmias", "uncontrolled hypertension"),
    ),
    # Opioids
    "morphine": ContraindicationRule(
        medication="morphine",
        absolute_conditions=("respiratory depression", "ileus"),
        relative_conditions=("copd", "sleep apnea", "liver disease"),
    ),
    # Analgesics
    "paracetamol": ContraindicationRule(
        medication="paracetamol",
        relative_conditions=("liver disease", "alcohol use disorder"),
        hepatic_contraindicated=True,
    ),
}


# ============================================================================
# Allergy Cross-Reactivity Groups
# ============================================================================

# Members are drug-name fragments or the names of other groups.
ALLERGY_GROUPS: dict[str, tuple[str, ...]] = {
    "penicillins": ("amoxicillin", "ampicillin", "penicillin v", "penicillin g", "piperacillin"),
    "cephalosporins": ("cephalexin", "ceftriaxone", "cefazolin", "cefepime"),
    "sulfonamides": ("sulfamethoxazole", "sulfadiazine", "sulfasalazine"),
    "nsaids": ("ibuprofen", "naproxen", "diclofenac", "meloxicam", "celecoxib"),
    "beta-lactams": ("penicillins", "cephalosporins", "carbapenems", "monobactams"),
    "fluoroquinolones": ("ciprofloxacin", "levofloxacin", "moxifloxacin"),
    "statins": ("atorvastatin", "simvastatin", "rosuvastatin", "pravastatin"),
    "ssris": ("fluoxetine", "sertraline", "paroxetine", "escitalopram", "citalopram"),
    "salicylates": ("aspirin", "bismuth subsalicylate"),
}


# ============================================================================
# Major Drug-Drug Interactions
# ============================================================================

MAJOR_DRUG_INTERACTIONS: tuple[InteractionPair, ...] = (
    InteractionPair(
        drug1="warfarin",
        drug2="aspirin",
        reason="Significantly increased bleeding risk",
        alternatives=(AlternativeSuggestion(replace="aspirin", replacements=("acetaminophen", "clopidogrel")),),
    ),
    InteractionPair(
        drug1="metformin",
        drug2="contrast dye",
        reason="Risk of lactic acidosis and acute renal failure",
    ),
    InteractionPair(
        drug1="ssri",
        drug2="maoi",
        reason="Serotonin syndrome - potentially fatal",
    ),
    InteractionPair(
        drug1="ciprofloxacin",
        drug2="tizanidine",
        reason="Severe increase in tizanidine levels (contraindicated)",
    ),
    InteractionPair(
        drug1="statin",
        drug2="fibrate",
        reason="Increased myopathy and rhabdomyolysis risk",
    ),
    InteractionPair(
        drug1="ace inhibitor",
        drug2="potassium sparing diuretic",
        reason="Risk of hyperkalemia",
    ),
)

# Class terms used in interaction pairs, resolved to member drugs.
# Members may name allergy groups, which are expanded.
DRUG_CLASS_MEMBERS: dict[str, tuple[str, ...]] = {
    "ssri": ("ssris",),
    "maoi": ("phenelzine", "tranylcypromine", "isocarboxazid", "selegiline"),
    "statin": ("statins",),
    "fibrate": ("gemfibrozil", "fenofibrate", "bezafibrate"),
    "ace inhibitor": ("lisinopril", "enalapril", "ramipril", "captopril", "perindopril"),
    "potassium sparing diuretic": ("spironolactone", "eplerenone", "amiloride", "triamterene"),
    "contrast dye": ("iodinated contrast", "iohexol", "iopamidol"),
}


# ============================================================================
# Brand Name Aliases
# ============================================================================

DRUG_ALIASES: dict[str, str] = {
    "advil": "ibuprofen",
    "motrin": "ibuprofen",
    "aleve": "naproxen",
    "naprosyn": "naproxen",
    "tylenol": "paracetamol",
    "acetaminophen": "paracetamol",
    "coumadin": "warfarin",
    "jantoven": "warfarin",
    "glucophage": "metformin",
    "lipitor": "atorvastatin",
    "zocor": "simvastatin",
    "zestril": "lisinopril",
    "prinivil": "lisinopril",
    "vasotec": "enalapril",
    "lopressor": "metoprolol",
    "toprol": "metoprolol",
    "inderal": "propranolol",
    "prilosec": "omeprazole",
    "cipro": "ciprofloxacin",
    "levaquin": "levofloxacin",
    "benadryl": "diphenhydramine",
    "amoxil": "amoxicillin",
    "zithromax": "azithromycin",
    "keflex": "cephalexin",
    "bactrim": "sulfamethoxazole",
    "norvasc": "amlodipine",
    "ecotrin": "aspirin",
    "zoloft": "sertraline",
    "prozac": "fluoxetine",
}


# ============================================================================
# Dosage Tables
# ============================================================================

COMMON_DOSAGE_RANGES: dict[str, DosageRange] = {
    "paracetamol": DosageRange(min_mg=250, max_mg=1000, unit="mg", frequency="4-6 hourly", max_daily_mg=4000),
    "ibuprofen": DosageRange(min_mg=200, max_mg=800, unit="mg", frequency="4-6 hourly", max_daily_mg=3200),
    "amoxicillin": DosageRange(min_mg=250, max_mg=500, unit="mg", frequency="8 hourly", max_daily_mg=1500),
    "metformin": DosageRange(min_mg=500, max_mg=1000, unit="mg", frequency="2-3 times daily", max_daily_mg=2500),
    "lisinopril": DosageRange(min_mg=5, max_mg=40, unit="mg", frequency="once daily", max_daily_mg=40),
    "atorvastatin": DosageRange(min_mg=10, max_mg=80, unit="mg", frequency="once daily", max_daily_mg=80),
    "omeprazole": DosageRange(min_mg=20, max_mg=40, unit="mg", frequency="once daily", max_daily_mg=40),
    "aspirin": DosageRange(min_mg=75, max_mg=325, unit="mg", frequency="once daily", max_daily_mg=325),
    "metoprolol": DosageRange(min_mg=25, max_mg=100, unit="mg", frequency="2-3 times daily", max_daily_mg=300),
    "amlodipine": DosageRange(min_mg=2.5, max_mg=10, unit="mg", frequency="once daily", max_daily_mg=10),
}

PEDIATRIC_DOSING_RULES: dict[str, PediatricDosingRule] = {
    "paracetamol": PediatricDosingRule(mg_per_kg=15, max_mg=1000),
    "ibuprofen": PediatricDosingRule(mg_per_kg=10, max_mg=400),
    "amoxicillin": PediatricDosingRule(mg_per_kg=25, max_mg=500),
}

# Percent of the normal dose allowed per renal function category.
# 0 means contraindicated.
RENAL_DOSAGE_ADJUSTMENTS: dict[str, dict[RenalFunction, int]] = {
    "metformin": {
        RenalFunction.NORMAL: 100,
        RenalFunction.MILD: 100,
        RenalFunction.MODERATE: 50,
        RenalFunction.SEVERE: 0,
        RenalFunction.ESRD: 0,
    },
    "lisinopril": {
        RenalFunction.NORMAL: 100,
        RenalFunction.MILD: 75,
        RenalFunction.MODERATE: 50,
        RenalFunction.SEVERE: 25,
        RenalFunction.ESRD: 10,
    },
    "atorvastatin": {
        RenalFunction.NORMAL: 100,
        RenalFunction.MILD: 100,
        RenalFunction.MODERATE: 100,
        RenalFunction.SEVERE: 50,
        RenalFunction.ESRD: 50,
    },
    "amoxicillin": {
        RenalFunction.NORMAL: 100,
        RenalFunction.MILD: 100,
        RenalFunction.MODERATE: 100,
        RenalFunction.SEVERE: 50,
        RenalFunction.ESRD: 50,
    },
}


# ============================================================================
# Pregnancy
# ============================================================================

PREGNANCY_CATEGORIES: dict[str, PregnancyCategory] = {
    "paracetamol": PregnancyCategory.A,
    "prenatal vitamins": PregnancyCategory.A,
    "amoxicillin": PregnancyCategory.B,
    "cephalexin": PregnancyCategory.B,
    "penicillin": PregnancyCategory.B,
    "metformin": PregnancyCategory.B,
    "omeprazole": PregnancyCategory.C,
    "ibuprofen": PregnancyCategory.D,
    "aspirin": PregnancyCategory.D,  # Third trimester
    "lisinopril": PregnancyCategory.D,
    "atorvastatin": PregnancyCategory.X,
}

PREGNANCY_ALTERNATIVES: dict[str, tuple[str, ...]] = {
    "ibuprofen": ("acetaminophen",),
    "aspirin": ("acetaminophen",),
    "atorvastatin": ("pravastatin", "rosuvastatin"),
    "lisinopril": ("labetalol", "nifedipine"),
}


# ============================================================================
# Knowledge Base
# ============================================================================


class KnowledgeBase:
    """Read-only lookup over the safety reference tables.

    Usage:
        kb = get_knowledge_base()
        rule = kb.find_rule("Ibuprofen 400mg")
        if rule and rule.pregnancy_contraindicated:
            ...
    """

    def __init__(
        self,
        contraindications: Mapping[str, ContraindicationRule] | None = None,
        allergy_groups: Mapping[str, tuple[str, ...]] | None = None,
        interactions: tuple[InteractionPair, ...] | None = None,
        drug_class_members: Mapping[str, tuple[str, ...]] | None = None,
        aliases: Mapping[str, str] | None = None,
        dosage_ranges: Mapping[str, DosageRange] | None = None,
        pediatric_rules: Mapping[str, PediatricDosingRule] | None = None,
        renal_adjustments: Mapping[str, Mapping[RenalFunction, int]] | None = None,
        pregnancy_categories: Mapping[str, PregnancyCategory] | None = None,
        pregnancy_alternatives: Mapping[str, tuple[str, ...]] | None = None,
    ) -> None:
        """Freeze the given tables, defaulting to the built-in ones."""
        self.contraindications = _freeze(contraindications, MEDICATION_CONTRAINDICATIONS)
        self.allergy_groups = _freeze(allergy_groups, ALLERGY_GROUPS)
        self.interactions = tuple(interactions if interactions is not None else MAJOR_DRUG_INTERACTIONS)
        self.drug_class_members = _freeze(drug_class_members, DRUG_CLASS_MEMBERS)
        self.aliases = _freeze(aliases, DRUG_ALIASES)
        self.dosage_ranges = _freeze(dosage_ranges, COMMON_DOSAGE_RANGES)
        self.pediatric_rules = _freeze(pediatric_rules, PEDIATRIC_DOSING_RULES)
        self.renal_adjustments = MappingProxyType(
            {
                normalize_text(name): MappingProxyType(dict(table))
                for name, table in (renal_adjustments if renal_adjustments is not None else RENAL_DOSAGE_ADJUSTMENTS).items()
            }
        )
        self.pregnancy_categories = _freeze(pregnancy_categories, PREGNANCY_CATEGORIES)
        self.pregnancy_alternatives = _freeze(pregnancy_alternatives, PREGNANCY_ALTERNATIVES)

        # Alias patterns, longest first so "toprol xl" style names win over prefixes
        self._alias_patterns = tuple(
            (re.compile(rf"\b{re.escape(alias)}\b"), generic)
            for alias, generic in sorted(self.aliases.items(), key=lambda item: -len(item[0]))
        )

    # ------------------------------------------------------------------
    # Name resolution
    # ------------------------------------------------------------------

    def canonical_name(self, medication: str) -> str:
        """Normalize a medication name, rewriting a brand name to its generic.

        Unknown names pass through normalized but otherwise unchanged.
        """
        normalized = normalize_text(medication)
        if normalized in self.aliases:
            return self.aliases[normalized]

        for pattern, generic in self._alias_patterns:
            if pattern.search(normalized):
                return pattern.sub(generic, normalized, count=1)
        return normalized

    def _first_match(self, table: Mapping[str, T], medication: str) -> T | None:
        canonical = self.canonical_name(medication)
        for key, value in table.items():
            if contains_fragment(canonical, key):
                return value
        return None

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_rule(self, medication: str) -> ContraindicationRule | None:
        """Get the contraindication rule for a medication.

        The first rule key, in declaration order, that occurs in the
        medication name wins. None means no known contraindication.
        """
        return self._first_match(self.contraindications, medication)

    def find_dosage_range(self, medication: str) -> DosageRange | None:
        """Get the adult dosage range for a medication."""
        return self._first_match(self.dosage_ranges, medication)

    def find_pediatric_rule(self, medication: str) -> PediatricDosingRule | None:
        """Get the pediatric weight-based dosing rule for a medication."""
        return self._first_match(self.pediatric_rules, medication)

    def find_renal_adjustment(self, medication: str) -> Mapping[RenalFunction, int] | None:
        """Get the renal dose percentages for a medication."""
        return self._first_match(self.renal_adjustments, medication)

    def find_pregnancy_category(self, medication: str) -> PregnancyCategory | None:
        """Get the pregnancy category for a medication."""
        return self._first_match(self.pregnancy_categories, medication)

    def find_pregnancy_alternatives(self, medication: str) -> tuple[str, ...]:
        """Get pregnancy-safe alternatives for a medication."""
        return self._first_match(self.pregnancy_alternatives, medication) or ()

    # ------------------------------------------------------------------
    # Allergy groups
    # ------------------------------------------------------------------

    def _walk_group(self, group: str) -> tuple[list[str], list[str]]:
        """Walk a group graph, returning (group names visited, leaf fragments)."""
        visited: set[str] = set()
        groups: list[str] = []
        leaves: list[str] = []

        def visit(name: str) -> None:
            key = normalize_text(name)
            if key in visited:
                return
            visited.add(key)

            children = self.allergy_groups.get(key)
            if children is None:
                leaves.append(key)
                return

            groups.append(key)
            for child in children:
                visit(child)

        visit(group)
        return groups, leaves

    def expand_allergy_group(self, group: str) -> tuple[str, ...]:
        """Expand a group into its drug-name fragments, following nested groups.

        Cyclic group references are visited once. An unknown group name
        expands to itself.
        """
        _, leaves = self._walk_group(group)
        return tuple(leaves)

    def allergy_group_terms(self, group: str) -> tuple[str, ...]:
        """Group names (the group and any nested groups) plus expanded members."""
        groups, leaves = self._walk_group(group)
        return tuple(groups + leaves)

    # ------------------------------------------------------------------
    # Interactions
    # ------------------------------------------------------------------

    def interaction_terms(self, term: str) -> tuple[str, ...]:
        """Resolve an interaction term to itself plus any class members."""
        key = normalize_text(term)
        terms = [key]
        for member in self.drug_class_members.get(key, ()):
            terms.extend(self.expand_allergy_group(member))
        return tuple(dict.fromkeys(terms))

    def drug_matches_term(self, drug: str, term: str) -> bool:
        """Check whether a drug name matches an interaction term or its class."""
        return matches(self.canonical_name(drug), self.interaction_terms(term))

    def find_interaction(self, drug_a: str, drug_b: str) -> InteractionPair | None:
        """Get the first interaction pair linking two drugs, in either direction."""
        for pair in self.interactions:
            forward = self.drug_matches_term(drug_a, pair.drug1) and self.drug_matches_term(drug_b, pair.drug2)
            backward = self.drug_matches_term(drug_a, pair.drug2) and self.drug_matches_term(drug_b, pair.drug1)
            if forward or backward:
                return pair
        return None

    def find_interactions(self, drug: str) -> list[InteractionPair]:
        """Get every interaction pair involving a drug on either side."""
        return [
            pair
            for pair in self.interactions
            if self.drug_matches_term(drug, pair.drug1) or self.drug_matches_term(drug, pair.drug2)
        ]

    def get_stats(self) -> dict[str, Any]:
        """Get statistics about the knowledge base."""
        return {
            "contraindication_rules": len(self.contraindications),
            "allergy_groups": len(self.allergy_groups),
            "interaction_pairs": len(self.interactions),
            "drug_classes": len(self.drug_class_members),
            "aliases": len(self.aliases),
            "dosage_ranges": len(self.dosage_ranges),
            "pediatric_rules": len(self.pediatric_rules),
            "renal_adjustments": len(self.renal_adjustments),
            "pregnancy_categories": len(self.pregnancy_categories),
        }


def _freeze(table: Mapping[str, T] | None, default: Mapping[str, T]) -> Mapping[str, T]:
    source = table if table is not None else default
    return MappingProxyType({normalize_text(key): value for key, value in source.items()})


# ============================================================================
# JSON Overlay Loading
# ============================================================================


# Shape checks for overlay tables
_STRING_LIST = TypeAdapter(list[str])
_STRING_LIST_TABLE = TypeAdapter(dict[str, list[str]])
_STRING_TABLE = TypeAdapter(dict[str, str])


def _strings(value: Any) -> tuple[str, ...]:
    return tuple(_STRING_LIST.validate_python(value))


def _rule_from_json(name: str, item: dict[str, Any]) -> ContraindicationRule:
    return ContraindicationRule(
        medication=normalize_text(name),
        absolute_conditions=_strings(item.get("absoluteConditions", [])),
        relative_conditions=_strings(item.get("relativeConditions", [])),
        allergy_groups=_strings(item.get("allergyGroups", [])),
        pregnancy_contraindicated=bool(item.get("pregnancyContraindicated", False)),
        renal_contraindicated=bool(item.get("renalContraindicated", False)),
        hepatic_contraindicated=bool(item.get("hepaticContraindicated", False)),
    )


def _interaction_from_json(item: dict[str, Any]) -> InteractionPair:
    return InteractionPair(
        drug1=normalize_text(item["drug1"]),
        drug2=normalize_text(item["drug2"]),
        reason=item["reason"],
        alternatives=tuple(
            AlternativeSuggestion(replace=alt["replace"], replacements=_strings(alt["with"]))
            for alt in item.get("alternatives", ())
        ),
    )


def _merge_overlay(data: dict[str, Any]) -> dict[str, Any]:
    """Merge overlay tables over copies of the built-in tables.

    Existing keys are replaced in place, new keys are appended after the
    built-in ones, and interaction pairs already present are skipped.

    Raises:
        pydantic.ValidationError: If a table has the wrong shape, for example
            a string where a list of names is expected.
    """
    contraindications = dict(MEDICATION_CONTRAINDICATIONS)
    for name, item in data.get("contraindications", {}).items():
        contraindications[normalize_text(name)] = _rule_from_json(name, item)

    allergy_groups = dict(ALLERGY_GROUPS)
    for name, members in _STRING_LIST_TABLE.validate_python(data.get("allergyGroups", {})).items():
        allergy_groups[normalize_text(name)] = tuple(members)

    interactions = list(MAJOR_DRUG_INTERACTIONS)
    seen_pairs = {frozenset((p.drug1, p.drug2)) for p in interactions}
    for item in data.get("interactions", []):
        pair = _interaction_from_json(item)
        key = frozenset((pair.drug1, pair.drug2))
        if key in seen_pairs:
            continue
        seen_pairs.add(key)
        interactions.append(pair)

    drug_class_members = dict(DRUG_CLASS_MEMBERS)
    for name, members in _STRING_LIST_TABLE.validate_python(data.get("drugClasses", {})).items():
        drug_class_members[normalize_text(name)] = tuple(members)

    aliases = dict(DRUG_ALIASES)
    overlay_aliases = _STRING_TABLE.validate_python(data.get("aliases", {}))
    aliases.update({normalize_text(k): normalize_text(v) for k, v in overlay_aliases.items()})

    dosage_ranges = dict(COMMON_DOSAGE_RANGES)
    for name, item in data.get("dosageRanges", {}).items():
        dosage_ranges[normalize_text(name)] = DosageRange(
            min_mg=float(item["min"]),
            max_mg=float(item["max"]),
            unit=item.get("unit", "mg"),
            frequency=item.get("frequency", ""),
            max_daily_mg=float(item["maxDaily"]),
        )

    pediatric_rules = dict(PEDIATRIC_DOSING_RULES)
    for name, item in data.get("pediatricRules", {}).items():
        pediatric_rules[normalize_text(name)] = PediatricDosingRule(
            mg_per_kg=float(item["mgPerKg"]),
            max_mg=float(item["maxMg"]),
        )

    renal_adjustments: dict[str, dict[RenalFunction, int]] = dict(RENAL_DOSAGE_ADJUSTMENTS)
    for name, item in data.get("renalAdjustments", {}).items():
        renal_adjustments[normalize_text(name)] = {RenalFunction(k): int(v) for k, v in item.items()}

    pregnancy_categories = dict(PREGNANCY_CATEGORIES)
    for name, category in data.get("pregnancyCategories", {}).items():
        pregnancy_categories[normalize_text(name)] = PregnancyCategory(category)

    pregnancy_alternatives = dict(PREGNANCY_ALTERNATIVES)
    for name, alternatives in _STRING_LIST_TABLE.validate_python(data.get("pregnancyAlternatives", {})).items():
        pregnancy_alternatives[normalize_text(name)] = tuple(alternatives)

    return {
        "contraindications": contraindications,
        "allergy_groups": allergy_groups,
        "interactions": tuple(interactions),
        "drug_class_members": drug_class_members,
        "aliases": aliases,
        "dosage_ranges": dosage_ranges,
        "pediatric_rules": pediatric_rules,
        "renal_adjustments": renal_adjustments,
        "pregnancy_categories": pregnancy_categories,
        "pregnancy_alternatives": pregnancy_alternatives,
    }


def load_knowledge_base(overlay_file: Path | None = None) -> KnowledgeBase:
    """Build the knowledge base, merging an optional JSON overlay.

    A missing or malformed overlay is logged and the built-in tables are
    used unchanged.
    """
    if overlay_file is None:
        kb = KnowledgeBase()
        logger.info(f"Loaded built-in knowledge base: {kb.get_stats()}")
        return kb

    if not overlay_file.exists():
        logger.warning(f"Knowledge base overlay file not found: {overlay_file}")
        return KnowledgeBase()

    try:
        with open(overlay_file, encoding="utf-8") as f:
            data = json.load(f)
        tables = _merge_overlay(data)
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
        logger.warning(f"Failed to load knowledge base overlay from {overlay_file}: {e}")
        return KnowledgeBase()

    kb = KnowledgeBase(**tables)
    logger.info(f"Loaded knowledge base with overlay {overlay_file}: {kb.get_stats()}")
    return kb


# ============================================================================
# Singleton
# ============================================================================

_knowledge_base: KnowledgeBase | None = None
_knowledge_base_lock = threading.Lock()


def get_knowledge_base() -> KnowledgeBase:
    """Get the process-wide knowledge base, building it on first use."""
    global _knowledge_base
    if _knowledge_base is None:
        with _knowledge_base_lock:
            if _knowledge_base is None:
                _knowledge_base = load_knowledge_base(settings.knowledge_base_file)
    return _knowledge_base


def reset_knowledge_base() -> None:
    """Reset the singleton instance (for testing)."""
    global _knowledge_base
    with _knowledge_base_lock:
        _knowledge_base = None
