"""Tests for the safety knowledge base."""

import json
import logging
from types import MappingProxyType

import pytest

from medsafety.schemas.base import PregnancyCategory, RenalFunction
from medsafety.schemas.medication import Allergy
from medsafety.services.contraindications import check_allergy_contraindications
from medsafety.services.knowledge_base import (
    ALLERGY_GROUPS,
    MAJOR_DRUG_INTERACTIONS,
    MEDICATION_CONTRAINDICATIONS,
    KnowledgeBase,
    get_knowledge_base,
    load_knowledge_base,
    reset_knowledge_base,
)


# ============================================================================
# Built-in tables
# ============================================================================


class TestBuiltInTables:
    """Test the built-in reference tables."""

    def test_core_medications_present(self):
        """Test that core medications have rules."""
        for med in ["ibuprofen", "warfarin", "metformin", "lisinopril", "amoxicillin", "aspirin"]:
            assert med in MEDICATION_CONTRAINDICATIONS

    def test_rule_keys_match_medication(self):
        """Test that each rule is keyed by its own medication."""
        for key, rule in MEDICATION_CONTRAINDICATIONS.items():
            assert rule.medication == key

    def test_warfarin_aspirin_pair(self):
        """Test the warfarin/aspirin pair carries replacements."""
        pair = next(p for p in MAJOR_DRUG_INTERACTIONS if p.drug1 == "warfarin")
        assert pair.drug2 == "aspirin"
        assert "acetaminophen" in pair.replacement_drugs()

    def test_pair_without_alternatives(self):
        """Test that pairs without alternatives report None."""
        pair = next(p for p in MAJOR_DRUG_INTERACTIONS if p.drug1 == "ssri")
        assert pair.replacement_drugs() is None

    def test_tables_are_read_only(self, kb):
        """Test that the knowledge base tables cannot be mutated."""
        assert isinstance(kb.contraindications, MappingProxyType)
        with pytest.raises(TypeError):
            kb.contraindications["newdrug"] = kb.contraindications["ibuprofen"]


# ============================================================================
# Name resolution
# ============================================================================


class TestCanonicalName:
    """Test brand-name canonicalization."""

    def test_whole_brand_name(self, kb):
        """Test a bare brand name."""
        assert kb.canonical_name("Coumadin") == "warfarin"
        assert kb.canonical_name("ADVIL") == "ibuprofen"

    def test_brand_inside_free_text(self, kb):
        """Test a brand name followed by a strength."""
        assert kb.canonical_name("Advil 200mg") == "ibuprofen 200mg"
        assert kb.canonical_name("  Toprol   XL ") == "metoprolol xl"

    def test_acetaminophen_is_paracetamol(self, kb):
        """Test the US generic name resolves to paracetamol."""
        assert kb.canonical_name("Acetaminophen 500mg") == "paracetamol 500mg"
        assert kb.canonical_name("Tylenol") == "paracetamol"

    def test_alias_needs_word_boundary(self, kb):
        """Test that an alias inside a longer word is left alone."""
        assert kb.canonical_name("Ciprofloxacin") == "ciprofloxacin"

    def test_unknown_name_passes_through(self, kb):
        """Test unknown names are only normalized."""
        assert kb.canonical_name("  Xyzzy  Forte ") == "xyzzy forte"


# ============================================================================
# Lookups
# ============================================================================


class TestLookups:
    """Test rule and reference table lookups."""

    def test_find_rule_by_fragment(self, kb):
        """Test that a rule key inside the name is found."""
        rule = kb.find_rule("Ibuprofen 400mg tablets")
        assert rule is not None
        assert rule.medication == "ibuprofen"

    def test_find_rule_brand(self, kb):
        """Test rule lookup through a brand name."""
        rule = kb.find_rule("Lipitor")
        assert rule is not None
        assert rule.medication == "atorvastatin"

    def test_find_rule_first_declared_wins(self, kb):
        """Test that the first key in declaration order wins."""
        rule = kb.find_rule("ibuprofen and naproxen")
        assert rule.medication == "ibuprofen"

    def test_find_rule_lookup_is_one_directional(self, kb):
        """Test that a short name does not pick up a longer rule key."""
        assert kb.find_rule("ibu") is None

    def test_find_rule_unknown(self, kb):
        """Test unknown medication."""
        assert kb.find_rule("xyzzy") is None

    def test_find_dosage_range(self, kb):
        """Test adult range lookup."""
        dose_range = kb.find_dosage_range("amlodipine")
        assert dose_range.min_mg == 2.5
        assert dose_range.max_mg == 10

    def test_find_pediatric_rule(self, kb):
        """Test pediatric rule lookup and its capped ceiling."""
        rule = kb.find_pediatric_rule("ibuprofen")
        assert rule.max_dose(10) == 100
        assert rule.max_dose(60) == 400

    def test_find_renal_adjustment(self, kb):
        """Test renal percentage lookup."""
        table = kb.find_renal_adjustment("lisinopril")
        assert table[RenalFunction.ESRD] == 10
        assert kb.find_renal_adjustment("amlodipine") is None

    def test_find_pregnancy_category(self, kb):
        """Test pregnancy category lookup."""
        assert kb.find_pregnancy_category("atorvastatin") == PregnancyCategory.X
        assert kb.find_pregnancy_category("Tylenol") == PregnancyCategory.A
        assert kb.find_pregnancy_category("xyzzy") is None

    def test_find_pregnancy_alternatives(self, kb):
        """Test pregnancy alternatives lookup."""
        assert kb.find_pregnancy_alternatives("ibuprofen") == ("acetaminophen",)
        assert kb.find_pregnancy_alternatives("metformin") == ()


# ============================================================================
# Allergy groups
# ============================================================================


class TestAllergyGroups:
    """Test allergy group expansion."""

    def test_flat_group(self, kb):
        """Test expanding a group with only drug members."""
        assert kb.expand_allergy_group("penicillins") == ALLERGY_GROUPS["penicillins"]

    def test_nested_group(self, kb):
        """Test that nested groups expand to their members."""
        members = kb.expand_allergy_group("beta-lactams")
        assert "amoxicillin" in members
        assert "cephalexin" in members
        assert "carbapenems" in members
        assert "penicillins" not in members

    def test_group_terms_include_group_names(self, kb):
        """Test that group terms list the visited group names."""
        terms = kb.allergy_group_terms("beta-lactams")
        assert terms[0] == "beta-lactams"
        assert "penicillins" in terms
        assert "amoxicillin" in terms

    def test_unknown_group_expands_to_itself(self, kb):
        """Test that an unknown name is treated as a single drug."""
        assert kb.expand_allergy_group("Xyzzy") == ("xyzzy",)

    def test_cyclic_groups_terminate(self):
        """Test that mutually nested groups are visited once."""
        kb = KnowledgeBase(allergy_groups={"a": ("b", "drug-a"), "b": ("a", "drug-b")})
        assert set(kb.expand_allergy_group("a")) == {"drug-a", "drug-b"}
        assert set(kb.expand_allergy_group("b")) == {"drug-a", "drug-b"}

    def test_self_referencing_group(self):
        """Test a group that names itself."""
        kb = KnowledgeBase(allergy_groups={"loop": ("loop",)})
        assert kb.expand_allergy_group("loop") == ()
        assert kb.allergy_group_terms("loop") == ("loop",)


# ============================================================================
# Interactions
# ============================================================================


class TestInteractionLookup:
    """Test drug-drug interaction lookup."""

    def test_either_direction(self, kb):
        """Test that pair order does not matter."""
        forward = kb.find_interaction("warfarin", "aspirin")
        backward = kb.find_interaction("aspirin", "warfarin")
        assert forward is not None
        assert forward is backward

    def test_class_terms(self, kb):
        """Test that class terms resolve to member drugs."""
        pair = kb.find_interaction("sertraline", "phenelzine")
        assert pair is not None
        assert "Serotonin" in pair.reason

    def test_class_terms_with_brand(self, kb):
        """Test class matching after brand canonicalization."""
        pair = kb.find_interaction("Lipitor", "gemfibrozil")
        assert pair is not None
        assert "rhabdomyolysis" in pair.reason

    def test_interaction_terms(self, kb):
        """Test interaction term resolution."""
        terms = kb.interaction_terms("ace inhibitor")
        assert terms[0] == "ace inhibitor"
        assert "lisinopril" in terms
        assert kb.interaction_terms("warfarin") == ("warfarin",)

    def test_no_interaction(self, kb):
        """Test drugs with no listed interaction."""
        assert kb.find_interaction("amoxicillin", "omeprazole") is None

    def test_find_interactions_for_drug(self, kb):
        """Test listing every pair involving a drug."""
        pairs = kb.find_interactions("aspirin")
        assert len(pairs) == 1
        assert pairs[0].drug1 == "warfarin"
        assert kb.find_interactions("xyzzy") == []


# ============================================================================
# Overlay loading
# ============================================================================


class TestOverlayLoading:
    """Test merging a JSON overlay over the built-in tables."""

    def _write(self, path, data):
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    def test_no_overlay(self):
        """Test that no overlay gives the built-in tables."""
        kb = load_knowledge_base(None)
        assert kb.get_stats() == KnowledgeBase().get_stats()

    def test_overlay_adds_entries(self, tmp_path):
        """Test that overlay entries are added next to built-in ones."""
        overlay = self._write(
            tmp_path / "kb.json",
            {
                "contraindications": {
                    "clozapine": {"absoluteConditions": ["agranulocytosis"], "pregnancyContraindicated": False}
                },
                "interactions": [
                    {
                        "drug1": "clozapine",
                        "drug2": "carbamazepine",
                        "reason": "Additive agranulocytosis risk",
                        "alternatives": [{"replace": "carbamazepine", "with": ["valproate"]}],
                    }
                ],
                "aliases": {"Clozaril": "clozapine"},
                "dosageRanges": {"clozapine": {"min": 12.5, "max": 450, "maxDaily": 900}},
                "renalAdjustments": {"clozapine": {"severe": 50}},
                "pregnancyCategories": {"clozapine": "B"},
            },
        )

        kb = load_knowledge_base(overlay)

        assert kb.find_rule("Clozaril").absolute_conditions == ("agranulocytosis",)
        pair = kb.find_interaction("carbamazepine", "clozapine")
        assert pair.replacement_drugs() == ["valproate"]
        assert kb.find_dosage_range("clozapine").max_daily_mg == 900
        assert kb.find_renal_adjustment("clozapine")[RenalFunction.SEVERE] == 50
        assert kb.find_pregnancy_category("clozapine") == PregnancyCategory.B
        # Built-in data is still there
        assert kb.find_rule("ibuprofen") is not None
        assert kb.find_interaction("warfarin", "aspirin") is not None

    def test_overlay_skips_duplicate_pairs(self, tmp_path):
        """Test that a pair already present is not added twice."""
        overlay = self._write(
            tmp_path / "kb.json",
            {"interactions": [{"drug1": "Aspirin", "drug2": "Warfarin", "reason": "duplicate"}]},
        )
        kb = load_knowledge_base(overlay)
        assert len(kb.interactions) == len(MAJOR_DRUG_INTERACTIONS)

    def test_missing_overlay_falls_back(self, tmp_path, caplog):
        """Test that a missing file is logged and ignored."""
        with caplog.at_level(logging.WARNING):
            kb = load_knowledge_base(tmp_path / "missing.json")
        assert kb.get_stats() == KnowledgeBase().get_stats()
        assert "not found" in caplog.text

    def test_malformed_overlay_falls_back(self, tmp_path, caplog):
        """Test that invalid JSON is logged and ignored."""
        overlay = tmp_path / "bad.json"
        overlay.write_text("{not json", encoding="utf-8")
        with caplog.at_level(logging.WARNING):
            kb = load_knowledge_base(overlay)
        assert kb.find_rule("ibuprofen") is not None
        assert "Failed to load" in caplog.text

    def test_overlay_group_members_list(self, tmp_path):
        """Test a new allergy group given as a list of names."""
        overlay = self._write(
            tmp_path / "kb.json",
            {"allergyGroups": {"macrolides": ["azithromycin", "clarithromycin"]}},
        )
        kb = load_knowledge_base(overlay)
        assert kb.expand_allergy_group("macrolides") == ("azithromycin", "clarithromycin")

    @pytest.mark.parametrize(
        "data",
        [
            {"allergyGroups": {"macrolides": "azithromycin"}},
            {"drugClasses": {"macrolide": "azithromycin"}},
            {"pregnancyAlternatives": {"warfarin": "heparin"}},
            {"aliases": {"zmax": ["azithromycin"]}},
            {"contraindications": {"clozapine": {"absoluteConditions": "agranulocytosis"}}},
        ],
    )
    def test_string_instead_of_list_falls_back(self, tmp_path, caplog, data):
        """Test a wrongly shaped table is rejected instead of split into letters."""
        overlay = self._write(tmp_path / "kb.json", data)

        with caplog.at_level(logging.WARNING):
            kb = load_knowledge_base(overlay)

        assert "Failed to load" in caplog.text
        assert kb.get_stats() == KnowledgeBase().get_stats()
        assert "macrolides" not in kb.allergy_groups

    def test_rejected_group_does_not_flag_unrelated_drugs(self, tmp_path):
        """Test unrelated drugs stay clear after a malformed group overlay."""
        overlay = self._write(tmp_path / "kb.json", {"allergyGroups": {"macrolides": "azithromycin"}})
        kb = load_knowledge_base(overlay)
        assert check_allergy_contraindications("omeprazole", [Allergy(name="latex")], kb) is None

    def test_overlay_with_missing_field_falls_back(self, tmp_path):
        """Test that an interaction without a reason is rejected."""
        overlay = self._write(tmp_path / "kb.json", {"interactions": [{"drug1": "xylodrug", "drug2": "zentrix"}]})
        kb = load_knowledge_base(overlay)
        assert kb.find_interaction("xylodrug", "zentrix") is None


# ============================================================================
# Singleton and stats
# ============================================================================


class TestSingleton:
    """Test the process-wide knowledge base."""

    def setup_method(self):
        """Reset singleton before each test."""
        reset_knowledge_base()

    def test_singleton(self):
        """Test that the same instance is returned."""
        assert get_knowledge_base() is get_knowledge_base()

    def test_reset(self):
        """Test that reset builds a new instance."""
        first = get_knowledge_base()
        reset_knowledge_base()
        assert get_knowledge_base() is not first

    def test_stats(self):
        """Test statistics."""
        stats = get_knowledge_base().get_stats()
        assert stats["contraindication_rules"] == len(MEDICATION_CONTRAINDICATIONS)
        assert stats["interaction_pairs"] == len(MAJOR_DRUG_INTERACTIONS)
        assert stats["allergy_groups"] == len(ALLERGY_GROUPS)
        assert stats["aliases"] > 0
