"""
Tests for the bounded subset-sum search and bundle scoring.
"""

from decimal import Decimal

import pytest

from pam_audit.core.config import ClassifierThresholds, SearchBudget
from pam_audit.core.models import AdjudicationLine, BillItem
from pam_audit.modules.preprocessing import assign_item_ids
from pam_audit.modules.structure import build_index
from pam_audit.modules.subset_search import LineProfile, find_subset, score_bundle, search_best_subset


def bill_items(*rows: tuple[str | None, str, int]) -> list[BillItem]:
    return assign_item_ids(
        [
            BillItem(position=position, section=section, description=description, total=Decimal(total))
            for position, (section, description, total) in enumerate(rows)
        ]
    )


@pytest.fixture
def budget() -> SearchBudget:
    return SearchBudget()


@pytest.fixture
def thresholds() -> ClassifierThresholds:
    return ClassifierThresholds()


class TestFindSubset:
    """Tests for find_subset."""

    def test_exact_sum(self, budget: SearchBudget) -> None:
        """Test the first subset in pool order is returned."""
        pool = bill_items((None, "A", 5), (None, "B", 3), (None, "C", 7), (None, "D", 2))
        found = find_subset(pool, 10, budget)

        assert found is not None
        assert [item.description for item in found] == ["B", "C"]

    def test_unreachable(self, budget: SearchBudget) -> None:
        """Test no subset for an unreachable target."""
        pool = bill_items((None, "A", 5), (None, "B", 3))
        assert find_subset(pool, 4, budget) is None

    def test_target_bounds(self, budget: SearchBudget) -> None:
        """Test non-positive and oversized targets are refused."""
        pool = bill_items((None, "A", 5))
        assert find_subset(pool, 0, budget) is None
        assert find_subset(pool, budget.max_target + 1, budget) is None

    def test_candidate_truncation(self) -> None:
        """Test the pool is truncated to max_candidates."""
        pool = bill_items((None, "A", 1), (None, "B", 1), (None, "C", 5))
        assert find_subset(pool, 5, SearchBudget(max_candidates=2)) is None
        assert find_subset(pool, 5, SearchBudget(max_candidates=3)) is not None


class TestLineProfile:
    """Tests for LineProfile."""

    def test_from_line(self) -> None:
        """Test hospitalization and medication detection."""
        hospital = LineProfile.from_line(AdjudicationLine(code="3000000", description="DIA CAMA"))
        medication = LineProfile.from_line(AdjudicationLine(code="9999999", description="Medicamentos"))

        assert hospital.is_hospitalization is True
        assert hospital.is_medication is False
        assert medication.is_medication is True


class TestScoreBundle:
    """Tests for bundle scoring."""

    def test_medication_bundle(self, thresholds: ClassifierThresholds) -> None:
        """Test contiguity, single section and drug purity rewards."""
        items = bill_items(("FARMACIA", "PARACETAMOL 1 GR FRASCO", 1000), ("FARMACIA", "KETOROLACO 30 MG AMPOLLA", 2000))
        rank = build_index(items).rank
        scored = score_bundle(items, rank, LineProfile(is_medication=True), thresholds)

        assert scored.score == 90

    def test_clinical_items_in_catch_all(self, thresholds: ClassifierThresholds) -> None:
        """Test clinical items are penalized in a generic bucket."""
        items = bill_items(("FARMACIA", "PARACETAMOL 1 GR FRASCO", 1000), ("FARMACIA", "KETOROLACO 30 MG AMPOLLA", 2000))
        rank = build_index(items).rank
        scored = score_bundle(items, rank, LineProfile(is_catch_all=True), thresholds)

        assert scored.score == 20

    def test_operating_room_on_hospitalization_line(self, thresholds: ClassifierThresholds) -> None:
        """Test operating-room sections are penalized on hospitalization lines."""
        items = bill_items(("PABELLON", "DERECHO DE PABELLON", 1000))
        rank = build_index(items).rank
        scored = score_bundle(items, rank, LineProfile(is_hospitalization=True), thresholds)

        assert scored.score == 20 + 50 - 80

    def test_oversized_bundle(self, thresholds: ClassifierThresholds) -> None:
        """Test bundles above the size limit lose points."""
        items = bill_items(*[("OTROS", f"ITEM {n}", 100) for n in range(10)])
        rank = build_index(items).rank
        scored = score_bundle(items, rank, LineProfile(), thresholds)

        assert scored.score == 20 + 50 - 10


class TestSearchBestSubset:
    """Tests for multi-ordering search."""

    def test_catch_all_prefers_non_clinical(self, budget: SearchBudget, thresholds: ClassifierThresholds) -> None:
        """Test the affinity ordering finds the non-clinical bundle."""
        items = bill_items(
            ("FARMACIA", "CEFTRIAXONA 1 GR VIAL", 5000),
            ("OTROS", "SET DE ASEO PERSONAL", 3000),
            ("FARMACIA", "OMEPRAZOL 40 MG VIAL", 3000),
            ("OTROS", "CARGO ADMINISTRATIVO", 2000),
        )
        rank = build_index(items).rank
        match = search_best_subset(items, 5000, rank, LineProfile(is_catch_all=True), budget, thresholds)

        assert match is not None
        assert match.ordering == "affinity"
        assert [item.item_id for item in match.items] == ["B0001", "B0003"]
        assert match.score.score == 80
        assert len(match.candidates) == 2
        assert match.candidates[0].score == 80

    def test_no_match(self, budget: SearchBudget, thresholds: ClassifierThresholds) -> None:
        """Test None when no ordering reaches the target."""
        items = bill_items(("OTROS", "A", 3000))
        rank = build_index(items).rank
        assert search_best_subset(items, 5000, rank, LineProfile(), budget, thresholds) is None
