"""
Tests for structural analysis: indices, subtotals, event model, traceability.
"""

from decimal import Decimal

from pam_audit.core.models import (
    BillItem,
    ContiguousWindowAttempt,
    EventModel,
    ExactAmountAttempt,
    Package,
    PrincipalAct,
    SubsetSumAttempt,
    Traceability,
    TraceStatus,
)
from pam_audit.modules.preprocessing import assign_item_ids
from pam_audit.modules.structure import (
    NO_ANCHOR_DISTANCE,
    anchor_distance,
    anchor_positions,
    assess_traceability,
    build_index,
    detect_subtotals,
    infer_event_model,
    infer_package_origin,
    summarize_trace,
)


def bill_items(*rows: tuple[str | None, str, int]) -> list[BillItem]:
    return assign_item_ids(
        [
            BillItem(position=position, section=section, description=description, total=Decimal(total))
            for position, (section, description, total) in enumerate(rows)
        ]
    )


class TestBillIndex:
    """Tests for the read-only bill index."""

    def test_indices(self) -> None:
        """Test amount, text and rank indices."""
        items = bill_items(
            ("FARMACIA", "Paracetamol 1 gr", 1000),
            ("FARMACIA", "KETOROLACO", 1000),
            ("OTROS", "PARACETAMOL 1 GR", 500),
        )
        index = build_index(items)

        assert [item.item_id for item in index.by_amount[1000]] == ["B0000", "B0001"]
        assert len(index.by_text["paracetamol 1 gr"]) == 2
        assert index.rank["B0002"] == 2

    def test_resolve_physical_order(self) -> None:
        """Test that resolved items come back in physical order."""
        index = build_index(bill_items((None, "A", 1), (None, "B", 2), (None, "C", 3)))
        assert [item.description for item in index.resolve(["B0002", "B0000"])] == ["A", "C"]


class TestSubtotals:
    """Tests for subtotal block detection."""

    def test_explicit_subtotal(self) -> None:
        """Test right-to-left running sum detection."""
        items = bill_items(
            ("FARMACIA", "PARACETAMOL", 1000),
            ("FARMACIA", "KETOROLACO", 2000),
            ("FARMACIA", "TOTAL FARMACIA", 3000),
            ("FARMACIA", "OMEPRAZOL", 500),
        )
        blocks = detect_subtotals(items)
        explicit = [block for block in blocks if not block.virtual]

        assert len(explicit) == 1
        assert explicit[0].block_id == "SUB-B0002"
        assert explicit[0].component_ids == ("B0000", "B0001")
        assert explicit[0].anchor_id == "B0002"
        assert explicit[0].total == 3000

    def test_virtual_section_block_excludes_anchor(self) -> None:
        """Test section blocks skip subtotal lines."""
        items = bill_items(
            ("FARMACIA", "PARACETAMOL", 1000),
            ("FARMACIA", "KETOROLACO", 2000),
            ("FARMACIA", "TOTAL FARMACIA", 3000),
            ("FARMACIA", "OMEPRAZOL", 500),
        )
        virtual = [block for block in detect_subtotals(items) if block.virtual]

        assert len(virtual) == 1
        assert virtual[0].block_id == "SEC-farmacia"
        assert virtual[0].component_ids == ("B0000", "B0001", "B0003")
        assert virtual[0].total == 3500

    def test_single_component_is_not_subtotal(self) -> None:
        """Test that a repeated amount is not a subtotal."""
        items = bill_items(("A", "X", 1000), ("B", "Y", 1000))
        assert detect_subtotals(items) == []


class TestEventModel:
    """Tests for event model inference."""

    def test_anesthesia_implies_operating_room(self) -> None:
        """Test operating-room package inferred from anesthesia drugs alone."""
        model = infer_event_model(bill_items(("FARMACIA", "PROPOFOL 200 MG AMPOLLA", 18500)))

        assert model.packages == [Package.OPERATING_ROOM]
        assert model.principal_act == PrincipalAct.MAJOR_SURGERY
        assert "anestésicos" in model.notes

    def test_ward_only(self) -> None:
        """Test ward package and general hospitalization."""
        model = infer_event_model(bill_items(("HOSPITALIZACION", "DIA CAMA INTEGRAL", 320000)))

        assert model.packages == [Package.WARD]
        assert model.principal_act == PrincipalAct.GENERAL_HOSPITALIZATION

    def test_empty_bill(self) -> None:
        """Test no packages without signals."""
        assert infer_event_model([]).packages == []

    def test_ward_signal_needs_whole_word(self) -> None:
        """Test a surname containing a ward keyword is not a ward signal."""
        items = bill_items(("CONSULTAS", "CONSULTA DR SALAZAR", 30000))

        assert infer_event_model(items).packages == []
        assert anchor_positions(items)[Package.WARD] == []


class TestAnchors:
    """Tests for structural anchors and package origin."""

    def test_anchor_distance(self) -> None:
        """Test distance to the nearest anchor."""
        items = bill_items(
            ("HOSPITALIZACION", "DIA CAMA", 1),
            ("X", "A", 1),
            ("PABELLON", "DERECHO DE PABELLON", 1),
        )
        anchors = anchor_positions(items)

        assert anchors[Package.WARD] == [0]
        assert anchors[Package.OPERATING_ROOM] == [2]
        assert anchor_distance(1, anchors) == 1
        assert anchor_distance(None, anchors) == NO_ANCHOR_DISTANCE

    def test_package_origin_geometry(self) -> None:
        """Test section geometry decides first."""
        items = bill_items(("PABELLON", "GASA ESTERIL", 1000))
        assert infer_package_origin(items, EventModel()) == Package.OPERATING_ROOM

    def test_package_origin_anesthesia(self) -> None:
        """Test anesthesia fingerprints point to the operating room."""
        items = bill_items(("FARMACIA", "FENTANYL 0,1 MG AMPOLLA", 9600))
        assert infer_package_origin(items, EventModel()) == Package.OPERATING_ROOM

    def test_package_origin_default(self) -> None:
        """Test ward is the default origin."""
        items = bill_items(("FARMACIA", "PARACETAMOL 1 GR FRASCO", 5817))
        model = EventModel(principal_act=PrincipalAct.GENERAL_HOSPITALIZATION, packages=[Package.WARD])
        assert infer_package_origin(items, model) == Package.WARD


class TestTraceability:
    """Tests for traceability grading."""

    def test_none(self) -> None:
        """Test all-failed attempts give no traceability."""
        attempts = [ExactAmountAttempt(status=TraceStatus.FAIL), SubsetSumAttempt(status=TraceStatus.FAIL)]
        traceability, _ = assess_traceability(attempts)

        assert traceability == Traceability.NONE
        assert summarize_trace(attempts, traceability) == TraceStatus.FAIL

    def test_weak(self) -> None:
        """Test numeric matches without anchor are weak."""
        attempts = [
            ExactAmountAttempt(status=TraceStatus.FAIL),
            SubsetSumAttempt(status=TraceStatus.PARTIAL, item_ids=["B0001"]),
        ]
        traceability, reason = assess_traceability(attempts)

        assert traceability == Traceability.WEAK
        assert "subset_sum" in reason
        assert summarize_trace(attempts, traceability) == TraceStatus.PARTIAL

    def test_strong(self) -> None:
        """Test any strong attempt gives strong traceability."""
        attempts = [
            ExactAmountAttempt(status=TraceStatus.FAIL),
            ContiguousWindowAttempt(status=TraceStatus.OK, strong=True, item_ids=["B0001", "B0002"]),
        ]
        traceability, reason = assess_traceability(attempts)

        assert traceability == Traceability.STRONG
        assert reason == "Bloque contiguo coherente"
        assert summarize_trace(attempts, traceability) == TraceStatus.OK

    def test_ambiguous_summary(self) -> None:
        """Test ambiguity is surfaced in the trace status."""
        attempts = [ExactAmountAttempt(status=TraceStatus.AMBIGUOUS, item_ids=["B0001"])]
        traceability, _ = assess_traceability(attempts)
        assert summarize_trace(attempts, traceability) == TraceStatus.AMBIGUOUS
