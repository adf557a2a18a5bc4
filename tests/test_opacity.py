"""
Tests for the opacity index (IOP).
"""

from decimal import Decimal

import pytest

from pam_audit.core.config import AuditConfig
from pam_audit.core.models import (
    AdjudicationLine,
    AuditRow,
    Bill,
    BillItem,
    ContractCheck,
    ContractState,
    CoverageDomain,
    LineTrace,
    OpacityScore,
    TotalOpacity,
    Traceability,
    TraceStatus,
)
from pam_audit.modules.matching import ConsumptionState, LineResolution, MatchingEngine
from pam_audit.modules.opacity import OpacityScorer
from pam_audit.modules.preprocessing import prepare_bill


def resolve(rows: list[tuple[str, str, int]], code: str, description: str, total: int, paid: int, copay: int) -> LineResolution:
    items = prepare_bill(
        Bill(
            items=[
                BillItem(position=position, section=section, description=desc, total=Decimal(amount))
                for position, (section, desc, amount) in enumerate(rows)
            ]
        )
    )
    line = AdjudicationLine(
        line_id="L1",
        code=code,
        description=description,
        total_value=Decimal(total),
        paid=Decimal(paid),
        copay=Decimal(copay),
    )
    resolution, _ = MatchingEngine(AuditConfig()).resolve_line(line, ConsumptionState(arena=tuple(items)), 1)
    return resolution


def opacity_row(line_id: str, score: int, applies: bool) -> AuditRow:
    return AuditRow(
        line_id=line_id,
        code="3201001",
        description="GASTOS NO CUBIERTOS",
        total_value=Decimal("1000"),
        paid=Decimal("0"),
        copay=Decimal("1000"),
        resolution_pass=2,
        trace=LineTrace(status=TraceStatus.FAIL, traceability=Traceability.NONE, traceability_reason="Sin ancla"),
        contract=ContractCheck(state=ContractState.NOT_VERIFIABLE_BY_CONTRACT, domain=CoverageDomain.OTHER),
        finding=TotalOpacity(economic_impact=Decimal("1000")),
        opacity=OpacityScore(applies=applies, score=score, evaluated=True),
    )


@pytest.fixture
def scorer() -> OpacityScorer:
    return OpacityScorer()


class TestOpacityScorer:
    """Tests for OpacityScorer."""

    def test_untraced_catch_all(self, scorer: OpacityScorer) -> None:
        """Test every opacity signal on an untraced uncovered line."""
        opacity = scorer.score(resolve([], "3201001", "GASTOS NO CUBIERTOS", 50000, 0, 50000))

        assert opacity.score == 75
        assert opacity.applies is True
        assert [point.points for point in opacity.breakdown] == [25, 20, 15, 15]
        assert opacity.breakdown[0].label == "Agrupador sin desglose"

    def test_weak_breakdown(self, scorer: OpacityScorer) -> None:
        """Test a generic line with only a numeric coincidence."""
        rows = [("OTROS", "ESTACIONAMIENTO", 5000), ("OTROS", "TELEVISION", 5000)]
        resolution = resolve(rows, "9999999", "INSUMOS VARIOS", 5000, 0, 5000)
        opacity = scorer.score(resolution)

        assert resolution.trace.traceability == Traceability.WEAK
        assert opacity.breakdown[0].label == "Agrupador con desglose numérico débil"
        assert opacity.score == 60

    def test_strong_generic_line(self, scorer: OpacityScorer) -> None:
        """Test a strong breakdown removes the grouping points."""
        rows = [
            ("FARMACIA", "PARACETAMOL 1 GR FRASCO", 5000),
            ("FARMACIA", "KETOROLACO 30 MG AMPOLLA", 7990),
        ]
        opacity = scorer.score(resolve(rows, "3101001", "MEDICAMENTOS", 12990, 0, 12990))

        assert opacity.score == 15
        assert opacity.applies is False
        assert opacity.evaluated is True

    def test_specific_line(self, scorer: OpacityScorer) -> None:
        """Test an anchored specific line scores zero."""
        rows = [("PABELLON", "DERECHO DE PABELLON", 450000)]
        opacity = scorer.score(resolve(rows, "1100000", "DERECHO DE PABELLON", 450000, 405000, 45000))

        assert opacity.score == 0
        assert opacity.breakdown == []

    def test_fully_paid_line_not_evaluated(self, scorer: OpacityScorer) -> None:
        """Test lines without copay are skipped."""
        opacity = scorer.score(resolve([], "3201001", "GASTOS NO CUBIERTOS", 1000, 1000, 0))

        assert opacity.evaluated is False
        assert opacity.score == 0

    def test_configurable_threshold(self) -> None:
        """Test the threshold comes from configuration."""
        scorer = OpacityScorer(AuditConfig(opacity_threshold=80))
        opacity = scorer.score(resolve([], "3201001", "GASTOS NO CUBIERTOS", 50000, 0, 50000))

        assert opacity.score == 75
        assert opacity.applies is False


class TestGlobalOpacity:
    """Tests for the audit-wide opacity flag."""

    def test_max_of_flagged_rows(self, scorer: OpacityScorer) -> None:
        """Test the maximum is taken over rows above the threshold only."""
        rows = [opacity_row("A", 45, True), opacity_row("B", 35, False), opacity_row("C", 75, True)]
        result = scorer.global_opacity(rows)

        assert result.applies is True
        assert result.max_score == 75

    def test_nothing_opaque(self, scorer: OpacityScorer) -> None:
        """Test no flagged rows."""
        result = scorer.global_opacity([opacity_row("A", 35, False)])

        assert result.applies is False
        assert result.max_score == 0
