"""
Tests for core data models.
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from pam_audit.core.models import (
    AdjudicationLine,
    AuditResult,
    AuditRow,
    BillItem,
    ContractCheck,
    ContractRule,
    ContractState,
    Correct,
    CoverageDomain,
    FindingLevel,
    LineTrace,
    NonBillableAct,
    OpacityScore,
    Traceability,
    TraceStatus,
)
from pam_audit.utils.money import amount_key, format_clp
from pam_audit.utils.text import contains_word, normalize, tokens


def make_row(finding, opacity: OpacityScore | None = None) -> AuditRow:
    return AuditRow(
        line_id="F1-1",
        code="3201001",
        description="GASTOS NO CUBIERTOS",
        total_value=Decimal("10000"),
        paid=Decimal("0"),
        copay=Decimal("10000"),
        resolution_pass=2,
        trace=LineTrace(status=TraceStatus.FAIL, traceability=Traceability.NONE, traceability_reason="Sin ancla"),
        contract=ContractCheck(state=ContractState.NOT_VERIFIABLE_BY_CONTRACT, domain=CoverageDomain.OTHER),
        finding=finding,
        opacity=opacity or OpacityScore(),
    )


class TestBillItem:
    """Tests for BillItem model."""

    def test_total_calculation(self) -> None:
        """Test automatic total calculation."""
        item = BillItem(description="PARACETAMOL", quantity=2, unit_price=Decimal("1500"))
        assert item.total == Decimal("3000")

    def test_explicit_total(self) -> None:
        """Test explicit total override."""
        item = BillItem(description="PARACETAMOL", quantity=2, unit_price=Decimal("1500"), total=Decimal("2900"))
        assert item.total == Decimal("2900")

    def test_amount_rounds_half_up(self) -> None:
        """Test whole-peso amount key."""
        item = BillItem(description="X", total=Decimal("1234.5"))
        assert item.amount == 1235

    def test_negative_position_rejected(self) -> None:
        """Test that physical positions cannot be negative."""
        with pytest.raises(ValidationError):
            BillItem(description="X", total=Decimal("1"), position=-1)


class TestAdjudicationLine:
    """Tests for AdjudicationLine model."""

    def test_is_zero(self) -> None:
        """Test detection of all-zero lines."""
        assert AdjudicationLine(code="3101001").is_zero is True
        assert AdjudicationLine(code="3101001", copay=Decimal("10")).is_zero is False


class TestContractRule:
    """Tests for ContractRule model."""

    def test_coverage_bounds(self) -> None:
        """Test coverage percentage must stay within 0-100."""
        with pytest.raises(ValidationError):
            ContractRule(rule_id="R1", domain=CoverageDomain.HOSPITALIZATION, coverage_pct=Decimal("120"))

    def test_unknown_coverage_allowed(self) -> None:
        """Test that coverage can be left undetermined."""
        rule = ContractRule(rule_id="R1", domain=CoverageDomain.HOSPITALIZATION)
        assert rule.coverage_pct is None


class TestAuditRow:
    """Tests for AuditRow model."""

    def test_flagged_by_finding(self) -> None:
        """Test that a non-correct finding flags the row."""
        row = make_row(NonBillableAct(trigger="zero_payment", economic_impact=Decimal("10000")))
        assert row.flagged is True

    def test_flagged_by_opacity(self) -> None:
        """Test that opacity flags an otherwise correct row."""
        assert make_row(Correct()).flagged is False
        assert make_row(Correct(), OpacityScore(applies=True, score=55, evaluated=True)).flagged is True

    def test_finding_discriminator_serialized(self) -> None:
        """Test that the finding variant is tagged in JSON output."""
        row = make_row(NonBillableAct(trigger="nursing_keyword"))
        dumped = row.model_dump(mode="json")

        assert dumped["finding"]["kind"] == "non_billable_act"
        assert dumped["finding"]["motor"] == "M1"
        assert dumped["finding"]["level"] == FindingLevel.NON_BILLABLE.value

    def test_rows_are_immutable(self) -> None:
        """Test that audit rows cannot be modified after creation."""
        row = make_row(Correct())
        with pytest.raises(ValidationError):
            row.copay = Decimal("0")


class TestAuditResult:
    """Tests for AuditResult model."""

    def test_error_result(self) -> None:
        """Test the structured error result."""
        result = AuditResult.error_result("Sin líneas")

        assert result.ok is False
        assert result.error == "Sin líneas"
        assert result.rows == []
        assert result.report_text.startswith("ERROR DE INTEGRIDAD")

    def test_default_result_ok(self) -> None:
        """Test that a default result carries no error."""
        assert AuditResult().ok is True


class TestTextAndMoney:
    """Tests for normalization and peso helpers."""

    def test_normalize(self) -> None:
        """Test accents, case and punctuation are removed."""
        assert normalize("Día Cama, Sala") == "dia cama sala"
        assert normalize(None) == ""

    def test_tokens(self) -> None:
        """Test significant tokens skip short words and numbers."""
        assert tokens("Día cama integral 70%") == {"cama", "integral"}

    def test_amount_key(self) -> None:
        """Test peso rounding."""
        assert amount_key(Decimal("10.5")) == 11
        assert amount_key(None) == 0

    def test_format_clp(self) -> None:
        """Test Chilean peso formatting."""
        assert format_clp(Decimal("1234567")) == "$1.234.567"
        assert format_clp(-500) == "-$500"

    def test_contains_word(self) -> None:
        """Test keywords match whole words, plurals included, never inside longer words."""
        assert contains_word("dia cama sala comun", ("sala",)) is True
        assert contains_word("consulta dr salazar", ("sala",)) is False
        assert contains_word("curaciones simples", ("curacion",)) is True
        assert contains_word("dia cama integral", ("dia cama",)) is True
