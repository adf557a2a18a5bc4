"""
Tests for contract evaluation.
"""

from decimal import Decimal

import pytest

from pam_audit.core.config import UF_FALLBACK_CLP, AuditConfig
from pam_audit.core.models import (
    AdjudicationLine,
    Cap,
    CapKind,
    CapState,
    Contract,
    ContractRule,
    ContractState,
    CoverageDomain,
    RuleMatch,
)
from pam_audit.modules.contract import ContractEvaluator


def hospital_line(total: int, paid: int, copay: int, description: str = "DIA CAMA") -> AdjudicationLine:
    return AdjudicationLine(
        line_id="L1",
        code="3000000",
        description=description,
        total_value=Decimal(total),
        paid=Decimal(paid),
        copay=Decimal(copay),
    )


def contract_with(*rules: ContractRule) -> Contract:
    return Contract(rules=list(rules))


@pytest.fixture
def hospital_70() -> ContractRule:
    return ContractRule(
        rule_id="HOSP-70",
        domain=CoverageDomain.HOSPITALIZATION,
        coverage_pct=Decimal("70"),
        source_text="Día cama 70%",
    )


class TestToleranceBand:
    """Tests for the expected-copay tolerance."""

    def test_within_tolerance(self, hospital_70: ContractRule) -> None:
        """Test a delta equal to the 500 floor is accepted."""
        check = ContractEvaluator(contract_with(hospital_70)).evaluate(hospital_line(100000, 69500, 30500))

        assert check.state == ContractState.VERIFIABLE_OK
        assert check.expected_copay == Decimal("30000")
        assert check.copay_delta == Decimal("500")
        assert check.tolerance == Decimal("500")
        assert check.matched_by == RuleMatch.DIRECT

    def test_above_tolerance(self, hospital_70: ContractRule) -> None:
        """Test one peso above the band is under-coverage."""
        check = ContractEvaluator(contract_with(hospital_70)).evaluate(hospital_line(100000, 69499, 30501))

        assert check.state == ContractState.UNDER_COVERED
        assert check.shortfall == Decimal("501")

    def test_percentage_tolerance_on_large_lines(self, hospital_70: ContractRule) -> None:
        """Test the 0.1% band takes over on large amounts."""
        check = ContractEvaluator(contract_with(hospital_70)).evaluate(hospital_line(2000000, 1598000, 602000))

        assert check.tolerance == Decimal("2000")
        assert check.state == ContractState.VERIFIABLE_OK


class TestCaps:
    """Tests for cap conversion and cap states."""

    def test_cap_exceeded(self) -> None:
        """Test coverage cut by a peso cap."""
        rule = ContractRule(
            rule_id="HOSP-CAP",
            domain=CoverageDomain.HOSPITALIZATION,
            coverage_pct=Decimal("70"),
            cap=Cap(kind=CapKind.CLP, value=Decimal("50000")),
        )
        check = ContractEvaluator(contract_with(rule)).evaluate(hospital_line(100000, 50000, 50000))

        assert check.state == ContractState.CAP_EXCEEDED
        assert check.cap_state == CapState.EXCEEDED
        assert check.expected_paid == Decimal("50000")
        assert check.shortfall == Decimal("20000")
        assert check.cap_conversion_source == "contrato"

    def test_uf_conversion_from_config(self) -> None:
        """Test UF caps use the configured value and record its provenance."""
        config = AuditConfig(uf_value_clp=Decimal("36000"), uf_date="2024-03-12", uf_source="CMF")
        evaluator = ContractEvaluator(Contract(), config)

        value, state, source = evaluator.convert_cap(Cap(kind=CapKind.UF, value=Decimal("2")))

        assert value == Decimal("72000")
        assert state == CapState.WITHIN_CAP
        assert source == "CMF (2024-03-12)"

    def test_uf_fallback(self) -> None:
        """Test UF caps fall back to the constant value."""
        value, _, source = ContractEvaluator(Contract()).convert_cap(Cap(kind=CapKind.UF, value=Decimal("1")))

        assert value == UF_FALLBACK_CLP
        assert source == "fallback"

    def test_reference_units(self) -> None:
        """Test insurer-specific units need a configured value."""
        cap = Cap(kind=CapKind.VAM, value=Decimal("2"))

        _, state, _ = ContractEvaluator(Contract()).convert_cap(cap)
        assert state == CapState.UNVERIFIABLE

        config = AuditConfig(reference_unit_values={CapKind.VAM: Decimal("15000")})
        value, state, _ = ContractEvaluator(Contract(), config).convert_cap(cap)
        assert value == Decimal("30000")
        assert state == CapState.WITHIN_CAP

    def test_no_cap(self) -> None:
        """Test absent and variable caps."""
        evaluator = ContractEvaluator(Contract())

        assert evaluator.convert_cap(None)[1] == CapState.NO_CAP
        assert evaluator.convert_cap(Cap(kind=CapKind.NONE))[1] == CapState.NO_CAP
        assert evaluator.convert_cap(Cap(kind=CapKind.VARIABLE, value=Decimal("3")))[1] == CapState.UNVERIFIABLE

    def test_cap_unverifiable(self) -> None:
        """Test excess copay under an unconvertible cap."""
        rule = ContractRule(
            rule_id="HOSP-VAM",
            domain=CoverageDomain.HOSPITALIZATION,
            coverage_pct=Decimal("70"),
            cap=Cap(kind=CapKind.VAM, value=Decimal("2")),
        )
        check = ContractEvaluator(contract_with(rule)).evaluate(hospital_line(100000, 40000, 60000))

        assert check.state == ContractState.CAP_UNVERIFIABLE
        assert check.shortfall == Decimal("0")


class TestRuleSelection:
    """Tests for contract rule selection."""

    @pytest.fixture
    def evaluator(self) -> ContractEvaluator:
        return ContractEvaluator(
            contract_with(
                ContractRule(
                    rule_id="HOSP-90",
                    domain=CoverageDomain.HOSPITALIZATION,
                    coverage_pct=Decimal("90"),
                    source_text="Habitación individual 90%",
                ),
                ContractRule(
                    rule_id="HOSP-70",
                    domain=CoverageDomain.HOSPITALIZATION,
                    coverage_pct=Decimal("70"),
                    source_text="Día cama 70%",
                ),
            )
        )

    def test_affinity(self, evaluator: ContractEvaluator) -> None:
        """Test a unique token overlap selects the rule."""
        rule, matched_by = evaluator.select_rule(CoverageDomain.HOSPITALIZATION, "DIA CAMA SALA")

        assert rule.rule_id == "HOSP-70"
        assert matched_by == RuleMatch.AFFINITY

    def test_conservative(self, evaluator: ContractEvaluator) -> None:
        """Test the lowest coverage rule is used without a clear match."""
        rule, matched_by = evaluator.select_rule(CoverageDomain.HOSPITALIZATION, "HOSPITALIZACION")

        assert rule.rule_id == "HOSP-70"
        assert matched_by == RuleMatch.CONSERVATIVE

    def test_missing_domain(self, evaluator: ContractEvaluator) -> None:
        """Test lines outside the contract are not verifiable."""
        line = AdjudicationLine(code="1100000", description="DERECHO DE PABELLON", total_value=Decimal("1000"), copay=Decimal("100"))
        check = evaluator.evaluate(line)

        assert check.state == ContractState.NOT_VERIFIABLE_BY_CONTRACT
        assert check.rule_ids == []
        assert check.domain == CoverageDomain.OPERATING_ROOM

    def test_unknown_coverage(self) -> None:
        """Test rules without a coverage percentage are not verifiable."""
        rule = ContractRule(rule_id="HOSP-X", domain=CoverageDomain.HOSPITALIZATION)
        check = ContractEvaluator(contract_with(rule)).evaluate(hospital_line(100000, 70000, 30000))

        assert check.state == ContractState.NOT_VERIFIABLE_BY_CONTRACT
        assert check.rule_ids == ["HOSP-X"]

    def test_evaluate_for_other_domain(self, evaluator: ContractEvaluator) -> None:
        """Test evaluating a line under an alternative domain."""
        line = AdjudicationLine(code="0300000", description="EXAMENES", total_value=Decimal("100000"), copay=Decimal("70000"))
        check = evaluator.evaluate_for_domain(line, CoverageDomain.HOSPITALIZATION)

        assert check.rule_ids == ["HOSP-70"]
        assert check.expected_copay == Decimal("30000")
