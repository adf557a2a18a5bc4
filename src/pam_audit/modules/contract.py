"""
Contract Evaluator.
Checks each adjudication line against the health-plan contract: coverage
percentage, caps (topes) and the resulting expected copay.
"""

import logging
from decimal import Decimal

from ..core.config import UF_FALLBACK_CLP, UTM_FALLBACK_CLP, AuditConfig
from ..core.domain_mapper import get_mapper
from ..core.models import (
    AdjudicationLine,
    Cap,
    CapKind,
    CapState,
    Contract,
    ContractCheck,
    ContractRule,
    ContractState,
    CoverageDomain,
    RuleMatch,
)
from ..utils.money import round_pesos
from ..utils.text import tokens

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


class ContractEvaluator:
    """
    Evaluates adjudication lines against contract rules.

    When several rules cover the same domain and none is a clear semantic
    match for the line, the lowest-coverage rule is used, so the audit never
    overstates what the patient was entitled to.
    """

    def __init__(self, contract: Contract, config: AuditConfig | None = None) -> None:
        self.contract = contract
        self.config = config or AuditConfig()
        self.mapper = get_mapper()

    def evaluate(self, line: AdjudicationLine) -> ContractCheck:
        """Evaluate a line under the domain its code/description maps to."""
        domain = self.mapper.domain_for(line.code, line.description)
        return self.evaluate_for_domain(line, domain)

    def rules_for(self, domain: CoverageDomain) -> list[ContractRule]:
        return [rule for rule in self.contract.rules if rule.domain == domain]

    def select_rule(
        self, domain: CoverageDomain, description: str
    ) -> tuple[ContractRule | None, RuleMatch]:
        """
        Pick the contract rule for a (domain, line) pair.

        Returns:
            The selected rule (or None) and how it was selected
        """
        candidates = self.rules_for(domain)
        if not candidates:
            return None, RuleMatch.NONE
        if len(candidates) == 1:
            return candidates[0], RuleMatch.DIRECT

        line_tokens = tokens(description)
        affinity = [(len(line_tokens & tokens(rule.source_text)), rule) for rule in candidates]
        best = max(score for score, _ in affinity)
        winners = [rule for score, rule in affinity if score == best]
        if best > 0 and len(winners) == 1:
            return winners[0], RuleMatch.AFFINITY

        conservative = sorted(
            candidates,
            key=lambda rule: (
                rule.coverage_pct is None,
                rule.coverage_pct if rule.coverage_pct is not None else HUNDRED,
                rule.rule_id,
            ),
        )
        return conservative[0], RuleMatch.CONSERVATIVE

    def convert_cap(self, cap: Cap | None) -> tuple[Decimal | None, CapState, str | None]:
        """
        Convert a cap to pesos.

        Returns:
            (cap in pesos, cap state, provenance of the conversion rate)
        """
        if cap is None or cap.kind == CapKind.NONE:
            return None, CapState.NO_CAP, None
        if cap.kind == CapKind.VARIABLE or cap.value is None:
            return None, CapState.UNVERIFIABLE, None

        if cap.kind == CapKind.CLP:
            return cap.value, CapState.WITHIN_CAP, "contrato"

        if cap.kind == CapKind.UF:
            if self.config.uf_value_clp is not None:
                source = self.config.uf_source or "config"
                if self.config.uf_date:
                    source = f"{source} ({self.config.uf_date})"
                return cap.value * self.config.uf_value_clp, CapState.WITHIN_CAP, source
            return cap.value * UF_FALLBACK_CLP, CapState.WITHIN_CAP, "fallback"

        if cap.kind == CapKind.UTM:
            if self.config.utm_value_clp is not None:
                return cap.value * self.config.utm_value_clp, CapState.WITHIN_CAP, "config"
            return cap.value * UTM_FALLBACK_CLP, CapState.WITHIN_CAP, "fallback"

        unit_value = self.config.reference_unit_values.get(cap.kind)
        if unit_value is None:
            return None, CapState.UNVERIFIABLE, None
        return cap.value * unit_value, CapState.WITHIN_CAP, "config"

    def evaluate_for_domain(self, line: AdjudicationLine, domain: CoverageDomain) -> ContractCheck:
        """Evaluate a line as if it belonged to the given coverage domain."""
        rule, matched_by = self.select_rule(domain, line.description)
        if rule is None:
            return ContractCheck(
                state=ContractState.NOT_VERIFIABLE_BY_CONTRACT,
                domain=domain,
                notes=f"Dominio '{domain.value}' no hallado en contrato",
            )

        rule_ref = rule.source_text or rule.rule_id
        if rule.coverage_pct is None:
            return ContractCheck(
                state=ContractState.NOT_VERIFIABLE_BY_CONTRACT,
                domain=domain,
                rule_ids=[rule.rule_id],
                matched_by=matched_by,
                rule_ref=rule_ref,
                notes=f"Cobertura no determinable en regla: {rule_ref}",
            )

        total = line.total_value
        uncapped_paid = total * rule.coverage_pct / HUNDRED
        cap_clp, cap_state, cap_source = self.convert_cap(rule.cap)

        expected_paid = uncapped_paid
        if cap_clp is not None:
            if uncapped_paid > cap_clp:
                cap_state = CapState.EXCEEDED
                expected_paid = cap_clp
        expected_paid = round_pesos(expected_paid)
        expected_copay = total - expected_paid
        delta = line.copay - expected_copay
        tolerance = max(
            self.config.contract_tolerance.floor_clp,
            self.config.contract_tolerance.pct_of_total * total,
        )

        shortfall = Decimal("0")
        if delta > tolerance and cap_state == CapState.UNVERIFIABLE:
            state = ContractState.CAP_UNVERIFIABLE
            notes = f"Tope indicado pero no convertible en regla: {rule_ref}"
        elif delta > tolerance:
            state = ContractState.UNDER_COVERED
            shortfall = delta
            notes = f"Copago excede el esperado por contrato ({rule.coverage_pct}%): {rule_ref}"
        elif cap_state == CapState.EXCEEDED:
            state = ContractState.CAP_EXCEEDED
            shortfall = round_pesos(uncapped_paid - expected_paid)
            notes = f"Bonificación limitada por tope: {rule_ref}"
        else:
            state = ContractState.VERIFIABLE_OK
            notes = f"Regla aplicada: {rule_ref}"

        logger.debug("Line %s [%s]: %s (delta %s, tolerance %s)", line.line_id, domain.value, state.value, delta, tolerance)

        return ContractCheck(
            state=state,
            domain=domain,
            rule_ids=[rule.rule_id],
            matched_by=matched_by,
            rule_ref=rule_ref,
            coverage_pct=rule.coverage_pct,
            expected_paid=expected_paid,
            expected_copay=expected_copay,
            copay_delta=delta,
            tolerance=tolerance,
            shortfall=shortfall,
            cap_state=cap_state,
            cap_clp=cap_clp,
            cap_conversion_source=cap_source,
            notes=notes,
        )
