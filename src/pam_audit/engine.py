"""
PAM Audit Engine - Main Orchestrator.
Coordinates pre-processing, matching, contract evaluation, classification,
opacity scoring and reporting into one deterministic audit run.
"""

import logging
from typing import Any

from .core.config import AuditConfig
from .core.models import AuditInput, AuditResult, AuditRow, ContractCheck, MotorFinding, OpacityScore
from .modules.contract import ContractEvaluator
from .modules.fragmentation import FragmentationClassifier
from .modules.matching import ConsumptionState, LineResolution, MatchingEngine
from .modules.opacity import OpacityScorer
from .modules.preprocessing import check_integrity, flatten_adjudication, prepare_bill
from .modules.structure import anchor_positions, infer_event_model
from .reporting.aggregator import AuditResultBuilder
from .reporting.report import ReportFormatter

logger = logging.getLogger(__name__)

NO_LINES_MESSAGE = "Sin líneas de adjudicación (PAM) para auditar"


def build_row(
    resolution: LineResolution,
    contract: ContractCheck,
    finding: MotorFinding,
    opacity: OpacityScore,
) -> AuditRow:
    """Assemble the immutable audit record of one line."""
    line = resolution.line
    return AuditRow(
        line_id=line.line_id or "",
        folio=line.folio,
        code=line.code,
        description=line.description,
        total_value=line.total_value,
        paid=line.paid,
        copay=line.copay,
        resolution_pass=resolution.resolution_pass,
        trace=resolution.trace,
        contract=contract,
        finding=finding,
        opacity=opacity,
    )


class ReconciliationEngine:
    """
    Main orchestrator for the PAM Audit Engine.

    Engines hold configuration only, so one instance can audit any number
    of independent episodes.
    """

    def __init__(self, config: AuditConfig | None = None) -> None:
        """
        Initialize the engine.

        Args:
            config: Run configuration (defaults reproduce the calibrated behavior)
        """
        self.config = config or AuditConfig()

    def audit(
        self,
        data: AuditInput | dict[str, Any],
        config: AuditConfig | None = None,
    ) -> AuditResult:
        """
        Audit one episode.

        Args:
            data: Bill, adjudication and contract (AuditInput or dict)
            config: Override configuration for this run only

        Returns:
            Complete audit result; a structured error result when there is
            nothing to audit
        """
        if isinstance(data, dict):
            data = AuditInput.model_validate(data)
        config = config or self.config

        # Phase 0: integrity gate
        lines = flatten_adjudication(data.adjudication)
        if not lines:
            logger.warning(NO_LINES_MESSAGE)
            return AuditResult.error_result(NO_LINES_MESSAGE, metadata=data.metadata)
        warnings = check_integrity(lines, data.adjudication.declared_total_copay, config.coherence)

        # Phase 1: indexing and structure
        items = prepare_bill(data.bill)
        event_model = infer_event_model(items)
        matcher = MatchingEngine(config, anchor_positions(items))

        # Phase 2: two-pass matching
        resolutions, state = matcher.resolve_all(lines, ConsumptionState(arena=tuple(items)))

        # Phase 3: contract, motors and opacity per line
        evaluator = ContractEvaluator(data.contract, config)
        classifier = FragmentationClassifier(evaluator, config)
        scorer = OpacityScorer(config)

        rows: list[AuditRow] = []
        for resolution in resolutions:
            contract = evaluator.evaluate(resolution.line)
            finding = classifier.classify(resolution, contract, event_model)
            rows.append(build_row(resolution, contract, finding, scorer.score(resolution)))

        # Phase 4: aggregation and report
        result = (
            AuditResultBuilder(config, metadata=data.metadata)
            .set_event_model(event_model)
            .set_global_opacity(scorer.global_opacity(rows))
            .add_rows(rows)
            .add_warnings(warnings)
            .build()
        )

        logger.info(
            "Audit finished: %d lines, %d flagged, %d/%d bill items attributed, impact %s",
            result.summary.line_count,
            result.summary.flagged_count,
            len(state.consumed),
            len(items),
            result.summary.total_impact,
        )
        return result

    def audit_with_formatter(
        self,
        data: AuditInput | dict[str, Any],
        config: AuditConfig | None = None,
    ) -> ReportFormatter:
        """
        Perform an audit and return a formatter for output.

        Args:
            data: The episode to audit
            config: Override configuration for this run only

        Returns:
            ReportFormatter over the result
        """
        run_config = config or self.config
        return ReportFormatter(self.audit(data, run_config), opacity_threshold=run_config.opacity_threshold)

    def configure(self, **overrides: Any) -> "ReconciliationEngine":
        """
        Update configuration fields.

        Args:
            **overrides: AuditConfig fields to replace (validated)

        Returns:
            Self for method chaining
        """
        self.config = AuditConfig.model_validate({**self.config.model_dump(), **overrides})
        return self


# Convenience function for quick audits
def run_audit(
    data: AuditInput | dict[str, Any],
    config: AuditConfig | None = None,
) -> AuditResult:
    """
    Convenience function for quick audits.

    Args:
        data: The episode to audit
        config: Run configuration

    Returns:
        Complete audit result
    """
    engine = ReconciliationEngine(config)
    return engine.audit(data)
