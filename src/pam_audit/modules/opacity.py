"""
Opacity Scorer.
Scores how verifiable the composition of a charge is (opacity index, IOP).
"""

from collections.abc import Sequence

from ..core import vocabulary as vocab
from ..core.config import AuditConfig
from ..core.domain_mapper import get_mapper
from ..core.models import AuditRow, GlobalOpacity, OpacityPoint, OpacityScore, Traceability
from ..utils.text import contains_any
from .matching import LineResolution


class OpacityScorer:
    """Accrues opacity points per line and flags lines above the threshold."""

    def __init__(self, config: AuditConfig | None = None) -> None:
        self.config = config or AuditConfig()
        self.mapper = get_mapper()

    def score(self, resolution: LineResolution) -> OpacityScore:
        """Opacity index of one resolved line."""
        line = resolution.line
        if line.copay == 0 and line.paid > 0:
            return OpacityScore()

        weights = self.config.opacity_weights
        parsed = self.mapper.parse_line(line.code, line.description)
        traceability = resolution.trace.traceability
        breakdown: list[OpacityPoint] = []

        if (parsed.is_generic or parsed.says_uncovered) and traceability != Traceability.STRONG:
            label = "Agrupador sin desglose" if traceability == Traceability.NONE else "Agrupador con desglose numérico débil"
            breakdown.append(OpacityPoint(label=label, points=weights.generic_code_without_breakdown))

        if contains_any(parsed.normalized_description, vocab.OPAQUE_DESCRIPTIONS):
            breakdown.append(OpacityPoint(label="Glosa genérica indeterminada", points=weights.generic_description))

        if line.paid == 0 and line.copay > 0:
            breakdown.append(OpacityPoint(label="Bonificación $0 (copago total)", points=weights.zero_payment_with_copay))

        if traceability == Traceability.NONE:
            breakdown.append(OpacityPoint(label="Fallo de trazabilidad", points=weights.trace_failure))

        total = sum(point.points for point in breakdown)
        return OpacityScore(
            applies=total >= self.config.opacity_threshold,
            score=total,
            breakdown=breakdown,
            evaluated=True,
        )

    def global_opacity(self, rows: Sequence[AuditRow]) -> GlobalOpacity:
        """Audit-wide flag: the highest score among lines crossing the threshold."""
        flagged = [row.opacity.score for row in rows if row.opacity.applies]
        return GlobalOpacity(applies=bool(flagged), max_score=max(flagged, default=0))
