"""
Audit Result Aggregation Module.
Assembles audit rows into summary statistics, the systemic-pattern verdict
and the findings matrix.
"""

from decimal import Decimal

from ..core.config import AuditConfig
from ..core.models import (
    AuditMetadata,
    AuditResult,
    AuditRow,
    AuditSummary,
    EventModel,
    GlobalOpacity,
    MatrixRow,
    Motor,
    SystemicPattern,
    Traceability,
)
from .report import ReportFormatter


def row_impact(row: AuditRow) -> Decimal:
    """Economic impact of a row; an opaque charge is contested in full."""
    impact = row.finding.economic_impact
    if row.opacity.applies:
        impact = max(impact, row.copay)
    return impact


class AuditResultBuilder:
    """
    Builder for constructing audit results.
    """

    def __init__(self, config: AuditConfig | None = None, metadata: AuditMetadata | None = None) -> None:
        self.config = config or AuditConfig()
        self.metadata = metadata
        self.rows: list[AuditRow] = []
        self.warnings: list[str] = []
        self.event_model = EventModel()
        self.global_opacity = GlobalOpacity()

    def add_row(self, row: AuditRow) -> "AuditResultBuilder":
        """Add an audit row."""
        self.rows.append(row)
        return self

    def add_rows(self, rows: list[AuditRow]) -> "AuditResultBuilder":
        """Add multiple audit rows."""
        for row in rows:
            self.add_row(row)
        return self

    def add_warnings(self, warnings: list[str]) -> "AuditResultBuilder":
        """Record integrity warnings."""
        self.warnings.extend(warnings)
        return self

    def set_event_model(self, event_model: EventModel) -> "AuditResultBuilder":
        self.event_model = event_model
        return self

    def set_global_opacity(self, global_opacity: GlobalOpacity) -> "AuditResultBuilder":
        self.global_opacity = global_opacity
        return self

    def flagged_rows(self) -> list[AuditRow]:
        return [row for row in self.rows if row.flagged]

    def build_systemic(self) -> SystemicPattern:
        """Count findings per motor and decide whether they form a systemic pattern."""
        flagged = self.flagged_rows()
        counts = {motor: 0 for motor in Motor}
        for row in flagged:
            counts[row.finding.motor] += 1

        total_copay = sum((row.copay for row in self.rows), Decimal("0"))
        m3_copay = sum((row.copay for row in flagged if row.finding.motor == Motor.M3), Decimal("0"))
        m3_share = (m3_copay / total_copay).quantize(Decimal("0.0001")) if total_copay > 0 else Decimal("0")
        m5_shortfall = sum(
            (row.finding.economic_impact for row in flagged if row.finding.motor == Motor.M5), Decimal("0")
        )

        thresholds = self.config.systemic
        is_systemic = (
            counts[Motor.M1] >= thresholds.min_m1_count
            or counts[Motor.M2] >= thresholds.min_m2_count
            or (total_copay > 0 and m3_share >= thresholds.min_m3_copay_share)
        )

        return SystemicPattern(
            m1_count=counts[Motor.M1],
            m2_count=counts[Motor.M2],
            m3_count=counts[Motor.M3],
            m4_count=counts[Motor.M4],
            m5_count=counts[Motor.M5],
            m3_copay_share=m3_share,
            m5_shortfall=m5_shortfall,
            is_systemic=is_systemic,
        )

    def build_summary(self) -> AuditSummary:
        """Summary statistics over all rows."""
        flagged = self.flagged_rows()
        return AuditSummary(
            line_count=len(self.rows),
            flagged_count=len(flagged),
            strong_trace_count=sum(1 for row in self.rows if row.trace.traceability == Traceability.STRONG),
            total_copay_analyzed=sum((row.copay for row in self.rows), Decimal("0")),
            total_impact=sum((row_impact(row) for row in flagged), Decimal("0")),
            opacity=self.global_opacity,
            systemic=self.build_systemic(),
        )

    def build_matrix(self) -> list[MatrixRow]:
        """One matrix row per flagged line, in input order."""
        matrix: list[MatrixRow] = []
        for row in self.flagged_rows():
            rationale = row.finding.rationale
            if row.opacity.applies:
                rationale = f"{rationale} [OPACIDAD IOP {row.opacity.score}]".strip()
            matrix.append(
                MatrixRow(
                    line_id=row.line_id,
                    item_label=f"{row.code} - {row.description}",
                    level=row.finding.level,
                    motor=row.finding.motor,
                    rationale=rationale,
                    impact=row_impact(row),
                    opacity_score=row.opacity.score,
                )
            )
        return matrix

    def build(self) -> AuditResult:
        """Build the final result, including report and complaint text."""
        result = AuditResult(
            summary=self.build_summary(),
            event_model=self.event_model,
            matrix=self.build_matrix(),
            rows=list(self.rows),
            warnings=list(self.warnings),
            metadata=self.metadata,
        )
        formatter = ReportFormatter(result, opacity_threshold=self.config.opacity_threshold)
        return result.model_copy(
            update={
                "report_text": formatter.to_report_text(),
                "complaint_text": formatter.to_complaint_text(),
            }
        )
