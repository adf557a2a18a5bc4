"""
Forensic Report Module.
Renders the forensic report and the complaint letter template (Spanish)
from a finished audit result. No business logic lives here.
"""

from decimal import Decimal
from typing import Any

from ..core.models import AuditResult, AuditRow, FindingLevel, Motor
from ..core.vocabulary import VOCABULARY_VERSION
from ..utils.money import format_clp

LEVEL_LABELS: dict[FindingLevel, str] = {
    FindingLevel.CORRECT: "Correcto",
    FindingLevel.TECHNICAL_DISCUSSION: "Discusión técnica",
    FindingLevel.STRUCTURAL_FRAGMENTATION: "Fragmentación estructural",
    FindingLevel.NON_BILLABLE: "Acto no facturable",
    FindingLevel.UNDER_COVERAGE: "Infracobertura contractual",
    FindingLevel.TOTAL_OPACITY: "Opacidad total",
}

MOTOR_LABELS: dict[Motor, str] = {
    Motor.M1: "M1 Acto no facturable",
    Motor.M2: "M2 Desanclaje de paquete",
    Motor.M3: "M3 Traslado de costos no clínicos",
    Motor.M4: "M4 Desclasificación de dominio",
    Motor.M5: "M5 Infracobertura / tope",
    Motor.NONE: "NA",
}


class ReportFormatter:
    """
    Formats audit results as forensic report and complaint text.
    """

    def __init__(self, result: AuditResult, opacity_threshold: int = 40) -> None:
        self.result = result
        self.opacity_threshold = opacity_threshold

    def _flagged(self) -> list[AuditRow]:
        return [row for row in self.result.rows if row.flagged]

    def _header(self) -> list[str]:
        metadata = self.result.metadata
        if metadata is None:
            return []
        return [
            f"PACIENTE: {metadata.patient_name or 'N/A'}",
            f"PRESTADOR: {metadata.clinic_name or 'N/A'}",
            f"ISAPRE: {metadata.insurer or 'N/A'} | PLAN: {metadata.plan or 'N/A'}",
            f"FECHA: {metadata.financial_date or 'N/A'}",
            "",
        ]

    def to_report_text(self) -> str:
        """
        Format the forensic report.

        Returns:
            Report text with header, executive summary, findings and conclusion
        """
        summary = self.result.summary
        event = self.result.event_model
        lines: list[str] = []

        lines.append("=" * 70)
        lines.append("INFORME FORENSE DE LIQUIDACIÓN (PAM)")
        lines.append("=" * 70)
        lines.extend(self._header())

        lines.append(f"EVENTO DETECTADO: {event.principal_act.value if event.principal_act else 'N/A'}")
        lines.append(f"PAQUETES CLÍNICOS: {', '.join(p.value for p in event.packages) or 'Ninguno'}")
        lines.append(f"NOTA: {event.notes}")
        lines.append("")

        lines.append("-" * 70)
        lines.append("RESUMEN EJECUTIVO")
        lines.append("-" * 70)
        lines.append(f"- Líneas analizadas: {summary.line_count} ({summary.strong_trace_count} con trazabilidad fuerte)")
        lines.append(f"- Total copago analizado: {format_clp(summary.total_copay_analyzed)}")
        lines.append(f"- Impacto hallazgos: {format_clp(summary.total_impact)}")
        if summary.opacity.applies:
            lines.append(f"- Estado opacidad: CRÍTICO (IOP MAX {summary.opacity.max_score})")
        else:
            lines.append("- Estado opacidad: Trazable")
        systemic = summary.systemic
        lines.append(
            f"- Patrón sistémico: {'SI (mecanismo repetitivo)' if systemic.is_systemic else 'No detectado'} "
            f"[M1={systemic.m1_count} M2={systemic.m2_count} M3={systemic.m3_count} "
            f"M4={systemic.m4_count} M5={systemic.m5_count}]"
        )
        lines.append("")

        flagged = self._flagged()
        if flagged:
            lines.append("-" * 70)
            lines.append("DETALLE DE HALLAZGOS RELEVANTES")
            lines.append("-" * 70)
            for row in flagged:
                lines.append("")
                lines.append(f"> [{row.finding.motor.value}] {row.code} - {row.description}")
                lines.append(f"  Clasificación: {LEVEL_LABELS[row.finding.level]} ({MOTOR_LABELS[row.finding.motor]})")
                lines.append(f"  Copago real: {format_clp(row.copay)}")
                if row.finding.economic_impact:
                    lines.append(f"  Impacto: {format_clp(row.finding.economic_impact)}")
                lines.append(f"  Trazabilidad: {row.trace.traceability.value} ({row.trace.traceability_reason})")
                if row.finding.rationale:
                    lines.append(f"  Fundamento: {row.finding.rationale}")
                if row.opacity.applies:
                    lines.append(f"  OPACIDAD DETECTADA (IOP {row.opacity.score}):")
                    for point in row.opacity.breakdown:
                        lines.append(f"    - {point.label} (+{point.points})")
            lines.append("")

        if self.result.warnings:
            lines.append("-" * 70)
            lines.append("ADVERTENCIAS DE INTEGRIDAD")
            lines.append("-" * 70)
            for warning in self.result.warnings:
                lines.append(f"- {warning}")
            lines.append("")

        lines.append("CONCLUSIÓN:")
        if summary.opacity.applies:
            lines.append(
                f"La cuenta presenta Opacidad Liquidatoria Mayor (IOP >= {self.opacity_threshold}). "
                "Se exige desglose detallado bajo sanción de tener por no escritas las cláusulas "
                "oscuras (Contra Proferentem)."
            )
        elif flagged:
            lines.append("Cuenta auditable con hallazgos específicos de fragmentación.")
        else:
            lines.append("Cuenta auditable sin hallazgos.")
        lines.append(f"Tablas de vocabulario v{VOCABULARY_VERSION}")
        lines.append("=" * 70)

        return "\n".join(lines)

    def to_complaint_text(self) -> str:
        """
        Format the complaint letter template over the opaque lines.

        Returns:
            Complaint text, or a one-line notice when nothing is opaque
        """
        opaque = [row for row in self.result.rows if row.opacity.applies]
        if not opaque:
            return "Sin hallazgos de opacidad crítica."

        total = sum((row.copay for row in opaque), Decimal("0"))
        lines: list[str] = [
            "SEÑORES ISAPRE / PRESTADOR:",
            "",
            "En relación a la liquidación (PAM) analizada, se impugnan los siguientes cobros por "
            "vulnerar el deber de información (Opacidad Liquidatoria detectada, "
            f"IOP >= {self.opacity_threshold}):",
            "",
        ]
        for row in opaque:
            lines.append(
                f'- Ítem {row.code} "{row.description}" | Copago: {format_clp(row.copay)} | IOP: {row.opacity.score}'
            )
        lines.extend(
            [
                "",
                "FUNDAMENTOS DE RECLAMO:",
                '1. "Agrupamiento ciego": los ítems señalados consolidan montos sin desglose de sub-ítem '
                "verificable, impidiendo el ejercicio del derecho a defensa del afiliado.",
                f'2. "Copago sin causa": se cobran montos significativos (total: {format_clp(total)}) bajo '
                'glosas genéricas ("No cubierto", "Insumos") sin acreditar la prestación subyacente.',
                "3. Principio de literalidad e integridad: el contrato de salud es de adhesión; toda "
                "oscuridad debe interpretarse a favor del afiliado (Art. 1566 Código Civil).",
                "",
                "PETICIÓN:",
                "Sírvase anular el cobro de los ítems opacos o bien refacturar con el desglose unitario "
                "completo que permita su trazabilidad con la Ficha Clínica.",
            ]
        )
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the result to a JSON-compatible dictionary.

        Returns:
            Dictionary representation of the audit result
        """
        return self.result.model_dump(mode="json")

    def to_json(self, indent: int = 2) -> str:
        """
        Convert the result to JSON.

        Args:
            indent: JSON indentation level

        Returns:
            JSON string representation
        """
        return self.result.model_dump_json(indent=indent)
