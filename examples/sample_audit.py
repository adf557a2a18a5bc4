#!/usr/bin/env python3
"""
Sample Audit Script.
Demonstrates usage of the PAM Audit Engine on a surgical episode.
"""

import logging
from decimal import Decimal

from pam_audit import (
    Adjudication,
    AdjudicationFolio,
    AdjudicationLine,
    AuditConfig,
    AuditInput,
    AuditMetadata,
    Bill,
    BillItem,
    Cap,
    CapKind,
    Contract,
    ContractRule,
    CoverageDomain,
    ReconciliationEngine,
)


def create_sample_episode() -> AuditInput:
    """Create a sample episode for demonstration."""
    return AuditInput(
        metadata=AuditMetadata(
            patient_name="Paciente Demo",
            clinic_name="Clínica Demo",
            insurer="Isapre Demo",
            plan="Plan Preferente 70/90",
            financial_date="2024-03-12",
        ),
        bill=Bill(
            items=[
                # Ward package
                BillItem(position=0, section="HOSPITALIZACION", description="DIA CAMA INTEGRAL", total=Decimal("320000")),
                BillItem(position=1, section="HOSPITALIZACION", description="MONITORIZACION CONTINUA", total=Decimal("25000")),
                # Operating room package
                BillItem(position=2, section="PABELLON", description="DERECHO DE PABELLON", total=Decimal("450000")),
                BillItem(position=3, section="PABELLON", description="PROPOFOL 200 MG AMPOLLA", total=Decimal("18500")),
                BillItem(position=4, section="PABELLON", description="FENTANYL 0,1 MG AMPOLLA", total=Decimal("9600")),
                # Pharmacy block moved into the uncovered line
                BillItem(position=5, section="FARMACIA", description="CEFTRIAXONA 1 GR VIAL", total=Decimal("102588")),
                BillItem(position=6, section="FARMACIA", description="METRONIDAZOL 500 MG FRASCO", total=Decimal("4587")),
                BillItem(position=7, section="FARMACIA", description="KETOROLACO 30 MG AMPOLLA", total=Decimal("15716")),
                BillItem(position=8, section="FARMACIA", description="OMEPRAZOL 40 MG VIAL", total=Decimal("2344")),
                BillItem(position=9, section="FARMACIA", description="ONDANSETRON 8 MG AMPOLLA", total=Decimal("3048")),
                BillItem(position=10, section="FARMACIA", description="PARACETAMOL 1 GR FRASCO", total=Decimal("5817")),
                # Non-clinical charges
                BillItem(position=11, section="OTROS", description="SET DE ASEO PERSONAL", total=Decimal("12990")),
                BillItem(position=12, section="OTROS", description="KIT DE ASEO ACOMPAÑANTE", total=Decimal("8900")),
                BillItem(position=13, section="OTROS", description="CARGO ADMINISTRATIVO", total=Decimal("6500")),
            ]
        ),
        adjudication=Adjudication(
            declared_total_copay=Decimal("303490"),
            folios=[
                AdjudicationFolio(
                    folio="PAM-1001",
                    provider="Clínica Demo",
                    lines=[
                        AdjudicationLine(
                            code="3000000",
                            description="DIA CAMA INTEGRAL",
                            total_value=Decimal("320000"),
                            paid=Decimal("224000"),
                            copay=Decimal("96000"),
                        ),
                        AdjudicationLine(
                            code="1100000",
                            description="DERECHO DE PABELLON",
                            total_value=Decimal("450000"),
                            paid=Decimal("405000"),
                            copay=Decimal("45000"),
                        ),
                        AdjudicationLine(
                            code="3101001",
                            description="MEDICAMENTOS CLINICOS",
                            total_value=Decimal("134100"),
                            paid=Decimal("0"),
                            copay=Decimal("134100"),
                        ),
                        AdjudicationLine(
                            code="3201001",
                            description="GASTOS NO CUBIERTOS",
                            total_value=Decimal("28390"),
                            paid=Decimal("0"),
                            copay=Decimal("28390"),
                        ),
                    ],
                )
            ],
        ),
        contract=Contract(
            rules=[
                ContractRule(
                    rule_id="HOSP-70",
                    domain=CoverageDomain.HOSPITALIZATION,
                    coverage_pct=Decimal("70"),
                    cap=Cap(kind=CapKind.UF, value=Decimal("20")),
                    source_text="Día cama 70% tope 20 UF",
                ),
                ContractRule(
                    rule_id="PAB-90",
                    domain=CoverageDomain.OPERATING_ROOM,
                    coverage_pct=Decimal("90"),
                    source_text="Derecho de pabellón 90% sin tope",
                ),
                ContractRule(
                    rule_id="MED-70",
                    domain=CoverageDomain.MEDICATIONS,
                    coverage_pct=Decimal("70"),
                    source_text="Medicamentos hospitalarios 70%",
                ),
            ]
        ),
    )


def main() -> None:
    """Run sample audit demonstration."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 70)
    print("PAM AUDIT ENGINE - SAMPLE AUDIT")
    print("=" * 70)
    print()

    episode = create_sample_episode()
    line_count = sum(len(folio.lines) for folio in episode.adjudication.folios)
    print(f"Bill Items: {len(episode.bill.items)}")
    print(f"PAM Lines: {line_count}")
    print()

    # UF value resolved by the caller for the financial date
    engine = ReconciliationEngine(AuditConfig(uf_value_clp=Decimal("36800"), uf_date="2024-03-12", uf_source="CMF"))

    print("Running audit...")
    formatter = engine.audit_with_formatter(episode)

    print()
    print(formatter.to_report_text())
    print()
    print(formatter.to_complaint_text())

    print()
    print("-" * 70)
    print("JSON Output (first 500 chars):")
    print("-" * 70)
    json_output = formatter.to_json()
    print(json_output[:500] + "..." if len(json_output) > 500 else json_output)


if __name__ == "__main__":
    main()
