"""
PAM Audit Engine.

A forensic reconciliation engine for Chilean hospital episodes: attributes
every insurer adjudication (PAM) line to the clinical bill items behind it,
checks it against the health-plan contract and labels fragmentation and
opacity patterns.
"""

from .core.config import AuditConfig
from .core.models import (
    Adjudication,
    AdjudicationFolio,
    AdjudicationLine,
    AuditInput,
    AuditMetadata,
    AuditResult,
    AuditRow,
    Bill,
    BillItem,
    Cap,
    CapKind,
    Contract,
    ContractRule,
    ContractState,
    CostTransfer,
    CostTransferKind,
    CoverageDomain,
    FindingLevel,
    Motor,
    Traceability,
)
from .engine import ReconciliationEngine, run_audit
from .reporting.aggregator import AuditResultBuilder
from .reporting.report import ReportFormatter

__version__ = "0.1.0"

__all__ = [
    # Main Engine
    "ReconciliationEngine",
    "run_audit",
    "AuditConfig",
    # Models
    "Adjudication",
    "AdjudicationFolio",
    "AdjudicationLine",
    "AuditInput",
    "AuditMetadata",
    "AuditResult",
    "AuditRow",
    "Bill",
    "BillItem",
    "Cap",
    "CapKind",
    "Contract",
    "ContractRule",
    "ContractState",
    "CostTransfer",
    "CostTransferKind",
    "CoverageDomain",
    "FindingLevel",
    "Motor",
    "Traceability",
    # Reporting
    "AuditResultBuilder",
    "ReportFormatter",
]
