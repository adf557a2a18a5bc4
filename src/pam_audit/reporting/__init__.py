"""
Reporting modules for the PAM Audit Engine.
"""

from .aggregator import AuditResultBuilder, row_impact
from .report import ReportFormatter

__all__ = [
    "AuditResultBuilder",
    "ReportFormatter",
    "row_impact",
]
