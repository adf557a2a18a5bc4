"""
Core components for the PAM Audit Engine.
"""

from .config import AuditConfig, SearchBudget
from .domain_mapper import DomainMapper, ParsedLine, get_mapper
from .models import (
    AdjudicationLine,
    AuditInput,
    AuditResult,
    BillItem,
    Contract,
    CoverageDomain,
    EventModel,
    ItemNature,
    Motor,
    MotorFinding,
    Package,
)
from .rule_engine import MotorRule, RuleEngine
from .vocabulary import VOCABULARY_VERSION

__all__ = [
    # Config
    "AuditConfig",
    "SearchBudget",
    # Models
    "AdjudicationLine",
    "AuditInput",
    "AuditResult",
    "BillItem",
    "Contract",
    "CoverageDomain",
    "EventModel",
    "ItemNature",
    "Motor",
    "MotorFinding",
    "Package",
    # Rule Engine
    "MotorRule",
    "RuleEngine",
    # Domain Mapper
    "DomainMapper",
    "ParsedLine",
    "get_mapper",
    "VOCABULARY_VERSION",
]
