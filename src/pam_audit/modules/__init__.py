"""
Audit modules for the PAM Audit Engine.
"""

from .contract import ContractEvaluator
from .fragmentation import FragmentationClassifier
from .matching import ConsumptionState, LineResolution, MatchingEngine
from .opacity import OpacityScorer

__all__ = [
    "ConsumptionState",
    "ContractEvaluator",
    "FragmentationClassifier",
    "LineResolution",
    "MatchingEngine",
    "OpacityScorer",
]
