"""
Utility modules for the PAM Audit Engine.
"""

from .money import amount_key, format_clp, round_pesos
from .text import contains_any, contains_word, normalize, tokens

__all__ = [
    "amount_key",
    "contains_any",
    "contains_word",
    "format_clp",
    "normalize",
    "round_pesos",
    "tokens",
]
