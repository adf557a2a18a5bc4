"""
Domain Filter.
Restricts the combinatorial search to bill items of the same clinical
domain as the adjudication line, or marks the line as a catch-all.
"""

from collections.abc import Callable
from dataclasses import dataclass

from ..core import vocabulary as vocab
from ..core.domain_mapper import get_mapper
from ..core.models import BillItem, CoverageDomain
from ..utils.text import contains_any, normalize

ItemPredicate = Callable[[str, str], bool]


@dataclass(frozen=True)
class DomainFilter:
    """
    Predicate over normalized (section, description) pairs.

    Strict filters never relax to the full pool when the filtered search
    fails, so clinically specific items stay out of generic buckets.
    """

    name: CoverageDomain
    strict: bool
    predicate: ItemPredicate

    def accepts(self, item: BillItem) -> bool:
        return self.predicate(normalize(item.section), normalize(item.description))


class CatchAll:
    """Sentinel for generic/uncovered lines resolved in the second pass."""

    def __repr__(self) -> str:
        return "CATCH_ALL"


CATCH_ALL = CatchAll()


def _is_medication(section: str, description: str) -> bool:
    if contains_any(description, vocab.MEDICATION_EXCLUSIONS):
        return False
    if contains_any(section, vocab.PHARMACY_SECTIONS):
        return True
    if "pabellon" in section and contains_any(description, ("mg", "ml", "inyect")):
        return True
    if contains_any(description, vocab.PHARMA_FORMS) or contains_any(description, vocab.KNOWN_DRUGS):
        return True
    return bool(get_mapper().DOSAGE_PATTERN.search(description))


def _is_material(section: str, description: str) -> bool:
    if contains_any(description, vocab.KNOWN_DRUGS):
        return False
    if contains_any(section, vocab.SUPPLY_SECTIONS):
        return True
    return contains_any(description, vocab.SUPPLY_KEYWORDS) or contains_any(
        description, vocab.MEDICATION_EXCLUSIONS
    )


def _is_lab_test(section: str, description: str) -> bool:
    return contains_any(section, vocab.LAB_SECTIONS) or contains_any(description, vocab.LAB_KEYWORDS)


MEDICATION_FILTER = DomainFilter(CoverageDomain.MEDICATIONS, strict=True, predicate=_is_medication)
MATERIAL_FILTER = DomainFilter(CoverageDomain.CLINICAL_SUPPLIES, strict=True, predicate=_is_material)
LAB_TEST_FILTER = DomainFilter(CoverageDomain.LAB_TESTS, strict=False, predicate=_is_lab_test)


def resolve_domain_filter(code: str, description: str) -> DomainFilter | CatchAll | None:
    """
    Map a PAM code/description to a domain filter.

    Returns:
        A DomainFilter, the CATCH_ALL sentinel, or None (no restriction)
    """
    code = (code or "").strip()
    desc = normalize(description)

    if code == vocab.MEDICATION_CODE:
        return MEDICATION_FILTER
    if code == vocab.MATERIAL_CODE:
        return MATERIAL_FILTER
    if get_mapper().parse_line(code, description).is_catch_all:
        return CATCH_ALL
    if "medicamento" in desc:
        return MEDICATION_FILTER
    if "material" in desc:
        return MATERIAL_FILTER
    if get_mapper().domain_for(code, description) == CoverageDomain.LAB_TESTS:
        return LAB_TEST_FILTER
    return None
