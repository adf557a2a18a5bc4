"""
Adjudication Code & Bill Item Mapper using Regular Expressions.
Maps PAM codes to coverage domains and bill items to their clinical nature.
"""

import re
from dataclasses import dataclass

from ..utils.text import contains_any, contains_word, normalize
from . import vocabulary as vocab
from .models import CoverageDomain, ItemNature


@dataclass(frozen=True)
class ParsedLine:
    """Adjudication line code with its derived classification."""

    code: str
    domain: CoverageDomain
    is_generic: bool
    is_catch_all: bool
    says_uncovered: bool
    normalized_description: str


class DomainMapper:
    """
    Maps adjudication codes and descriptions to coverage domains, and bill
    items to an ItemNature used by scoring and the motors.
    """

    # Exact adjudication codes with a known domain
    CODE_DOMAINS: dict[str, CoverageDomain] = {
        vocab.MATERIAL_CODE: CoverageDomain.CLINICAL_SUPPLIES,
        vocab.MEDICATION_CODE: CoverageDomain.MEDICATIONS,
        vocab.HOSPITAL_GROUP_CODE: CoverageDomain.HOSPITALIZATION,
        vocab.UNCOVERED_CODE: CoverageDomain.OTHER,
        vocab.OTHER_EXPENSES_CODE: CoverageDomain.OTHER,
        "0101001": CoverageDomain.CONSULTATION,
        "0300000": CoverageDomain.LAB_TESTS,
        "0400000": CoverageDomain.LAB_TESTS,
        "0500000": CoverageDomain.REHABILITATION,
        "0600000": CoverageDomain.PROSTHETICS,
        "1100000": CoverageDomain.OPERATING_ROOM,
        "1200000": CoverageDomain.OPERATING_ROOM,
        "1300000": CoverageDomain.PROFESSIONAL_FEES,
    }

    # Description fallbacks, evaluated in order (first match wins)
    DESCRIPTION_PATTERNS: list[tuple[CoverageDomain, re.Pattern[str]]] = [
        (CoverageDomain.HOSPITALIZATION, re.compile(r"(dia cama|habitacion)")),
        (CoverageDomain.OPERATING_ROOM, re.compile(r"(pabellon|quirofano)")),
        (CoverageDomain.PROFESSIONAL_FEES, re.compile(r"(honorario|medico)")),
        (CoverageDomain.MEDICATIONS, re.compile(r"(medicamento|farmaco)")),
        (CoverageDomain.CLINICAL_SUPPLIES, re.compile(r"(material|insumo)")),
        (CoverageDomain.LAB_TESTS, re.compile(r"(examen|laboratorio|imagenolog)")),
        (CoverageDomain.REHABILITATION, re.compile(r"kinesi")),
        (CoverageDomain.PROSTHETICS, re.compile(r"(protesis|ortesis)")),
        (CoverageDomain.TRANSPORT, re.compile(r"(traslado|ambulancia)")),
        (CoverageDomain.CONSULTATION, re.compile(r"consulta")),
    ]

    # Domains billed outside an inpatient package
    AMBULATORY_DOMAINS: frozenset[CoverageDomain] = frozenset(
        {
            CoverageDomain.CONSULTATION,
            CoverageDomain.LAB_TESTS,
            CoverageDomain.REHABILITATION,
            CoverageDomain.TRANSPORT,
            CoverageDomain.PROSTHETICS,
        }
    )

    DOSAGE_PATTERN: re.Pattern[str] = re.compile(r"\d+\s*(mg|ml|mcg|ug|gr|ui)\b")

    def __init__(self) -> None:
        """Initialize the mapper."""
        self._line_cache: dict[str, ParsedLine] = {}
        self._nature_cache: dict[str, ItemNature] = {}

    def parse_line(self, code: str, description: str = "") -> ParsedLine:
        """
        Classify an adjudication line.

        Args:
            code: The PAM group code
            description: The PAM line description

        Returns:
            ParsedLine with domain and generic/catch-all flags
        """
        cache_key = f"{code}|{description}"
        if cache_key in self._line_cache:
            return self._line_cache[cache_key]

        norm = normalize(description)
        code = (code or "").strip()
        says_uncovered = contains_any(norm, vocab.UNCOVERED_DESCRIPTIONS)

        parsed = ParsedLine(
            code=code,
            domain=self.domain_for(code, description),
            is_generic=code in vocab.GENERIC_GROUP_CODES or contains_any(norm, vocab.GENERIC_DESCRIPTIONS),
            is_catch_all=code.startswith(vocab.CATCH_ALL_PREFIX) or (says_uncovered and code not in self.CODE_DOMAINS),
            says_uncovered=says_uncovered,
            normalized_description=norm,
        )
        self._line_cache[cache_key] = parsed
        return parsed

    def domain_for(self, code: str, description: str = "") -> CoverageDomain:
        """Map a PAM code (or, failing that, its description) to a coverage domain."""
        code = (code or "").strip()
        if code in self.CODE_DOMAINS:
            return self.CODE_DOMAINS[code]

        norm = normalize(description)
        for domain, pattern in self.DESCRIPTION_PATTERNS:
            if pattern.search(norm):
                return domain
        return CoverageDomain.OTHER

    def is_ambulatory(self, domain: CoverageDomain) -> bool:
        return domain in self.AMBULATORY_DOMAINS

    def item_nature(self, section: str | None, description: str) -> ItemNature:
        """
        Classify a bill item by its clinical nature.

        Non-clinical signals are checked first so that "set de aseo" is an
        amenity rather than a supply.
        """
        cache_key = f"{section}|{description}"
        if cache_key in self._nature_cache:
            return self._nature_cache[cache_key]

        desc = normalize(description)
        sec = normalize(section)

        if contains_any(desc, vocab.AMENITY_KEYWORDS):
            nature = ItemNature.AMENITY
        elif contains_any(desc, vocab.ADMINISTRATIVE_KEYWORDS):
            nature = ItemNature.ADMINISTRATIVE
        elif contains_any(desc, ("dia cama", "derecho de pabellon", "derecho pabellon", "habitacion")):
            nature = ItemNature.ROOM_CHARGE
        elif contains_word(desc, vocab.NURSING_ACT_KEYWORDS):
            nature = ItemNature.NURSING_ACT
        elif self.is_drug(sec, desc):
            nature = ItemNature.MEDICATION
        elif contains_any(desc, vocab.SUPPLY_KEYWORDS) or contains_any(sec, vocab.SUPPLY_SECTIONS):
            nature = ItemNature.SUPPLY
        else:
            nature = ItemNature.OTHER

        self._nature_cache[cache_key] = nature
        return nature

    def is_drug(self, section: str, description: str) -> bool:
        """Drug signal on normalized section/description text."""
        if contains_any(description, vocab.MEDICATION_EXCLUSIONS):
            return False
        if contains_any(section, vocab.PHARMACY_SECTIONS):
            return True
        if contains_any(description, vocab.KNOWN_DRUGS) or contains_any(description, vocab.PHARMA_FORMS):
            return True
        return bool(self.DOSAGE_PATTERN.search(description))

    def is_clinical(self, nature: ItemNature) -> bool:
        return nature in (ItemNature.MEDICATION, ItemNature.SUPPLY, ItemNature.NURSING_ACT)


# Singleton instance
_mapper_instance: DomainMapper | None = None


def get_mapper() -> DomainMapper:
    """Get the singleton mapper instance."""
    global _mapper_instance
    if _mapper_instance is None:
        _mapper_instance = DomainMapper()
    return _mapper_instance
