"""
Indexing & Pre-processing Module.
Assigns stable identifiers, recovers lost section headers, restores physical
order and checks adjudication integrity before any matching happens.
"""

import logging
from decimal import Decimal

from ..core import vocabulary as vocab
from ..core.config import CoherenceTolerance
from ..core.models import Adjudication, AdjudicationLine, Bill, BillItem
from ..utils.text import contains_any, contains_word, normalize

logger = logging.getLogger(__name__)


def _dedupe(candidate: str, seen: set[str]) -> str:
    """Return candidate, or candidate with a numeric suffix if already taken."""
    unique = candidate
    suffix = 2
    while unique in seen:
        unique = f"{candidate}-{suffix}"
        suffix += 1
    seen.add(unique)
    return unique


def assign_item_ids(items: list[BillItem]) -> list[BillItem]:
    """
    Give every bill item a deterministic identifier.

    Preference order: the item's own identifier, then its physical index,
    then its input order. Collisions get a "-2", "-3"... suffix. Missing
    positions are filled with the input order.
    """
    seen: set[str] = set()
    result: list[BillItem] = []

    for index, item in enumerate(items):
        if item.item_id:
            candidate = item.item_id
        elif item.position is not None:
            candidate = f"B{item.position:04d}"
        else:
            candidate = f"I{index:04d}"

        position = item.position if item.position is not None else index
        result.append(item.model_copy(update={"item_id": _dedupe(candidate, seen), "position": position}))

    return result


def sort_by_position(items: list[BillItem]) -> list[BillItem]:
    """Stable sort by physical position (document order)."""
    return sorted(items, key=lambda item: item.position if item.position is not None else 0)


def _section_signal(description: str) -> str | None:
    """Section label implied by a description, if any."""
    desc = normalize(description)
    if contains_any(desc, vocab.PROFESSIONAL_FEE_SIGNALS):
        return vocab.INFERRED_FEES_SECTION
    if contains_any(desc, vocab.OPERATING_ROOM_SIGNALS):
        return vocab.INFERRED_OPERATING_ROOM_SECTION
    if contains_word(desc, vocab.WARD_SIGNALS):
        return vocab.INFERRED_WARD_SECTION
    return None


def infer_sections(items: list[BillItem]) -> list[BillItem]:
    """
    Propagate a running "current section" to items without one.

    An explicit section label takes over the running section; a description
    carrying a ward, operating-room or professional-fee signal starts a new
    inferred section that lasts until the next signal.
    """
    running: str | None = None
    result: list[BillItem] = []

    for item in items:
        if item.section:
            running = item.section
            result.append(item)
            continue

        signal = _section_signal(item.description)
        if signal is not None:
            running = signal

        if running is None:
            result.append(item)
        else:
            result.append(item.model_copy(update={"section": running, "section_inferred": True}))

    return result


def prepare_bill(bill: Bill) -> list[BillItem]:
    """Identify, order and label bill items. No item is ever dropped."""
    items = assign_item_ids(list(bill.items))
    items = sort_by_position(items)
    items = infer_sections(items)

    inferred = sum(1 for item in items if item.section_inferred)
    logger.debug("Prepared %d bill items (%d with inferred section)", len(items), inferred)
    return items


def flatten_adjudication(adjudication: Adjudication) -> list[AdjudicationLine]:
    """
    Flatten PAM folios into lines that carry their folio and provider.

    Lines without identifiers are named "{folio}-{n}". All-zero lines carry
    no information and are skipped.
    """
    seen: set[str] = set()
    lines: list[AdjudicationLine] = []

    for folio in adjudication.folios:
        for number, line in enumerate(folio.lines, start=1):
            if line.is_zero:
                logger.debug("Skipping all-zero line %s-%d (%s)", folio.folio, number, line.code)
                continue

            line_id = _dedupe(line.line_id or f"{folio.folio}-{number}", seen)
            lines.append(
                line.model_copy(
                    update={
                        "line_id": line_id,
                        "folio": line.folio or folio.folio,
                        "provider": line.provider or folio.provider or folio.folio,
                    }
                )
            )

    return lines


def check_integrity(
    lines: list[AdjudicationLine],
    declared_total_copay: Decimal | None,
    tolerance: CoherenceTolerance,
) -> list[str]:
    """
    Check adjudication coherence.

    Violations are returned as warnings and logged; they never abort the run.

    Returns:
        Warning messages in line order, global check last
    """
    warnings: list[str] = []

    for line in lines:
        if line.copay < 0:
            warnings.append(f"Línea {line.line_id} ({line.code}): copago negativo {line.copay}")

        if line.total_value > 0:
            band = tolerance.floor_clp + tolerance.pct_of_total * line.total_value
            difference = abs(line.paid + line.copay - line.total_value)
            if difference > band:
                warnings.append(
                    f"Línea {line.line_id} ({line.code}): valor {line.total_value} != "
                    f"bonificación {line.paid} + copago {line.copay}"
                )

    if declared_total_copay is not None:
        computed = sum((line.copay for line in lines), Decimal("0"))
        if abs(computed - declared_total_copay) > tolerance.global_copay_clp:
            warnings.append(
                f"Copago total declarado {declared_total_copay} difiere del calculado {computed}"
            )

    for message in warnings:
        logger.warning(message)

    return warnings
