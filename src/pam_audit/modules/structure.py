"""
Structural Analysis Module.
Builds read-only indices over the available bill items, detects accounting
subtotal blocks, infers the clinical event model and grades traceability.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..core import vocabulary as vocab
from ..core.models import (
    BillItem,
    EventModel,
    Package,
    PrincipalAct,
    Traceability,
    TraceAttempt,
    TraceStatus,
)
from ..utils.text import contains_any, contains_word, normalize

logger = logging.getLogger(__name__)

NO_SECTION = "SIN SECCION"
NO_ANCHOR_DISTANCE = 999_999

_STRONG_REASONS: dict[str, str] = {
    "exact_amount": "Ancla monto 1:1 única",
    "text": "Glosa exacta con monto conciliado",
    "contiguous_window": "Bloque contiguo coherente",
    "subtotal": "Subtotal contable explícito",
    "subset_sum": "Desglose en dominio clínico",
    "residual_segment": "Segmento residual coherente",
}


@dataclass(frozen=True)
class SubtotalBlock:
    """A group of items whose totals add up to a stated or virtual subtotal."""

    block_id: str
    total: int
    component_ids: tuple[str, ...]
    label: str
    virtual: bool = False
    anchor_id: str | None = None


@dataclass
class BillIndex:
    """
    Read-only indices over the currently available bill items.

    Rebuilt before every adjudication line, since consumption changes
    which items are available.
    """

    items: tuple[BillItem, ...]
    by_amount: dict[int, list[BillItem]] = field(default_factory=dict)
    by_text: dict[str, list[BillItem]] = field(default_factory=dict)
    blocks: list[SubtotalBlock] = field(default_factory=list)
    rank: dict[str, int] = field(default_factory=dict)

    def get(self, item_id: str) -> BillItem:
        return self.items[self.rank[item_id]]

    def resolve(self, item_ids: Sequence[str]) -> list[BillItem]:
        """Items for the given identifiers, in physical order."""
        return sorted((self.get(item_id) for item_id in item_ids), key=lambda item: self.rank[item.item_id])


def build_index(items: Sequence[BillItem]) -> BillIndex:
    """Index items (already in physical order) by amount, text and subtotal block."""
    index = BillIndex(items=tuple(items))

    for rank, item in enumerate(index.items):
        index.rank[item.item_id] = rank
        index.by_amount.setdefault(item.amount, []).append(item)
        index.by_text.setdefault(normalize(item.description), []).append(item)

    index.blocks = detect_subtotals(index.items)
    return index


def detect_subtotals(items: Sequence[BillItem]) -> list[SubtotalBlock]:
    """
    Detect subtotal blocks.

    Explicit blocks come from a right-to-left running-sum scan: an item whose
    total equals the sum of two or more immediately preceding open items is a
    subtotal line, and those items are its components. Virtual blocks group
    the non-subtotal items of each section label.
    """
    blocks: list[SubtotalBlock] = []
    open_items: list[BillItem] = []

    for item in items:
        value = item.amount
        start = -1
        running = 0
        for j in range(len(open_items) - 1, -1, -1):
            running += open_items[j].amount
            if running == value:
                start = j
                break
            if running > value:
                break

        if start != -1 and len(open_items) - start >= 2:
            components = open_items[start:]
            blocks.append(
                SubtotalBlock(
                    block_id=f"SUB-{item.item_id}",
                    total=value,
                    component_ids=tuple(c.item_id for c in components),
                    label=f"Total línea: {item.description}",
                    anchor_id=item.item_id,
                )
            )
            open_items = open_items[:start]
        elif value > 0:
            open_items.append(item)

    anchors = {block.anchor_id for block in blocks}
    groups: dict[str, list[BillItem]] = {}
    for item in items:
        if item.item_id in anchors:
            continue
        groups.setdefault(item.section or NO_SECTION, []).append(item)

    for section, members in groups.items():
        total = sum(member.amount for member in members)
        if len(members) < 2 or total <= 0:
            continue
        blocks.append(
            SubtotalBlock(
                block_id=f"SEC-{normalize(section).replace(' ', '-') or 'x'}",
                total=total,
                component_ids=tuple(member.item_id for member in members),
                label=f"Sección: {section}",
                virtual=True,
            )
        )

    return blocks


def infer_event_model(items: Sequence[BillItem]) -> EventModel:
    """Infer the principal act and all-inclusive packages present in the bill."""
    text = normalize(" ".join(f"{item.section or ''} {item.description}" for item in items))

    has_operating_room = contains_any(text, vocab.OPERATING_ROOM_SIGNALS)
    has_anesthesia = contains_any(text, vocab.ANESTHESIA_DRUGS)
    has_ward = contains_word(text, vocab.WARD_SIGNALS)
    surgical = has_operating_room or has_anesthesia

    packages: list[Package] = []
    if surgical:
        packages.append(Package.OPERATING_ROOM)
    if has_ward:
        packages.append(Package.WARD)

    if has_anesthesia and not has_operating_room:
        notes = "Pabellón inferido por presencia de fármacos anestésicos o sección de estupefacientes"
    else:
        notes = "Inferido determinísticamente por glosas de secciones e ítems"

    return EventModel(
        principal_act=PrincipalAct.MAJOR_SURGERY if surgical else PrincipalAct.GENERAL_HOSPITALIZATION,
        packages=packages,
        notes=notes,
    )


def anchor_positions(items: Sequence[BillItem]) -> dict[Package, list[int]]:
    """Physical positions of operating-room and ward charge items."""
    anchors: dict[Package, list[int]] = {Package.OPERATING_ROOM: [], Package.WARD: []}
    for item in items:
        if item.position is None:
            continue
        desc = normalize(item.description)
        if contains_any(desc, ("pabellon", "quirofano", "recuperacion")):
            anchors[Package.OPERATING_ROOM].append(item.position)
        if contains_word(desc, vocab.WARD_SIGNALS):
            anchors[Package.WARD].append(item.position)
    return anchors


def anchor_distance(position: int | None, anchors: dict[Package, list[int]]) -> int:
    """Distance from a position to the nearest structural anchor."""
    if position is None:
        return NO_ANCHOR_DISTANCE
    distances = [abs(position - anchor) for positions in anchors.values() for anchor in positions]
    return min(distances, default=NO_ANCHOR_DISTANCE)


def infer_package_origin(items: Sequence[BillItem], event_model: EventModel) -> Package:
    """
    Most plausible package a set of unbundled items was carved out of.

    Section geometry decides first, then anesthesia drug fingerprints, then
    the event model. Ward is the default.
    """
    sections = normalize(" ".join(item.section or "" for item in items))
    if contains_any(sections, ("pabellon", "quirofano", "anestesia", "recuperacion")):
        return Package.OPERATING_ROOM
    if contains_any(sections, ("dia cama", "hospitaliz", "habitacion")):
        return Package.WARD
    if contains_any(sections, vocab.EMERGENCY_SIGNALS):
        return Package.EMERGENCY

    descriptions = normalize(" ".join(item.description for item in items))
    if contains_any(descriptions, vocab.ANESTHESIA_DRUGS):
        return Package.OPERATING_ROOM

    if event_model.principal_act == PrincipalAct.MAJOR_SURGERY and contains_any(
        descriptions, ("mg", "ml", "ampolla")
    ):
        return Package.OPERATING_ROOM

    return Package.WARD


def assess_traceability(attempts: Sequence[TraceAttempt]) -> tuple[Traceability, str]:
    """Grade the evidence trail of a line as strong, weak or none."""
    for attempt in attempts:
        if attempt.strong:
            return Traceability.STRONG, _STRONG_REASONS[attempt.kind]

    for attempt in attempts:
        if attempt.item_ids or attempt.candidates or attempt.status != TraceStatus.FAIL:
            return Traceability.WEAK, f"Coincidencia numérica sin ancla ({attempt.kind})"

    return Traceability.NONE, "Sin ancla ni desglose"


def summarize_trace(attempts: Sequence[TraceAttempt], traceability: Traceability) -> TraceStatus:
    """Collapse a line's attempts into a single trace status."""
    if traceability == Traceability.STRONG:
        return TraceStatus.OK
    statuses = {attempt.status for attempt in attempts}
    if TraceStatus.AMBIGUOUS in statuses:
        return TraceStatus.AMBIGUOUS
    if TraceStatus.OK in statuses or TraceStatus.PARTIAL in statuses:
        return TraceStatus.PARTIAL
    return TraceStatus.FAIL
