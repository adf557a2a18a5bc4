"""
Bounded subset-sum search and bundle scoring.

The search keeps a sparse map of reachable sums, so its worst case is
bounded by SearchBudget.max_candidates x SearchBudget.max_states rather
than by the target amount.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from ..core import vocabulary as vocab
from ..core.config import ClassifierThresholds, SearchBudget
from ..core.domain_mapper import get_mapper
from ..core.models import AdjudicationLine, BillItem, ItemNature, TraceCandidate
from ..utils.text import contains_any, normalize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineProfile:
    """What bundle scoring needs to know about the line being resolved."""

    is_hospitalization: bool = False
    is_catch_all: bool = False
    is_medication: bool = False

    @classmethod
    def from_line(cls, line: AdjudicationLine, is_catch_all: bool = False) -> "LineProfile":
        desc = normalize(line.description)
        return cls(
            is_hospitalization=line.code == vocab.HOSPITAL_GROUP_CODE
            or contains_any(desc, ("dia cama", "hospitalizacion")),
            is_catch_all=is_catch_all,
            is_medication=line.code == vocab.MEDICATION_CODE or "medicamento" in desc,
        )


@dataclass(frozen=True)
class BundleScore:
    score: int
    reasons: tuple[str, ...]


@dataclass(frozen=True)
class SubsetMatch:
    """Best subset found across pool orderings."""

    items: tuple[BillItem, ...]
    score: BundleScore
    ordering: str
    candidates: tuple[TraceCandidate, ...]


def score_bundle(
    items: Sequence[BillItem],
    rank: dict[str, int],
    profile: LineProfile,
    thresholds: ClassifierThresholds,
) -> BundleScore:
    """
    Score how coherent a set of bill items is as the breakdown of one line.

    Rewards physical contiguity (rank in the available pool) and section
    homogeneity; penalizes oversized bundles and domain impurity.
    """
    mapper = get_mapper()
    score = 0
    reasons: list[str] = []

    ranks = sorted(rank[item.item_id] for item in items)
    adjacent = sum(1 for a, b in zip(ranks, ranks[1:]) if b - a == 1)
    if ranks and adjacent == len(ranks) - 1:
        score += 20
        reasons.append("Bloque contiguo (+20)")
    elif len(ranks) > 1 and adjacent * 2 >= len(ranks) - 1:
        score += 10
        reasons.append("Mayormente contiguo (+10)")

    sections = {normalize(item.section) for item in items}
    if len(sections) == 1:
        score += 50
        reasons.append("Sección única (+50)")
    elif len(sections) == 2:
        score += 15
        reasons.append("Dos secciones (+15)")

    excess = len(items) - thresholds.bundle_size_limit
    if excess > 0:
        score -= 5 * excess
        reasons.append(f"Paquete extenso (-{5 * excess})")

    if profile.is_hospitalization and any(contains_any(s, ("pabellon", "quirurgico")) for s in sections):
        score -= 80
        reasons.append("Pabellón en línea de hospitalización (-80)")

    natures = [mapper.item_nature(item.section, item.description) for item in items]

    if profile.is_catch_all:
        clinical = sum(1 for nature in natures if mapper.is_clinical(nature))
        if clinical:
            score -= 25 * clinical
            reasons.append(f"Ítems clínicos en bolsón genérico (-{25 * clinical})")
        else:
            score += 30
            reasons.append("Composición no clínica (+30)")

    if profile.is_medication:
        non_drugs = sum(1 for nature in natures if nature != ItemNature.MEDICATION)
        if non_drugs:
            score -= 20 * non_drugs
            reasons.append(f"Ítems no farmacológicos (-{20 * non_drugs})")
        else:
            score += 20
            reasons.append("Solo fármacos (+20)")

    return BundleScore(score=score, reasons=tuple(reasons))


def find_subset(pool: Sequence[BillItem], target: int, budget: SearchBudget) -> list[BillItem] | None:
    """
    Exact subset-sum over whole-peso amounts.

    Items are taken in pool order, so the ordering of the pool decides which
    of several valid subsets is found first.
    """
    if target <= 0 or target > budget.max_target:
        return None

    candidates = [item for item in pool if 0 < item.amount <= target][: budget.max_candidates]
    parents: dict[int, tuple[int, int] | None] = {0: None}

    for index, item in enumerate(candidates):
        value = item.amount
        for reached in list(parents):
            total = reached + value
            if total > target or total in parents:
                continue
            if len(parents) >= budget.max_states:
                break
            parents[total] = (reached, index)
        if target in parents:
            break

    if target not in parents:
        return None

    chosen: list[BillItem] = []
    current = target
    while current:
        previous, index = parents[current]
        chosen.append(candidates[index])
        current = previous
    chosen.reverse()
    return chosen


def _orderings(
    pool: Sequence[BillItem], rank: dict[str, int], profile: LineProfile
) -> list[tuple[str, list[BillItem]]]:
    mapper = get_mapper()

    def by_rank(item: BillItem) -> int:
        return rank[item.item_id]

    orderings = [
        ("physical", sorted(pool, key=by_rank)),
        ("section", sorted(pool, key=lambda item: (normalize(item.section), by_rank(item)))),
        ("amount_desc", sorted(pool, key=lambda item: (-item.amount, by_rank(item)))),
    ]

    def non_clinical(item: BillItem) -> bool:
        return not mapper.is_clinical(mapper.item_nature(item.section, item.description))

    def is_drug(item: BillItem) -> bool:
        return mapper.item_nature(item.section, item.description) == ItemNature.MEDICATION

    preferred: Callable[[BillItem], bool] | None = None
    if profile.is_catch_all:
        preferred = non_clinical
    elif profile.is_medication:
        preferred = is_drug

    if preferred is not None:
        orderings.append(("affinity", sorted(pool, key=lambda item: (0 if preferred(item) else 1, by_rank(item)))))

    return orderings


def search_best_subset(
    pool: Sequence[BillItem],
    target: int,
    rank: dict[str, int],
    profile: LineProfile,
    budget: SearchBudget,
    thresholds: ClassifierThresholds,
) -> SubsetMatch | None:
    """
    Run the bounded search over several pool orderings and keep the best.

    Ties keep the earlier ordering (physical, section, amount, affinity).
    """
    best: SubsetMatch | None = None
    seen: set[tuple[str, ...]] = set()
    candidates: list[TraceCandidate] = []

    for name, ordered in _orderings(pool, rank, profile):
        found = find_subset(ordered, target, budget)
        if found is None:
            continue

        found.sort(key=lambda item: rank[item.item_id])
        key = tuple(item.item_id for item in found)
        if key in seen:
            continue
        seen.add(key)

        scored = score_bundle(found, rank, profile, thresholds)
        candidates.append(TraceCandidate(item_ids=list(key), score=scored.score, reasons=[name, *scored.reasons]))
        if best is None or scored.score > best.score.score:
            best = SubsetMatch(items=tuple(found), score=scored, ordering=name, candidates=())

    if best is None:
        return None

    ranked = sorted(candidates, key=lambda candidate: -candidate.score)
    logger.debug("Subset search for %d: best ordering %s score %d", target, best.ordering, best.score.score)
    return SubsetMatch(items=best.items, score=best.score, ordering=best.ordering, candidates=tuple(ranked))
