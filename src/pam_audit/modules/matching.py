"""
Matching Engine.
Attributes each adjudication line to the bill items that justify its amount,
using layered strategies over the items still available, in two passes.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from ..core.config import AuditConfig
from ..core.domain_mapper import get_mapper
from ..core.models import (
    AdjudicationLine,
    BillItem,
    ContiguousWindowAttempt,
    ExactAmountAttempt,
    LineTrace,
    Package,
    ResidualSegmentAttempt,
    SubsetSumAttempt,
    SubtotalAttempt,
    TextAttempt,
    TraceAttempt,
    TraceCandidate,
    TraceStatus,
)
from ..utils.money import amount_key
from ..utils.text import normalize
from .domain_filter import CATCH_ALL, CatchAll, DomainFilter, resolve_domain_filter
from .structure import (
    BillIndex,
    SubtotalBlock,
    anchor_distance,
    assess_traceability,
    build_index,
    summarize_trace,
)
from .subset_search import LineProfile, score_bundle, search_best_subset

logger = logging.getLogger(__name__)

MIN_SUBSTRING_LENGTH = 5


@dataclass(frozen=True)
class ConsumptionState:
    """
    Bill items in physical order plus the identifiers already attributed.

    Never mutated: consume() returns a new state.
    """

    arena: tuple[BillItem, ...]
    consumed: frozenset[str] = frozenset()

    def available(self) -> list[BillItem]:
        return [item for item in self.arena if item.item_id not in self.consumed]

    def consume(self, item_ids: Iterable[str]) -> "ConsumptionState":
        """Mark items as attributed. Refuses unknown or already consumed ids."""
        ids = list(item_ids)
        known = {item.item_id for item in self.arena}
        unknown = [item_id for item_id in ids if item_id not in known]
        if unknown:
            raise ValueError(f"Unknown bill items: {unknown}")
        taken = [item_id for item_id in ids if item_id in self.consumed]
        if taken or len(set(ids)) != len(ids):
            raise ValueError(f"Bill items consumed twice: {taken or ids}")
        return ConsumptionState(arena=self.arena, consumed=self.consumed | frozenset(ids))


@dataclass(frozen=True)
class LineResolution:
    """Outcome of matching one adjudication line."""

    line: AdjudicationLine
    resolution_pass: int
    trace: LineTrace
    matched_items: tuple[BillItem, ...] = ()
    consumed_ids: tuple[str, ...] = ()
    is_catch_all: bool = False

    @property
    def strong_attempt(self) -> TraceAttempt | None:
        return next((attempt for attempt in self.trace.attempts if attempt.strong), None)

    @property
    def matched_total(self) -> int:
        return sum(item.amount for item in self.matched_items)


@dataclass
class _LineContext:
    line: AdjudicationLine
    target: int
    index: BillIndex
    domain_filter: DomainFilter | CatchAll | None
    profile: LineProfile

    @property
    def strict_filter(self) -> DomainFilter | None:
        if isinstance(self.domain_filter, DomainFilter) and self.domain_filter.strict:
            return self.domain_filter
        return None


def is_catch_all_line(line: AdjudicationLine) -> bool:
    return resolve_domain_filter(line.code, line.description) is CATCH_ALL


class MatchingEngine:
    """
    Runs the matching strategies in priority order for each line,
    short-circuiting at the first strong attempt.
    """

    def __init__(
        self,
        config: AuditConfig,
        anchors: dict[Package, list[int]] | None = None,
    ) -> None:
        self.config = config
        self.anchors = anchors or {}

    # ------------------------------------------------------------------
    # Two-pass resolution
    # ------------------------------------------------------------------

    def resolve_all(
        self, lines: Sequence[AdjudicationLine], state: ConsumptionState
    ) -> tuple[list[LineResolution], ConsumptionState]:
        """
        Resolve every line in two passes.

        Pass 1 takes domain-specific lines in input order; pass 2 takes
        catch-all lines by descending declared amount over what is left.
        Results come back in input order.
        """
        flags = [is_catch_all_line(line) for line in lines]
        first = [i for i, flag in enumerate(flags) if not flag]
        second = sorted(
            (i for i, flag in enumerate(flags) if flag),
            key=lambda i: -amount_key(lines[i].total_value),
        )

        resolved: dict[int, LineResolution] = {}
        for resolution_pass, order in ((1, first), (2, second)):
            for i in order:
                resolved[i], state = self.resolve_line(lines[i], state, resolution_pass)

        return [resolved[i] for i in range(len(lines))], state

    def resolve_line(
        self, line: AdjudicationLine, state: ConsumptionState, resolution_pass: int
    ) -> tuple[LineResolution, ConsumptionState]:
        """Resolve one line against the available pool and consume on a strong match."""
        domain_filter = resolve_domain_filter(line.code, line.description)
        catch_all = domain_filter is CATCH_ALL
        ctx = _LineContext(
            line=line,
            target=amount_key(line.total_value) or amount_key(line.copay),
            index=build_index(state.available()),
            domain_filter=domain_filter,
            profile=LineProfile.from_line(line, is_catch_all=catch_all),
        )

        strategies = [self._exact_amount, self._text, self._contiguous_window, self._subtotal]
        strategies.append(self._residual_segments if catch_all else self._subset_sum)

        attempts: list[TraceAttempt] = []
        for strategy in strategies:
            attempt = strategy(ctx)
            attempts.append(attempt)
            logger.debug("Line %s: %s -> %s", line.line_id, attempt.kind, attempt.status.value)
            if attempt.strong:
                break

        traceability, reason = assess_traceability(attempts)
        matched_ids = self._matched_ids(attempts)
        matched = tuple(ctx.index.resolve(matched_ids))

        consumed: tuple[str, ...] = ()
        strong = next((attempt for attempt in attempts if attempt.strong), None)
        if strong is not None:
            consumed = tuple(strong.item_ids)
            if isinstance(strong, SubtotalAttempt):
                consumed += tuple(strong.anchor_ids)
            state = state.consume(consumed)

        trace = LineTrace(
            status=summarize_trace(attempts, traceability),
            traceability=traceability,
            traceability_reason=reason,
            attempts=attempts,
            matched_item_ids=[item.item_id for item in matched],
        )
        resolution = LineResolution(
            line=line,
            resolution_pass=resolution_pass,
            trace=trace,
            matched_items=matched,
            consumed_ids=consumed,
            is_catch_all=catch_all,
        )
        return resolution, state

    @staticmethod
    def _matched_ids(attempts: Sequence[TraceAttempt]) -> list[str]:
        for attempt in attempts:
            if attempt.strong:
                return list(attempt.item_ids)
        for attempt in attempts:
            if attempt.item_ids:
                return list(attempt.item_ids)
        return []

    # ------------------------------------------------------------------
    # Ranking helpers
    # ------------------------------------------------------------------

    def _rank_key(self, item: BillItem, ctx: _LineContext) -> tuple[int, int, int, str]:
        """Anchor proximity, domain consistency, earliest position, identifier."""
        consistent = 0
        if isinstance(ctx.domain_filter, DomainFilter) and not ctx.domain_filter.accepts(item):
            consistent = 1
        return (
            anchor_distance(item.position, self.anchors),
            consistent,
            item.position if item.position is not None else 0,
            item.item_id,
        )

    def _ranked_candidates(self, items: Sequence[BillItem], ctx: _LineContext) -> list[TraceCandidate]:
        ranked = sorted(items, key=lambda item: self._rank_key(item, ctx))
        candidates = []
        for item in ranked:
            distance, consistent, _, _ = self._rank_key(item, ctx)
            reasons = [f"distancia a ancla {distance}"]
            if consistent == 0 and isinstance(ctx.domain_filter, DomainFilter):
                reasons.append("consistente con dominio")
            candidates.append(TraceCandidate(item_ids=[item.item_id], reasons=reasons))
        return candidates

    def _passes_strict(self, items: Iterable[BillItem], ctx: _LineContext) -> bool:
        strict = ctx.strict_filter
        return strict is None or all(strict.accepts(item) for item in items)

    def _clean_for_catch_all(self, items: Iterable[BillItem], ctx: _LineContext) -> bool:
        """Catch-all lines only take bundles without clinical items."""
        if not ctx.profile.is_catch_all:
            return True
        mapper = get_mapper()
        return not any(mapper.is_clinical(mapper.item_nature(item.section, item.description)) for item in items)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _exact_amount(self, ctx: _LineContext) -> ExactAmountAttempt:
        """Single available item equal to the line total, or to its copay."""
        total = amount_key(ctx.line.total_value)
        copay = amount_key(ctx.line.copay)
        probes: list[tuple[str, int]] = [("total", total)]
        if copay != total:
            probes.append(("copay", copay))

        for matched_on, amount in probes:
            if amount <= 0:
                continue
            hits = ctx.index.by_amount.get(amount, [])
            if len(hits) == 1:
                return ExactAmountAttempt(
                    status=TraceStatus.OK,
                    strong=True,
                    target=amount,
                    item_ids=[hits[0].item_id],
                    matched_on=matched_on,
                    detail=f"Monto único ({matched_on})",
                )
            if hits:
                candidates = self._ranked_candidates(hits, ctx)
                return ExactAmountAttempt(
                    status=TraceStatus.AMBIGUOUS,
                    target=amount,
                    item_ids=candidates[0].item_ids,
                    candidates=candidates,
                    matched_on=matched_on,
                    detail=f"{len(hits)} ítems con el mismo monto ({matched_on})",
                )

        return ExactAmountAttempt(status=TraceStatus.FAIL, target=total, detail="Sin coincidencia de monto")

    def _text(self, ctx: _LineContext) -> TextAttempt:
        """Normalized description match (exact, then substring)."""
        norm = normalize(ctx.line.description)
        if not norm:
            return TextAttempt(status=TraceStatus.FAIL, target=ctx.target, detail="Glosa vacía")

        exact = ctx.index.by_text.get(norm, [])
        if exact:
            single = [item for item in exact if item.amount == ctx.target]
            if len(single) == 1:
                chosen = single
            elif sum(item.amount for item in exact) == ctx.target:
                chosen = exact
            else:
                chosen = []
            if chosen:
                return TextAttempt(
                    status=TraceStatus.OK,
                    strong=True,
                    target=ctx.target,
                    item_ids=[item.item_id for item in chosen],
                    match_type="exact",
                    detail="Glosa exacta con monto conciliado",
                )
            return TextAttempt(
                status=TraceStatus.PARTIAL,
                target=ctx.target,
                candidates=self._ranked_candidates(exact, ctx),
                match_type="exact",
                detail="Glosa exacta sin conciliación de monto",
            )

        partial = [
            item
            for key, items in ctx.index.by_text.items()
            if len(key) > MIN_SUBSTRING_LENGTH and (key in norm or norm in key)
            for item in items
        ]
        if partial:
            return TextAttempt(
                status=TraceStatus.PARTIAL,
                target=ctx.target,
                candidates=self._ranked_candidates(partial, ctx),
                match_type="substring",
                detail="Coincidencia parcial de glosa",
            )

        return TextAttempt(status=TraceStatus.FAIL, target=ctx.target, detail="Sin coincidencia de glosa")

    def _windows(self, items: Sequence[BillItem], ctx: _LineContext) -> list[tuple[list[BillItem], int, list[str]]]:
        """All contiguous runs of two or more items adding up to the target, scored."""
        thresholds = self.config.thresholds
        found = []
        for start in range(len(items)):
            running = 0
            for end in range(start, len(items)):
                running += items[end].amount
                if running == ctx.target:
                    window = list(items[start : end + 1])
                    if len(window) >= 2 and self._passes_strict(window, ctx):
                        scored = score_bundle(window, ctx.index.rank, ctx.profile, thresholds)
                        reasons = [*scored.reasons, f"Ventana contigua (+{thresholds.window_bonus})"]
                        found.append((window, scored.score + thresholds.window_bonus, reasons))
                    break
                if running > ctx.target:
                    break
        found.sort(key=lambda entry: -entry[1])
        return found

    def _contiguous_window(self, ctx: _LineContext) -> ContiguousWindowAttempt:
        """Physically contiguous run of available items whose sum equals the target."""
        if ctx.target <= 0:
            return ContiguousWindowAttempt(status=TraceStatus.FAIL, detail="Monto objetivo nulo")

        windows = self._windows(ctx.index.items, ctx)
        if not windows:
            return ContiguousWindowAttempt(status=TraceStatus.FAIL, target=ctx.target, detail="Sin bloque contiguo")

        clean = [entry for entry in windows if self._clean_for_catch_all(entry[0], ctx)]
        best_items, best_score, reasons = (clean or windows)[0]
        strong = bool(clean) and best_score >= self.config.thresholds.strong_score
        return ContiguousWindowAttempt(
            status=TraceStatus.OK if strong else TraceStatus.PARTIAL,
            strong=strong,
            target=ctx.target,
            item_ids=[item.item_id for item in best_items],
            candidates=[
                TraceCandidate(item_ids=[item.item_id for item in items], score=score, reasons=why)
                for items, score, why in windows
            ],
            detail=f"Bloque contiguo (score {best_score}): {', '.join(reasons)}",
        )

    def _subtotal_combination(self, blocks: Sequence[SubtotalBlock], target: int) -> list[SubtotalBlock] | None:
        """First combination (up to the budget) of component-disjoint blocks summing to target."""
        limit = self.config.search.max_subtotal_blocks
        usable = [block for block in blocks if 0 < block.total <= target]

        def search(start: int, total: int, chosen: list[SubtotalBlock], used: set[str]) -> list[SubtotalBlock] | None:
            if total == target:
                return chosen
            if len(chosen) >= limit:
                return None
            for i in range(start, len(usable)):
                block = usable[i]
                members = set(block.component_ids) | ({block.anchor_id} if block.anchor_id else set())
                if total + block.total > target or members & used:
                    continue
                found = search(i + 1, total + block.total, [*chosen, block], used | members)
                if found:
                    return found
            return None

        return search(0, 0, [], set())

    def _subtotal(self, ctx: _LineContext) -> SubtotalAttempt:
        """Explicit accounting subtotal block (or combination of blocks) equal to the target."""
        if ctx.target <= 0:
            return SubtotalAttempt(status=TraceStatus.FAIL, detail="Monto objetivo nulo")

        blocks = [
            block
            for block in ctx.index.blocks
            if self._passes_strict((ctx.index.get(item_id) for item_id in block.component_ids), ctx)
        ]
        blocks.sort(key=lambda block: block.virtual)

        chosen = next(([block] for block in blocks if block.total == ctx.target), None)
        if chosen is None:
            chosen = self._subtotal_combination(blocks, ctx.target)
        if not chosen:
            return SubtotalAttempt(status=TraceStatus.FAIL, target=ctx.target, detail="Sin subtotal coincidente")

        virtual = any(block.virtual for block in chosen)
        component_ids = [item_id for block in chosen for item_id in block.component_ids]
        components = ctx.index.resolve(component_ids)
        strong = not virtual and self._clean_for_catch_all(components, ctx)
        return SubtotalAttempt(
            status=TraceStatus.OK if strong else TraceStatus.PARTIAL,
            strong=strong,
            target=ctx.target,
            item_ids=[item.item_id for item in components],
            block_ids=[block.block_id for block in chosen],
            anchor_ids=[block.anchor_id for block in chosen if block.anchor_id],
            virtual=virtual,
            detail="; ".join(block.label for block in chosen),
        )

    def _subset_sum(self, ctx: _LineContext) -> SubsetSumAttempt:
        """Bounded combinatorial search, domain-restricted first."""
        if ctx.target <= 0:
            return SubsetSumAttempt(status=TraceStatus.FAIL, detail="Monto objetivo nulo")

        search = self.config.search
        thresholds = self.config.thresholds
        domain_filter = ctx.domain_filter if isinstance(ctx.domain_filter, DomainFilter) else None
        domain = domain_filter.name.value if domain_filter else None

        if domain_filter is not None:
            pool = [item for item in ctx.index.items if domain_filter.accepts(item)]
            match = search_best_subset(pool, ctx.target, ctx.index.rank, ctx.profile, search, thresholds)
            if match is not None:
                strong = match.score.score >= thresholds.strong_score
                return SubsetSumAttempt(
                    status=TraceStatus.OK if strong else TraceStatus.PARTIAL,
                    strong=strong,
                    target=ctx.target,
                    item_ids=[item.item_id for item in match.items],
                    candidates=list(match.candidates),
                    domain_filtered=True,
                    domain=domain,
                    ordering=match.ordering,
                    detail=f"Desglose [dominio={domain}] (score {match.score.score}): {', '.join(match.score.reasons)}",
                )
            if domain_filter.strict:
                return SubsetSumAttempt(
                    status=TraceStatus.FAIL,
                    target=ctx.target,
                    domain_filtered=True,
                    domain=domain,
                    detail="Sin combinación en dominio estricto",
                )

        match = search_best_subset(ctx.index.items, ctx.target, ctx.index.rank, ctx.profile, search, thresholds)
        if match is None:
            return SubsetSumAttempt(status=TraceStatus.FAIL, target=ctx.target, detail="Sin combinación exacta")

        return SubsetSumAttempt(
            status=TraceStatus.PARTIAL,
            target=ctx.target,
            item_ids=[item.item_id for item in match.items],
            candidates=list(match.candidates),
            ordering=match.ordering,
            detail=f"Desglose sin filtro de dominio (score {match.score.score})",
        )

    def _segments(self, items: Sequence[BillItem]) -> list[list[BillItem]]:
        """Split physically ordered items into runs with small positional gaps."""
        gap = self.config.search.segment_gap
        segments: list[list[BillItem]] = []
        for item in items:
            if segments and (item.position or 0) - (segments[-1][-1].position or 0) <= gap:
                segments[-1].append(item)
            else:
                segments.append([item])
        return segments

    def _residual_segments(self, ctx: _LineContext) -> ResidualSegmentAttempt:
        """Catch-all lines: coherent local bundles first, full pool as weak fallback."""
        if ctx.target <= 0:
            return ResidualSegmentAttempt(status=TraceStatus.FAIL, detail="Monto objetivo nulo")

        search = self.config.search
        thresholds = self.config.thresholds
        best: tuple[bool, int, int, list[BillItem], list[str]] | None = None

        # Per segment the best clean window competes with the subset search;
        # clean bundles always rank above bundles holding clinical items.
        for number, segment in enumerate(self._segments(ctx.index.items)):
            options = [entry for entry in self._windows(segment, ctx) if self._clean_for_catch_all(entry[0], ctx)][:1]
            match = search_best_subset(segment, ctx.target, ctx.index.rank, ctx.profile, search, thresholds)
            if match is not None:
                options.append((list(match.items), match.score.score, list(match.score.reasons)))
            for items, score, reasons in options:
                clean = self._clean_for_catch_all(items, ctx)
                if best is None or (clean, score) > (best[0], best[1]):
                    best = (clean, score, number, items, reasons)

        if best is not None and best[0] and best[1] >= thresholds.strong_score:
            _, score, number, items, reasons = best
            return ResidualSegmentAttempt(
                status=TraceStatus.OK,
                strong=True,
                target=ctx.target,
                item_ids=[item.item_id for item in items],
                candidates=[TraceCandidate(item_ids=[item.item_id for item in items], score=score, reasons=reasons)],
                segment_index=number,
                detail=f"Segmento residual {number} (score {score})",
            )

        match = search_best_subset(ctx.index.items, ctx.target, ctx.index.rank, ctx.profile, search, thresholds)
        if match is not None:
            return ResidualSegmentAttempt(
                status=TraceStatus.PARTIAL,
                target=ctx.target,
                item_ids=[item.item_id for item in match.items],
                candidates=list(match.candidates),
                full_pool=True,
                detail=f"Coincidencia en pool completo (score {match.score.score})",
            )

        if best is not None:
            _, score, number, items, _ = best
            return ResidualSegmentAttempt(
                status=TraceStatus.PARTIAL,
                target=ctx.target,
                item_ids=[item.item_id for item in items],
                segment_index=number,
                detail=f"Segmento residual {number} con score insuficiente ({score})",
            )

        return ResidualSegmentAttempt(status=TraceStatus.FAIL, target=ctx.target, detail="Sin segmento residual")
