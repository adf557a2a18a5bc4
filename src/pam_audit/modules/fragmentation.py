"""
Fragmentation Classifier.
Labels reconciliation irregularities with five decision motors (M1-M5),
evaluated in priority order; the first motor that fires decides the line.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from ..core import vocabulary as vocab
from ..core.config import AuditConfig
from ..core.domain_mapper import DomainMapper, ParsedLine, get_mapper
from ..core.models import (
    AdjudicationLine,
    ContractCheck,
    ContractState,
    ContractualShortfall,
    Correct,
    CostTransfer,
    CostTransferKind,
    CoverageDomain,
    DomainReclassification,
    EventModel,
    ItemNature,
    Motor,
    MotorFinding,
    NonBillableAct,
    Package,
    Traceability,
    TotalOpacity,
    Unbundling,
    Unverified,
)
from ..core.rule_engine import MotorRule, RuleEngine
from ..utils.money import amount_key, format_clp
from ..utils.text import contains_any, contains_word, normalize
from .contract import ContractEvaluator
from .matching import LineResolution
from .structure import infer_package_origin

logger = logging.getLogger(__name__)

EVIDENCE_LIST_LIMIT = 15

PACKAGE_SECTION_SIGNALS: tuple[str, ...] = (
    "pabellon",
    "quirofano",
    "recuperacion",
    "anestesia",
    "dia cama",
    "hospitaliz",
    "habitacion",
)

CLINICALLY_SPECIFIC: frozenset[ItemNature] = frozenset({ItemNature.MEDICATION, ItemNature.SUPPLY})
NON_CLINICAL: frozenset[ItemNature] = frozenset({ItemNature.AMENITY, ItemNature.ADMINISTRATIVE})

ALTERNATIVE_DOMAINS: tuple[CoverageDomain, ...] = (
    CoverageDomain.HOSPITALIZATION,
    CoverageDomain.PROFESSIONAL_FEES,
)


@dataclass(frozen=True)
class MotorContext:
    """Everything the motors know about one line."""

    resolution: LineResolution
    contract: ContractCheck
    event_model: EventModel
    parsed: ParsedLine
    natures: tuple[ItemNature, ...]

    @property
    def line(self) -> AdjudicationLine:
        return self.resolution.line

    @property
    def copay(self) -> Decimal:
        return self.resolution.line.copay

    @property
    def zero_payment(self) -> bool:
        return self.resolution.line.paid == 0 and self.resolution.line.copay > 0

    @property
    def traceability(self) -> Traceability:
        return self.resolution.trace.traceability

    @property
    def description(self) -> str:
        return self.parsed.normalized_description

    @property
    def target(self) -> int:
        return amount_key(self.line.total_value) or amount_key(self.line.copay)

    @property
    def reconciled(self) -> bool:
        items = self.resolution.matched_items
        return bool(items) and self.resolution.matched_total in (self.target, amount_key(self.copay))


class FragmentationClassifier:
    """
    Classifies each resolved line with motors M1-M5.

    Zero-copay lines are correct without evaluation. When no motor fires,
    a strong and exactly reconciled line is correct, a line with no trace
    at all is total opacity, and anything else is left unverified.
    """

    def __init__(
        self,
        evaluator: ContractEvaluator,
        config: AuditConfig | None = None,
        rule_engine: RuleEngine | None = None,
    ) -> None:
        self.evaluator = evaluator
        self.config = config or AuditConfig()
        self.mapper: DomainMapper = get_mapper()
        self.engine = rule_engine or RuleEngine()
        self._register_rules()

    def _register_rules(self) -> None:
        """Register all motor rules."""
        # Anchored 1:1 item billed as an autonomous act
        self.engine.add_rule(
            MotorRule(
                rule_id="M1-A",
                name="Anchored Non-Billable Act",
                description="Unique 1:1 item rejected by the insurer that belongs inside a larger act",
                motor=Motor.M1,
                priority=10,
                evaluator=self._m1_anchored_item,
            )
        )

        # Nursing procedures outside pavilion/ward lines
        self.engine.add_rule(
            MotorRule(
                rule_id="M1-B",
                name="Nursing Procedure",
                description="Nursing-procedure glosa billed outside its pavilion or ward package",
                motor=Motor.M1,
                priority=20,
                evaluator=self._m1_nursing_keyword,
            )
        )

        # Zero payment on a specific code
        self.engine.add_rule(
            MotorRule(
                rule_id="M1-C",
                name="Zero Payment on Specific Code",
                description="Specific (non-generic) code with zero insurer payment",
                motor=Motor.M1,
                priority=30,
                evaluator=self._m1_zero_payment,
            )
        )

        # Reconstructed items carved out of a package
        self.engine.add_rule(
            MotorRule(
                rule_id="M2-A",
                name="Package Unbundling",
                description="Exact reconstruction of package components billed as uncovered",
                motor=Motor.M2,
                priority=40,
                evaluator=self._m2_reconstruction,
            )
        )

        # Standard package supply named in the glosa
        self.engine.add_rule(
            MotorRule(
                rule_id="M2-B",
                name="Standard Supply Unbundling",
                description="Glosa names a supply every package already includes",
                motor=Motor.M2,
                priority=45,
                evaluator=self._m2_standard_supply,
            )
        )

        self.engine.add_rule(
            MotorRule(
                rule_id="M3",
                name="Non-Clinical Cost Transfer",
                description="Zero payment on a generic/catch-all code",
                motor=Motor.M3,
                priority=50,
                evaluator=self._m3_cost_transfer,
            )
        )

        self.engine.add_rule(
            MotorRule(
                rule_id="M4",
                name="Domain Reclassification",
                description="Ambulatory domain during a package where hospital coverage was better",
                motor=Motor.M4,
                priority=60,
                evaluator=self._m4_domain_reclassification,
            )
        )

        self.engine.add_rule(
            MotorRule(
                rule_id="M5",
                name="Contractual Shortfall",
                description="Copay above the contractual expectation, or coverage cut by a cap",
                motor=Motor.M5,
                priority=70,
                evaluator=self._m5_contractual_shortfall,
            )
        )

    def classify(
        self, resolution: LineResolution, contract: ContractCheck, event_model: EventModel
    ) -> MotorFinding:
        """
        Classify one resolved line.

        Args:
            resolution: Matching outcome of the line
            contract: Contract evaluation of the line
            event_model: Inferred episode

        Returns:
            The finding of the first motor that fires, or a fallback
        """
        line = resolution.line
        if line.copay == 0:
            return Correct(rationale="Sin copago")

        context = MotorContext(
            resolution=resolution,
            contract=contract,
            event_model=event_model,
            parsed=self.mapper.parse_line(line.code, line.description),
            natures=tuple(self.mapper.item_nature(item.section, item.description) for item in resolution.matched_items),
        )

        matched = self.engine.first_match(context)
        if matched is not None:
            rule, finding = matched
            logger.debug("Line %s classified by %s", line.line_id, rule.rule_id)
            return finding

        if context.traceability == Traceability.STRONG and context.reconciled:
            return Correct(rationale="Conciliado con ancla fuerte")
        if context.traceability == Traceability.NONE:
            return TotalOpacity(
                rationale="Sin conciliación posible contra la cuenta clínica",
                economic_impact=line.copay,
            )
        return Unverified(rationale=f"Trazabilidad débil: {resolution.trace.traceability_reason}")

    # ------------------------------------------------------------------
    # M1: non-billable act
    # ------------------------------------------------------------------

    def _m1_anchored_item(self, ctx: MotorContext) -> MotorFinding | None:
        attempt = ctx.resolution.strong_attempt
        if not ctx.zero_payment or attempt is None or attempt.kind != "exact_amount":
            return None
        if len(attempt.item_ids) != 1 or ctx.natures[0] == ItemNature.AMENITY:
            return None

        if ctx.parsed.code == vocab.UNCOVERED_CODE:
            if ctx.natures[0] != ItemNature.NURSING_ACT:
                return None
        elif ctx.parsed.is_generic or ctx.parsed.is_catch_all:
            return None

        item = ctx.resolution.matched_items[0]
        return NonBillableAct(
            trigger="anchored_item",
            anchored_item_id=item.item_id,
            economic_impact=ctx.copay,
            rationale=(
                f"Acto accesorio '{item.description}' ({format_clp(item.total)}) anclado 1:1 y "
                "facturado como autónomo con bonificación $0"
            ),
        )

    def _m1_nursing_keyword(self, ctx: MotorContext) -> MotorFinding | None:
        if not contains_word(ctx.description, vocab.NURSING_ACT_KEYWORDS):
            return None
        if contains_any(ctx.description, vocab.NURSING_EXEMPT_DESCRIPTIONS):
            return None
        return NonBillableAct(
            trigger="nursing_keyword",
            economic_impact=ctx.copay,
            rationale="Procedimiento de enfermería inseparable del acto principal facturado como autónomo",
        )

    def _m1_zero_payment(self, ctx: MotorContext) -> MotorFinding | None:
        if not ctx.zero_payment or ctx.parsed.is_generic or ctx.parsed.is_catch_all:
            return None
        return NonBillableAct(
            trigger="zero_payment",
            economic_impact=ctx.copay,
            rationale="Acto accesorio inseparable del principal facturado como autónomo (Bonif 0 / Copago 100%)",
        )

    # ------------------------------------------------------------------
    # M2: unbundling
    # ------------------------------------------------------------------

    def _package_for(self, ctx: MotorContext) -> Package:
        if ctx.resolution.matched_items:
            return infer_package_origin(ctx.resolution.matched_items, ctx.event_model)
        return ctx.event_model.packages[0]

    def _m2_reconstruction(self, ctx: MotorContext) -> MotorFinding | None:
        if not ctx.zero_payment or not ctx.event_model.has_package or ctx.resolution.is_catch_all:
            return None
        if ctx.traceability != Traceability.STRONG or not ctx.reconciled:
            return None
        if any(nature in NON_CLINICAL for nature in ctx.natures):
            return None

        items = ctx.resolution.matched_items
        specific = all(
            nature in CLINICALLY_SPECIFIC or contains_any(normalize(item.section), PACKAGE_SECTION_SIGNALS)
            for item, nature in zip(items, ctx.natures)
        )
        if not specific:
            return None

        package = self._package_for(ctx)
        evidence = "\n".join(
            f"- [{item.position}] {item.description} | {format_clp(item.total)} | {item.section or ''}"
            for item in items[:EVIDENCE_LIST_LIMIT]
        )
        if len(items) > EVIDENCE_LIST_LIMIT:
            evidence += "\n... (ver ítems restantes)"

        return Unbundling(
            package=package,
            reconstructed_total=Decimal(ctx.resolution.matched_total),
            economic_impact=ctx.copay,
            rationale=(
                f"Paquete desplazado: el monto {format_clp(ctx.line.total_value)} se reconstruye con "
                f"{len(items)} ítems clínicos (suma {format_clp(ctx.resolution.matched_total)}) "
                f"pertenecientes al paquete {package.value}.\n{evidence}"
            ),
        )

    def _m2_standard_supply(self, ctx: MotorContext) -> MotorFinding | None:
        if not ctx.zero_payment or not ctx.event_model.has_package or ctx.resolution.is_catch_all:
            return None
        supply = next((s for s in vocab.PACKAGE_STANDARD_SUPPLIES if s in ctx.description), None)
        if supply is None:
            return None

        package = self._package_for(ctx)
        return Unbundling(
            package=package,
            reconstructed_total=Decimal(ctx.resolution.matched_total) if ctx.resolution.matched_items else None,
            economic_impact=ctx.copay,
            rationale=f"Insumo estándar ({supply}) desagregado de paquete clínico obligatorio ({package.value})",
        )

    # ------------------------------------------------------------------
    # M3: non-clinical cost transfer
    # ------------------------------------------------------------------

    def _m3_cost_transfer(self, ctx: MotorContext) -> MotorFinding | None:
        if not ctx.zero_payment or not (ctx.parsed.is_generic or ctx.parsed.is_catch_all):
            return None

        items = ctx.resolution.matched_items
        total = sum((item.total for item in items), Decimal("0"))
        amenity = sum(
            (item.total for item, nature in zip(items, ctx.natures) if nature == ItemNature.AMENITY), Decimal("0")
        )
        administrative = sum(
            (item.total for item, nature in zip(items, ctx.natures) if nature == ItemNature.ADMINISTRATIVE),
            Decimal("0"),
        )
        amenity_share = (amenity / total).quantize(Decimal("0.0001")) if total > 0 else Decimal("0")
        admin_share = (administrative / total).quantize(Decimal("0.0001")) if total > 0 else Decimal("0")

        dominant = self.config.thresholds.dominant_share
        if amenity_share >= dominant:
            kind = CostTransferKind.AMENITY
            detail = "predominio de ítems de hotelería/confort"
        elif admin_share >= dominant:
            kind = CostTransferKind.ADMINISTRATIVE
            detail = "predominio de cargos administrativos"
        elif amenity_share + admin_share >= dominant:
            kind = CostTransferKind.MIXED
            detail = "mezcla de hotelería y cargos administrativos"
        else:
            kind = CostTransferKind.GENERIC_REJECTION
            detail = "rechazo genérico sin composición no clínica acreditada"

        if items:
            rationale = (
                f"Bolsón genérico: {format_clp(ctx.copay)} trasladado al afiliado con {detail} "
                f"({len(items)} ítems, trazabilidad {ctx.traceability.value})"
            )
        else:
            rationale = "Traslado de costos a bolsón genérico sin trazabilidad clínica ni desglose"

        return CostTransfer(
            transfer_kind=kind,
            amenity_share=amenity_share,
            administrative_share=admin_share,
            economic_impact=ctx.copay,
            rationale=rationale,
        )

    # ------------------------------------------------------------------
    # M4: domain reclassification
    # ------------------------------------------------------------------

    def _m4_domain_reclassification(self, ctx: MotorContext) -> MotorFinding | None:
        if not ctx.event_model.has_package or not self.mapper.is_ambulatory(ctx.parsed.domain):
            return None

        best: tuple[Decimal, CoverageDomain, ContractCheck] | None = None
        for domain in ALTERNATIVE_DOMAINS:
            check = self.evaluator.evaluate_for_domain(ctx.line, domain)
            if check.expected_copay is None or check.tolerance is None:
                continue
            gain = ctx.copay - check.expected_copay
            if gain > check.tolerance and (best is None or gain > best[0]):
                best = (gain, domain, check)

        if best is None:
            return None

        gain, domain, check = best
        return DomainReclassification(
            mapped_domain=ctx.parsed.domain,
            alternative_domain=domain,
            alternative_rule_id=check.rule_ids[0],
            alternative_expected_copay=check.expected_copay,
            economic_impact=gain,
            rationale=(
                f"Prestación clasificada como {ctx.parsed.domain.value} durante evento con paquete; "
                f"bajo {domain.value} el copago esperado sería {format_clp(check.expected_copay)}"
            ),
        )

    # ------------------------------------------------------------------
    # M5: contractual shortfall
    # ------------------------------------------------------------------

    def _m5_contractual_shortfall(self, ctx: MotorContext) -> MotorFinding | None:
        state = ctx.contract.state
        if state not in (ContractState.UNDER_COVERED, ContractState.CAP_EXCEEDED):
            return None

        if state == ContractState.UNDER_COVERED:
            rationale = (
                f"Copago {format_clp(ctx.copay)} supera el esperado por contrato "
                f"{format_clp(ctx.contract.expected_copay)} ({ctx.contract.notes})"
            )
        else:
            rationale = (
                f"Bonificación limitada por tope de {format_clp(ctx.contract.cap_clp)} "
                f"({ctx.contract.cap_conversion_source}); cobertura perdida {format_clp(ctx.contract.shortfall)}"
            )

        return ContractualShortfall(
            contract_state=state,
            economic_impact=ctx.contract.shortfall,
            rationale=rationale,
        )
