"""
Core data models for the PAM Audit Engine.
Uses Pydantic for validation and serialization.
"""

from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..utils.money import amount_key


class TraceStatus(str, Enum):
    """Outcome of a matching strategy, or the summary of a line's trace."""

    OK = "ok"
    PARTIAL = "partial"
    FAIL = "fail"
    AMBIGUOUS = "ambiguous"


class Traceability(str, Enum):
    """Whether a trace is strong enough to consume bill items."""

    STRONG = "strong"
    WEAK = "weak"
    NONE = "none"


class CoverageDomain(str, Enum):
    """Coverage domain tags used by canonical contracts."""

    HOSPITALIZATION = "HOSPITALIZACION"
    OPERATING_ROOM = "PABELLON"
    PROFESSIONAL_FEES = "HONORARIOS"
    CLINICAL_SUPPLIES = "MATERIALES_CLINICOS"
    MEDICATIONS = "MEDICAMENTOS_HOSP"
    LAB_TESTS = "EXAMENES"
    OTHER = "OTROS"
    PROSTHETICS = "PROTESIS_ORTESIS"
    CONSULTATION = "CONSULTA"
    REHABILITATION = "KINESIOLOGIA"
    TRANSPORT = "TRASLADOS"


class CapKind(str, Enum):
    """Unit in which a contractual cap (tope) is expressed."""

    CLP = "CLP"
    UF = "UF"
    UTM = "UTM"
    VAM = "VAM"  # insurer-specific reference unit
    AC2 = "AC2"  # insurer-specific reference unit
    NONE = "SIN_TOPE_EXPRESO"
    VARIABLE = "VARIABLE"


class ContractState(str, Enum):
    """Result of checking a line against the contract."""

    VERIFIABLE_OK = "verifiable_ok"
    UNDER_COVERED = "under_covered"
    CAP_EXCEEDED = "cap_exceeded"
    CAP_UNVERIFIABLE = "cap_unverifiable"
    NOT_VERIFIABLE_BY_CONTRACT = "not_verifiable_by_contract"


class CapState(str, Enum):
    NO_CAP = "no_cap"
    WITHIN_CAP = "within_cap"
    EXCEEDED = "exceeded"
    UNVERIFIABLE = "unverifiable"


class RuleMatch(str, Enum):
    """How the contract rule for a line was selected."""

    DIRECT = "direct"
    AFFINITY = "affinity"
    CONSERVATIVE = "conservative"
    NONE = "none"


class FindingLevel(str, Enum):
    """Severity class of a line's classification."""

    CORRECT = "correct"
    TECHNICAL_DISCUSSION = "technical_discussion"
    STRUCTURAL_FRAGMENTATION = "structural_fragmentation"
    NON_BILLABLE = "non_billable"
    UNDER_COVERAGE = "under_coverage"
    TOTAL_OPACITY = "total_opacity"


class Motor(str, Enum):
    """Decision motors of the fragmentation classifier."""

    M1 = "M1"
    M2 = "M2"
    M3 = "M3"
    M4 = "M4"
    M5 = "M5"
    NONE = "NA"


class CostTransferKind(str, Enum):
    """Composition sub-types of an M3 cost transfer."""

    AMENITY = "amenity_dominant"
    ADMINISTRATIVE = "administrative_dominant"
    MIXED = "mixed"
    GENERIC_REJECTION = "generic_rejection"


class ItemNature(str, Enum):
    """Coarse clinical nature of a bill item."""

    MEDICATION = "medication"
    SUPPLY = "supply"
    NURSING_ACT = "nursing_act"
    ROOM_CHARGE = "room_charge"
    AMENITY = "amenity"
    ADMINISTRATIVE = "administrative"
    OTHER = "other"


class Package(str, Enum):
    """All-inclusive clinical packages an episode may carry."""

    OPERATING_ROOM = "DERECHO_PABELLON"
    WARD = "DIA_CAMA_INTEGRAL"
    EMERGENCY = "URGENCIA"


class PrincipalAct(str, Enum):
    MAJOR_SURGERY = "CIRUGIA_MAYOR"
    GENERAL_HOSPITALIZATION = "HOSPITALIZACION_GENERAL"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class BillItem(BaseModel):
    """Individual item from the itemized clinical bill."""

    model_config = ConfigDict(frozen=True)

    item_id: str | None = None
    position: int | None = Field(default=None, ge=0, description="Physical index in the source document")
    section: str | None = None
    section_inferred: bool = False
    description: str = ""
    quantity: float | None = None
    unit_price: Decimal | None = None
    total: Decimal
    internal_code: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _fill_total(cls, data: Any) -> Any:
        """Calculate total from quantity and unit price if not provided."""
        if isinstance(data, dict) and data.get("total") is None:
            quantity = data.get("quantity")
            unit_price = data.get("unit_price")
            if quantity is not None and unit_price is not None:
                data = {**data, "total": Decimal(str(quantity)) * Decimal(str(unit_price))}
        return data

    @property
    def amount(self) -> int:
        """Total rounded to whole pesos."""
        return amount_key(self.total)


class Bill(BaseModel):
    """Canonical itemized bill."""

    items: list[BillItem] = Field(default_factory=list)


class AdjudicationLine(BaseModel):
    """One insurer adjudication (PAM) line."""

    model_config = ConfigDict(frozen=True)

    line_id: str | None = None
    folio: str | None = None
    code: str = ""
    description: str = ""
    quantity: float | None = None
    total_value: Decimal = Decimal("0")
    paid: Decimal = Decimal("0")
    copay: Decimal = Decimal("0")
    provider: str | None = None

    @property
    def is_zero(self) -> bool:
        return self.total_value == 0 and self.paid == 0 and self.copay == 0


class AdjudicationFolio(BaseModel):
    """A PAM folio grouping adjudication lines."""

    folio: str
    provider: str | None = None
    lines: list[AdjudicationLine] = Field(default_factory=list)


class Adjudication(BaseModel):
    """Canonical adjudication set (all PAM folios of the episode)."""

    folios: list[AdjudicationFolio] = Field(default_factory=list)
    declared_total_copay: Decimal | None = None


class Cap(BaseModel):
    """Contractual cap (tope)."""

    kind: CapKind = CapKind.NONE
    value: Decimal | None = None


class ContractRule(BaseModel):
    """A single coverage rule of the health-plan contract."""

    rule_id: str
    domain: CoverageDomain
    coverage_pct: Decimal | None = Field(default=None, ge=0, le=100)
    cap: Cap | None = None
    source_text: str = ""


class Contract(BaseModel):
    """Canonical contract: a flat set of coverage rules."""

    rules: list[ContractRule] = Field(default_factory=list)


class AuditMetadata(BaseModel):
    """Episode identification printed in the report header."""

    patient_name: str | None = None
    clinic_name: str | None = None
    insurer: str | None = None
    plan: str | None = None
    financial_date: str | None = None


class AuditInput(BaseModel):
    """Complete input for one audit run."""

    bill: Bill = Field(default_factory=Bill)
    adjudication: Adjudication = Field(default_factory=Adjudication)
    contract: Contract = Field(default_factory=Contract)
    metadata: AuditMetadata | None = None


# ---------------------------------------------------------------------------
# Trace attempts (one variant per matching strategy)
# ---------------------------------------------------------------------------


class TraceCandidate(BaseModel):
    """A ranked candidate set of bill items proposed by a strategy."""

    model_config = ConfigDict(frozen=True)

    item_ids: list[str]
    score: int = 0
    reasons: list[str] = Field(default_factory=list)


class _AttemptBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: TraceStatus
    strong: bool = False
    target: Decimal = Decimal("0")
    item_ids: list[str] = Field(default_factory=list)
    candidates: list[TraceCandidate] = Field(default_factory=list)
    detail: str = ""


class ExactAmountAttempt(_AttemptBase):
    kind: Literal["exact_amount"] = "exact_amount"
    matched_on: Literal["total", "copay"] | None = None


class TextAttempt(_AttemptBase):
    kind: Literal["text"] = "text"
    match_type: Literal["exact", "substring"] | None = None


class ContiguousWindowAttempt(_AttemptBase):
    kind: Literal["contiguous_window"] = "contiguous_window"


class SubtotalAttempt(_AttemptBase):
    kind: Literal["subtotal"] = "subtotal"
    block_ids: list[str] = Field(default_factory=list)
    anchor_ids: list[str] = Field(default_factory=list)
    virtual: bool = False


class SubsetSumAttempt(_AttemptBase):
    kind: Literal["subset_sum"] = "subset_sum"
    domain_filtered: bool = False
    domain: str | None = None
    ordering: str | None = None


class ResidualSegmentAttempt(_AttemptBase):
    kind: Literal["residual_segment"] = "residual_segment"
    segment_index: int | None = None
    full_pool: bool = False


TraceAttempt = Annotated[
    Union[
        ExactAmountAttempt,
        TextAttempt,
        ContiguousWindowAttempt,
        SubtotalAttempt,
        SubsetSumAttempt,
        ResidualSegmentAttempt,
    ],
    Field(discriminator="kind"),
]


class LineTrace(BaseModel):
    """Summarized evidence trail of one adjudication line."""

    model_config = ConfigDict(frozen=True)

    status: TraceStatus
    traceability: Traceability
    traceability_reason: str
    attempts: list[TraceAttempt] = Field(default_factory=list)
    matched_item_ids: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Contract evaluation
# ---------------------------------------------------------------------------


class ContractCheck(BaseModel):
    """Contractual verification of one adjudication line."""

    model_config = ConfigDict(frozen=True)

    state: ContractState
    domain: CoverageDomain
    rule_ids: list[str] = Field(default_factory=list)
    matched_by: RuleMatch = RuleMatch.NONE
    rule_ref: str | None = None
    coverage_pct: Decimal | None = None
    expected_paid: Decimal | None = None
    expected_copay: Decimal | None = None
    copay_delta: Decimal | None = None  # positive = patient overcharged
    tolerance: Decimal | None = None
    shortfall: Decimal = Decimal("0")
    cap_state: CapState = CapState.NO_CAP
    cap_clp: Decimal | None = None
    cap_conversion_source: str | None = None
    notes: str = ""


# ---------------------------------------------------------------------------
# Motor findings (one variant per classifier outcome)
# ---------------------------------------------------------------------------


class _FindingBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: FindingLevel
    motor: Motor = Motor.NONE
    rationale: str = ""
    economic_impact: Decimal = Decimal("0")


class NonBillableAct(_FindingBase):
    kind: Literal["non_billable_act"] = "non_billable_act"
    level: FindingLevel = FindingLevel.NON_BILLABLE
    motor: Motor = Motor.M1
    trigger: Literal["anchored_item", "nursing_keyword", "zero_payment"]
    anchored_item_id: str | None = None


class Unbundling(_FindingBase):
    kind: Literal["unbundling"] = "unbundling"
    level: FindingLevel = FindingLevel.STRUCTURAL_FRAGMENTATION
    motor: Motor = Motor.M2
    package: Package
    reconstructed_total: Decimal | None = None


class CostTransfer(_FindingBase):
    kind: Literal["cost_transfer"] = "cost_transfer"
    level: FindingLevel = FindingLevel.STRUCTURAL_FRAGMENTATION
    motor: Motor = Motor.M3
    transfer_kind: CostTransferKind
    amenity_share: Decimal = Decimal("0")
    administrative_share: Decimal = Decimal("0")


class DomainReclassification(_FindingBase):
    kind: Literal["domain_reclassification"] = "domain_reclassification"
    level: FindingLevel = FindingLevel.TECHNICAL_DISCUSSION
    motor: Motor = Motor.M4
    mapped_domain: CoverageDomain
    alternative_domain: CoverageDomain
    alternative_rule_id: str
    alternative_expected_copay: Decimal


class ContractualShortfall(_FindingBase):
    kind: Literal["contractual_shortfall"] = "contractual_shortfall"
    level: FindingLevel = FindingLevel.UNDER_COVERAGE
    motor: Motor = Motor.M5
    contract_state: ContractState


class Correct(_FindingBase):
    kind: Literal["correct"] = "correct"
    level: FindingLevel = FindingLevel.CORRECT


class Unverified(_FindingBase):
    kind: Literal["unverified"] = "unverified"
    level: FindingLevel = FindingLevel.TECHNICAL_DISCUSSION


class TotalOpacity(_FindingBase):
    kind: Literal["total_opacity"] = "total_opacity"
    level: FindingLevel = FindingLevel.TOTAL_OPACITY


MotorFinding = Annotated[
    Union[
        NonBillableAct,
        Unbundling,
        CostTransfer,
        DomainReclassification,
        ContractualShortfall,
        Correct,
        Unverified,
        TotalOpacity,
    ],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Opacity and rows
# ---------------------------------------------------------------------------


class OpacityPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    points: int


class OpacityScore(BaseModel):
    """Opacity index (IOP) of one line."""

    model_config = ConfigDict(frozen=True)

    applies: bool = False
    score: int = 0
    breakdown: list[OpacityPoint] = Field(default_factory=list)
    evaluated: bool = False


class AuditRow(BaseModel):
    """Final audit record for one adjudication line."""

    model_config = ConfigDict(frozen=True)

    line_id: str
    folio: str | None = None
    code: str
    description: str
    total_value: Decimal
    paid: Decimal
    copay: Decimal
    resolution_pass: int
    trace: LineTrace
    contract: ContractCheck
    finding: MotorFinding
    opacity: OpacityScore

    @property
    def flagged(self) -> bool:
        """A row is a finding when it is not correct or it is opaque."""
        return self.finding.level != FindingLevel.CORRECT or self.opacity.applies


# ---------------------------------------------------------------------------
# Aggregate output
# ---------------------------------------------------------------------------


class EventModel(BaseModel):
    """Inferred clinical episode: principal act and detected packages."""

    principal_act: PrincipalAct | None = None
    packages: list[Package] = Field(default_factory=list)
    notes: str = ""

    @property
    def has_package(self) -> bool:
        return bool(self.packages)


class GlobalOpacity(BaseModel):
    applies: bool = False
    max_score: int = 0


class SystemicPattern(BaseModel):
    m1_count: int = 0
    m2_count: int = 0
    m3_count: int = 0
    m4_count: int = 0
    m5_count: int = 0
    m3_copay_share: Decimal = Decimal("0")
    m5_shortfall: Decimal = Decimal("0")
    is_systemic: bool = False


class AuditSummary(BaseModel):
    """Summary statistics for an audit."""

    line_count: int = 0
    flagged_count: int = 0
    strong_trace_count: int = 0
    total_copay_analyzed: Decimal = Decimal("0")
    total_impact: Decimal = Decimal("0")
    opacity: GlobalOpacity = Field(default_factory=GlobalOpacity)
    systemic: SystemicPattern = Field(default_factory=SystemicPattern)


class MatrixRow(BaseModel):
    """One row of the findings matrix."""

    line_id: str
    item_label: str
    level: FindingLevel
    motor: Motor
    rationale: str
    impact: Decimal
    opacity_score: int = 0


class AuditResult(BaseModel):
    """Complete audit output."""

    summary: AuditSummary = Field(default_factory=AuditSummary)
    event_model: EventModel = Field(default_factory=EventModel)
    matrix: list[MatrixRow] = Field(default_factory=list)
    rows: list[AuditRow] = Field(default_factory=list)
    report_text: str = ""
    complaint_text: str = ""
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None
    metadata: AuditMetadata | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def error_result(
        cls,
        message: str,
        warnings: list[str] | None = None,
        metadata: AuditMetadata | None = None,
    ) -> "AuditResult":
        """Well-formed result for a run that could not be audited."""
        return cls(
            event_model=EventModel(notes=message),
            report_text=f"ERROR DE INTEGRIDAD: {message}",
            warnings=warnings or [],
            error=message,
            metadata=metadata,
        )
