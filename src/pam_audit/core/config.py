"""
Run configuration for the PAM Audit Engine.

Every threshold, weight and search budget the engine uses lives here so it
can be recalibrated without touching algorithmic code. Defaults reproduce
the calibrated behavior of the forensic auditor.
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from .models import CapKind

# Used when the caller could not pre-resolve the day's UF/UTM value.
UF_FALLBACK_CLP = Decimal("39750")
UTM_FALLBACK_CLP = Decimal("68647")


class SearchBudget(BaseModel):
    """Worst-case budget of the combinatorial searches."""

    max_target: int = Field(default=3_000_000, gt=0, description="Largest target (pesos) the subset search accepts")
    max_candidates: int = Field(default=60, gt=0, description="Pool truncation per ordering")
    max_states: int = Field(default=200_000, gt=0, description="Reachable-sum states kept by the subset search")
    max_subtotal_blocks: int = Field(default=3, ge=1, description="Blocks combined by the subtotal strategy")
    segment_gap: int = Field(default=2, ge=1, description="Largest positional gap inside a residual segment")


class ClassifierThresholds(BaseModel):
    """Scoring thresholds shared by matching and classification."""

    strong_score: int = 50
    bundle_size_limit: int = 8
    window_bonus: int = 80
    dominant_share: Decimal = Decimal("0.6")


class OpacityWeights(BaseModel):
    """Points accrued by the opacity index (IOP)."""

    generic_code_without_breakdown: int = 25
    generic_description: int = 20
    zero_payment_with_copay: int = 15
    trace_failure: int = 15


class SystemicThresholds(BaseModel):
    """When repeated findings indicate a systemic billing pattern."""

    min_m1_count: int = 3
    min_m2_count: int = 5
    min_m3_copay_share: Decimal = Decimal("0.10")


class ContractTolerance(BaseModel):
    """Tolerance band around the contractually expected copay."""

    floor_clp: Decimal = Decimal("500")
    pct_of_total: Decimal = Decimal("0.001")


class CoherenceTolerance(BaseModel):
    """Tolerance of the value = paid + copay integrity check."""

    floor_clp: Decimal = Decimal("50")
    pct_of_total: Decimal = Decimal("0.02")
    global_copay_clp: Decimal = Decimal("500")


class AuditConfig(BaseModel):
    """Complete configuration of one audit run."""

    opacity_threshold: int = 40
    uf_value_clp: Decimal | None = None
    uf_date: str | None = None
    uf_source: str | None = None
    utm_value_clp: Decimal | None = None
    reference_unit_values: dict[CapKind, Decimal] = Field(
        default_factory=dict,
        description="Peso value of insurer-specific units (VAM, AC2) when known",
    )
    search: SearchBudget = Field(default_factory=SearchBudget)
    thresholds: ClassifierThresholds = Field(default_factory=ClassifierThresholds)
    opacity_weights: OpacityWeights = Field(default_factory=OpacityWeights)
    systemic: SystemicThresholds = Field(default_factory=SystemicThresholds)
    contract_tolerance: ContractTolerance = Field(default_factory=ContractTolerance)
    coherence: CoherenceTolerance = Field(default_factory=CoherenceTolerance)
