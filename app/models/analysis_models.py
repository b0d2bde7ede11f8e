"""ADLENS: Engine Output Models (Versioned)."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel
from sqlmodel import SQLModel, Field, UniqueConstraint


# ─────────────────────────────────────────────
# CLASSIFICATION STATES
# ─────────────────────────────────────────────


class LearningState(str, Enum):
    UNSTABLE = "UNSTABLE"
    EXPLORATION = "EXPLORATION"
    STABILIZING = "STABILIZING"
    EXPLOITATION = "EXPLOITATION"


class IntentStage(str, Enum):
    TOFU = "TOFU"
    MOFU = "MOFU"
    BOFU = "BOFU"


class FatigueState(str, Enum):
    REAL = "REAL"
    HEALTHY_REPETITION = "HEALTHY_REPETITION"
    CONCEPT_DECAY = "CONCEPT_DECAY"
    NONE = "NONE"


class StructuralState(str, Enum):
    FRAGMENTED = "FRAGMENTED"
    OVERCONCENTRATED = "OVERCONCENTRATED"
    HEALTHY = "HEALTHY"


class FinalDecision(str, Enum):
    SCALE = "SCALE"
    ROTATE_CONCEPT = "ROTATE_CONCEPT"
    CONSOLIDATE = "CONSOLIDATE"
    INTRODUCE_BOFU_VARIANTS = "INTRODUCE_BOFU_VARIANTS"
    KILL_RETRY = "KILL_RETRY"
    HOLD = "HOLD"


# Decisions that imply a material change to the account
MATERIAL_DECISIONS = {
    FinalDecision.SCALE,
    FinalDecision.ROTATE_CONCEPT,
    FinalDecision.KILL_RETRY,
}


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    HEALTHY = "HEALTHY"
    INFO = "INFO"


class FindingStatus(str, Enum):
    ATTENTION = "ATTENTION"
    OPTIMAL = "OPTIMAL"


class FindingType(str, Enum):
    CPA_SPIKE = "CPA_SPIKE"
    ROAS_DROP = "ROAS_DROP"
    CVR_DROP = "CVR_DROP"
    CTR_DROP = "CTR_DROP"
    SPEND_CONCENTRATION = "SPEND_CONCENTRATION"
    NO_CONVERSIONS_HIGH_SPEND = "NO_CONVERSIONS_HIGH_SPEND"
    VOLATILITY = "VOLATILITY"
    UNDERFUNDED_WINNERS = "UNDERFUNDED_WINNERS"


class CreativeCategory(str, Enum):
    DOMINANT_SCALABLE = "DOMINANT_SCALABLE"
    WINNER_SATURATING = "WINNER_SATURATING"
    HIDDEN_BOFU = "HIDDEN_BOFU"
    INEFFICIENT_TOFU = "INEFFICIENT_TOFU"
    ZOMBIE = "ZOMBIE"
    NEW_INSUFFICIENT_DATA = "NEW_INSUFFICIENT_DATA"


# ─────────────────────────────────────────────
# PYDANTIC SCHEMAS: engine outputs v1
# ─────────────────────────────────────────────


class PercentileAnchor(BaseModel):
    """10th/90th percentile pair used to normalize one signal."""

    p10: float
    p90: float


class ClientPercentiles(BaseModel):
    """Per-client distribution anchors for the four intent signals."""

    fitr: PercentileAnchor
    conv_rate: PercentileAnchor
    cpa_inv: PercentileAnchor
    ctr: PercentileAnchor


class IntentResult(BaseModel):
    score: float
    stage: IntentStage


class EntityClassification(BaseModel):
    """Verdict for one entity in one classification run."""

    client_id: str
    level: str
    entity_id: str
    concept_id: Optional[str] = None
    updated_at: str = ""

    learning_state: LearningState
    intent_score: float
    intent_stage: IntentStage
    fatigue_state: FatigueState
    structural_state: StructuralState

    final_decision: FinalDecision
    confidence_score: float
    impact_score: float
    evidence: List[str] = []


class FindingEvidence(BaseModel):
    current: float = 0.0
    previous: float = 0.0
    delta: float = 0.0  # percentage
    threshold: float = 0.0


class DiagnosticFinding(BaseModel):
    """One account-level anomaly detected by the findings engine."""

    client_id: str
    type: FindingType
    title: str
    description: str
    severity: Severity
    status: FindingStatus = FindingStatus.ATTENTION
    entities: List[str] = []
    evidence: FindingEvidence = FindingEvidence()
    version: int = 1
    created_at: str = ""


class CreativeCategoryResult(BaseModel):
    entity_id: str
    category: CreativeCategory
    reasoning: str


class PatternInsight(BaseModel):
    label: str
    value: str
    frequency: int  # % of winners showing the pattern


class WinningPatterns(BaseModel):
    """Aggregate profile of the DOMINANT_SCALABLE + HIDDEN_BOFU creatives."""

    total_winners: int = 0
    dominant_format: str = "MIXED"
    dominant_funnel_stage: IntentStage = IntentStage.BOFU
    avg_cpa: float = 0.0
    avg_roas: float = 0.0
    avg_spend_pct: float = 0.0
    top_hooks: List[str] = []
    patterns: List[PatternInsight] = []


class Alert(BaseModel):
    """Entity-level alert evaluated from rolling metrics and classifications."""

    client_id: str
    level: str
    entity_id: str
    entity_name: str = ""
    type: str
    severity: Severity
    title: str
    description: str
    impact_score: float = 0.0
    evidence: List[str] = []


class ClassificationRunSummary(BaseModel):
    client_id: str
    date: str
    classified: int = 0
    skipped: int = 0
    failed: int = 0
    decisions: dict = {}
    fatigue_signals: List[str] = []


# ─────────────────────────────────────────────
# DATABASE MODELS: persisted outputs
# ─────────────────────────────────────────────


class ClassificationRecord(SQLModel, table=True):
    """Latest classification per (client, level, entity). Overwritten each run."""

    __tablename__ = "entity_classifications"
    __table_args__ = (
        UniqueConstraint(
            "client_id", "level", "entity_id", name="uq_entity_classification"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: str = Field(index=True)
    level: str = Field(index=True)
    entity_id: str = Field(index=True)
    final_decision: str = Field(index=True)
    impact_score: float = 0.0
    schema_version: str = Field(default="1.0.0")
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    result_json: str = Field(description="Full EntityClassification as JSON")


class FindingRecord(SQLModel, table=True):
    """Append-only diagnostic finding."""

    __tablename__ = "diagnostic_findings"

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: str = Field(index=True)
    type: str = Field(index=True)
    severity: str = Field(default="")
    schema_version: str = Field(default="1.0.0")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    result_json: str = Field(description="Full DiagnosticFinding as JSON")


class CreativeCategoryRecord(SQLModel, table=True):
    """Latest strategic category per (client, ad)."""

    __tablename__ = "creative_categories"
    __table_args__ = (
        UniqueConstraint("client_id", "entity_id", name="uq_creative_category"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: str = Field(index=True)
    entity_id: str = Field(index=True)
    category: str = Field(index=True)
    reasoning: str = ""
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
