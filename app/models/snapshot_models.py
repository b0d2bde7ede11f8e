"""ADLENS: Input Metric Models.

The shapes the sync collaborator hands to the engines: one daily snapshot
per entity per day, one rolling-window aggregate per entity and per
creative concept, and flat per-campaign daily insight rows for the
findings engine. The engines only ever read these.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel


class EntityLevel(str, Enum):
    """Hierarchy level of an advertising entity."""

    ACCOUNT = "account"
    CAMPAIGN = "campaign"
    ADSET = "adset"
    AD = "ad"


# ─────────────────────────────────────────────
# DAILY ENTITY SNAPSHOT
# ─────────────────────────────────────────────


class PerformanceMetrics(BaseModel):
    """One day of delivery and outcome metrics."""

    spend: float = 0.0
    impressions: int = 0
    reach: int = 0
    clicks: int = 0
    ctr: Optional[float] = None  # %, derived from clicks/impressions if absent
    purchases: float = 0.0
    leads: float = 0.0
    revenue: float = 0.0

    @property
    def ctr_pct(self) -> float:
        if self.ctr is not None:
            return self.ctr
        return (self.clicks / self.impressions * 100) if self.impressions > 0 else 0.0


class StabilityMetrics(BaseModel):
    """Age and edit recency of an entity."""

    days_active: int = 0
    days_since_last_edit: int = 0
    budget_change_3d_pct: Optional[float] = None


class MetaInfo(BaseModel):
    """Structural metadata attached to a snapshot."""

    campaign_id: Optional[str] = None
    adset_id: Optional[str] = None
    concept_id: Optional[str] = None
    format_type: Optional[str] = None  # IMAGE | VIDEO | CAROUSEL


class DailyEntitySnapshot(BaseModel):
    """One calendar day of performance for one entity. Immutable once synced."""

    client_id: str
    date: str  # YYYY-MM-DD
    level: EntityLevel
    entity_id: str
    name: str = ""
    parent_id: Optional[str] = None
    meta: MetaInfo = MetaInfo()
    performance: PerformanceMetrics = PerformanceMetrics()
    stability: StabilityMetrics = StabilityMetrics()

    model_config = {"frozen": True}


# ─────────────────────────────────────────────
# ROLLING METRICS
# ─────────────────────────────────────────────


class EntityRollingMetrics(BaseModel):
    """Trailing 7d/14d aggregates for one (client, entity, level).

    Ratios are fractions except where the field name ends in ``_pct``
    and carries a percentage (budget/cpa/roas deltas) or is a CTR.
    """

    client_id: str
    entity_id: str
    level: EntityLevel
    name: str = ""
    days_active: Optional[int] = None

    spend_3d: float = 0.0
    spend_7d: float = 0.0
    spend_14d: float = 0.0

    impressions_7d: int = 0
    clicks_7d: int = 0
    purchases_7d: float = 0.0
    leads_7d: float = 0.0
    whatsapp_7d: float = 0.0
    installs_7d: float = 0.0

    cpa_7d: float = 0.0
    cpa_14d: float = 0.0
    cpa_delta_pct: float = 0.0

    roas_7d: float = 0.0
    roas_delta_pct: float = 0.0

    conversion_velocity_7d: float = 0.0  # conversions per day
    conversion_velocity_14d: float = 0.0

    frequency_7d: float = 0.0
    ctr_7d: float = 0.0  # %
    hook_rate_7d: float = 0.0
    hook_rate_delta: float = 0.0  # fraction, -0.2 == -20%

    spend_top1_ad_pct: float = 0.0  # fraction of spend on the top sub-unit
    budget_change_3d_pct: float = 0.0  # %

    last_update: str = ""

    @property
    def conversions_7d(self) -> float:
        """Primary conversions over 7 days, falling back to velocity."""
        total = self.purchases_7d + self.leads_7d + self.whatsapp_7d + self.installs_7d
        if total > 0:
            return total
        return self.conversion_velocity_7d * 7


class ConceptRollingMetrics(BaseModel):
    """Rolling aggregates for a creative concept (ads sharing one idea)."""

    client_id: str
    concept_id: str
    avg_cpa_7d: float = 0.0
    avg_cpa_14d: float = 0.0
    hook_rate_delta: float = 0.0  # fraction
    spend_concentration_top1: float = 0.0  # fraction
    frequency_7d: float = 0.0
    fatigue_flag: bool = False
    last_update: str = ""


# ─────────────────────────────────────────────
# DAILY INSIGHT ROWS (findings engine input)
# ─────────────────────────────────────────────


class DailyInsight(BaseModel):
    """Per-campaign, per-day account insight row."""

    client_id: str
    date: str  # YYYY-MM-DD
    campaign_id: str
    campaign_name: str = ""
    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    purchases: float = 0.0
    purchase_value: float = 0.0
