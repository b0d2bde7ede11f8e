"""ADLENS: Per-client Engine Configuration.

Every threshold the engines compare against lives here, grouped by the
concern that reads it. Stored overrides are partial; they are merged
group-by-group over the defaults below.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional
from pydantic import BaseModel
from sqlmodel import SQLModel, Field


class _Group(BaseModel):
    model_config = {"extra": "forbid"}


class LearningConfig(_Group):
    unstable_days: int = 3  # edited within this many days → UNSTABLE
    exploration_days: int = 4
    stabilizing_days: int = 14
    kill_min_spend: float = 50.0  # exploration spend with zero conversions


class IntentConfig(_Group):
    bofu_score_threshold: float = 0.65
    mofu_score_threshold: float = 0.35
    volatility_penalty: float = 1.0  # score multiplier for low-sample days; 1.0 = off
    min_impressions_for_penalty: int = 2000
    population_anchors: bool = True  # False → fixed calibration anchors


class FatigueConfig(_Group):
    frequency_threshold: float = 4.0
    cpa_multiplier_threshold: float = 1.25  # CPA_7d > CPA_14d * this
    hook_rate_delta_threshold: float = -0.2
    concentration_threshold: float = 0.6


class StructureConfig(_Group):
    fragmentation_adsets_max: int = 6
    fragmentation_min_conversions: float = 30.0
    overconcentration_pct: float = 0.8
    overconcentration_min_spend: float = 100.0


class AlertTemplate(_Group):
    title: str
    description: str


DEFAULT_ALERT_TEMPLATES: Dict[str, AlertTemplate] = {
    "SCALING_OPPORTUNITY": AlertTemplate(
        title="Scaling opportunity: {entityName}",
        description="Consolidated signal. CPA {cpa_7d} (target: {targetCpa}). Stable velocity. Frequency {frequency_7d} OK.",
    ),
    "LEARNING_RESET_RISK": AlertTemplate(
        title="Learning reset risk: {entityName}",
        description="Budget change of {budget_change_3d_pct}% (> {threshold_pct}%) with a recent edit.",
    ),
    "CPA_SPIKE": AlertTemplate(
        title="CPA spike on {entityName}",
        description="CPA is up {cpa_delta_pct}% against the previous period.",
    ),
    "BUDGET_BLEED": AlertTemplate(
        title="Budget bleed: {entityName}",
        description="{spend_7d} spent (> 2x target CPA) without a single conversion.",
    ),
    "CPA_VOLATILITY": AlertTemplate(
        title="High volatility on {entityName}",
        description="Sharp budget changes ({budget_change_3d_pct}%) are destabilising CPA.",
    ),
    "ROTATE_CONCEPT": AlertTemplate(
        title="Rotate creative: {entityName}",
        description="{fatigueLabel} detected. Hook rate {hook_rate_7d} at frequency {frequency_7d}.",
    ),
    "CONSOLIDATE": AlertTemplate(
        title="Consolidation suggested: {entityName}",
        description="{structuralState} structure. Consolidate to speed up learning.",
    ),
    "KILL_RETRY": AlertTemplate(
        title="Spend without signal: {entityName}",
        description="Failed exploration phase with significant spend ({spend_7d}).",
    ),
    "INTRODUCE_BOFU_VARIANTS": AlertTemplate(
        title="Conversion push (BOFU): {entityName}",
        description="Add variants with direct offers or scarcity for this performer.",
    ),
}


class AlertsConfig(_Group):
    learning_reset_budget_change_pct: float = 30.0
    scaling_frequency_max: float = 4.0
    scaling_min_velocity: float = 0.5
    enabled_alerts: Optional[List[str]] = None  # None → all templates
    templates: Dict[str, AlertTemplate] = DEFAULT_ALERT_TEMPLATES


class FindingsConfig(_Group):
    cpa_spike_threshold: float = 0.25
    roas_drop_threshold: float = -0.15
    cvr_drop_threshold: float = -0.15
    ctr_stable_band: float = 0.05
    ctr_drop_threshold: float = -0.15
    concentration_pct: float = 0.8
    concentration_top_share: float = 0.2  # top 20% of campaigns by count
    concentration_min_campaigns: int = 3
    bleed_cpa_multiplier: float = 2.0
    fallback_cpa: float = 50.0  # account CPA when nothing converted
    volatility_threshold: float = 0.5
    volatility_min_points: int = 3
    winner_cpa_ratio: float = 0.8


class CreativeConfig(_Group):
    new_max_days: int = 4
    new_max_impressions: int = 2000
    zombie_min_spend: float = 50.0
    zombie_fallback_spend: float = 30.0
    dominant_spend_share_pct: float = 30.0
    fallback_spend_share_pct: float = 15.0
    hidden_spend_percentile: float = 0.25
    inefficient_min_spend: float = 100.0
    inefficient_cpa_multiplier: float = 1.5


CONFIG_GROUPS = (
    "learning",
    "intent",
    "fatigue",
    "structure",
    "alerts",
    "findings",
    "creative",
)


class EngineConfig(BaseModel):
    """Full engine configuration for one client."""

    client_id: str = ""
    learning: LearningConfig = LearningConfig()
    intent: IntentConfig = IntentConfig()
    fatigue: FatigueConfig = FatigueConfig()
    structure: StructureConfig = StructureConfig()
    alerts: AlertsConfig = AlertsConfig()
    findings: FindingsConfig = FindingsConfig()
    creative: CreativeConfig = CreativeConfig()


class _StrictEngineConfig(EngineConfig):
    model_config = {"extra": "forbid"}


def default_engine_config(client_id: str = "") -> EngineConfig:
    return EngineConfig(client_id=client_id)


def merge_engine_config(client_id: str, overrides: dict) -> EngineConfig:
    """Deep-merge a partial override dict over the defaults.

    Raises pydantic.ValidationError on unknown groups/keys or bad values.
    """
    merged = default_engine_config(client_id).model_dump()
    for key, patch in overrides.items():
        if key in CONFIG_GROUPS and isinstance(patch, dict):
            group = {**merged[key], **patch}
            # Templates merge per alert type
            if key == "alerts" and isinstance(patch.get("templates"), dict):
                group["templates"] = {
                    **merged["alerts"]["templates"],
                    **patch["templates"],
                }
            merged[key] = group
        elif key != "client_id":
            merged[key] = patch
    merged["client_id"] = client_id
    return _StrictEngineConfig.model_validate(merged)


class EngineConfigRecord(SQLModel, table=True):
    """Partial per-client override, stored as JSON."""

    __tablename__ = "engine_configs"

    client_id: str = Field(primary_key=True)
    overrides_json: str = Field(default="{}")
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
