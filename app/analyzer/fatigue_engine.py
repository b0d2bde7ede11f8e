"""ADLENS: Fatigue Engine.

Detects creative fatigue. Frequency alone is only a trigger; REAL fatigue
needs all of:
- CPA 7d worse than CPA 14d by the configured multiplier
- Hook-rate delta below the configured floor
- Top-ad spend concentration above the configured ceiling
Concept-level decay is checked independently when concept metrics exist.
"""

from collections import Counter
from typing import Iterable, List, Optional

from app.models.analysis_models import EntityClassification, FatigueState
from app.models.engine_config import FatigueConfig
from app.models.snapshot_models import ConceptRollingMetrics, EntityRollingMetrics


def cpa_degraded(cpa_7d: float, cpa_14d: float, multiplier: float) -> bool:
    if cpa_14d <= 0:
        return False
    return cpa_7d > cpa_14d * multiplier


def classify_fatigue(
    rolling: EntityRollingMetrics,
    concept: Optional[ConceptRollingMetrics] = None,
    config: FatigueConfig | None = None,
) -> FatigueState:
    """Fatigue state for one entity, optionally with its concept metrics."""
    config = config or FatigueConfig()

    # Entity level: only frequency-triggered entities are candidates
    if rolling.frequency_7d > config.frequency_threshold:
        cpa_worse = cpa_degraded(
            rolling.cpa_7d, rolling.cpa_14d, config.cpa_multiplier_threshold
        )
        hook_drop = rolling.hook_rate_delta < config.hook_rate_delta_threshold
        concentrated = rolling.spend_top1_ad_pct > config.concentration_threshold

        if cpa_worse and hook_drop and concentrated:
            return FatigueState.REAL
        if not cpa_worse and not hook_drop:
            return FatigueState.HEALTHY_REPETITION

    # Concept level
    if concept is not None:
        concept_cpa_worse = cpa_degraded(
            concept.avg_cpa_7d, concept.avg_cpa_14d, config.cpa_multiplier_threshold
        )
        if (
            concept_cpa_worse
            and concept.hook_rate_delta < config.hook_rate_delta_threshold
        ):
            return FatigueState.CONCEPT_DECAY

    return FatigueState.NONE


def summarize_fatigue(classifications: Iterable[EntityClassification]) -> List[str]:
    """Human-readable fatigue signals across a batch of classifications."""
    counts = Counter(c.fatigue_state for c in classifications)
    signals: List[str] = []
    if counts[FatigueState.REAL]:
        signals.append(f"{counts[FatigueState.REAL]} entities with real fatigue")
    if counts[FatigueState.CONCEPT_DECAY]:
        signals.append(
            f"{counts[FatigueState.CONCEPT_DECAY]} entities on a decaying concept"
        )
    if counts[FatigueState.HEALTHY_REPETITION]:
        signals.append(
            f"{counts[FatigueState.HEALTHY_REPETITION]} entities with high but healthy frequency"
        )
    return signals
