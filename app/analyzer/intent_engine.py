"""ADLENS: Intent Engine.

Scores purchase intent for one entity-day:
- four ratios read from the snapshot via the signal registry
- each normalized against the client's percentile anchors
- weighted sum → 0..1 score → funnel stage
"""

from typing import Dict

from app.core.metric_registry import INTENT_SIGNALS
from app.models.analysis_models import ClientPercentiles, IntentResult, IntentStage
from app.models.engine_config import IntentConfig
from app.models.snapshot_models import DailyEntitySnapshot

NEUTRAL_SCORE = 0.5


def normalize(value: float, p10: float, p90: float) -> float:
    """Clamp ``(value - p10) / (p90 - p10)`` to [0, 1]; 0.5 if the range is degenerate."""
    if p90 <= p10:
        return NEUTRAL_SCORE
    return max(0.0, min(1.0, (value - p10) / (p90 - p10)))


def normalized_signals(
    snapshot: DailyEntitySnapshot, percentiles: ClientPercentiles
) -> Dict[str, float]:
    result: Dict[str, float] = {}
    for name, signal in INTENT_SIGNALS.items():
        anchor = getattr(percentiles, name)
        result[name] = normalize(signal.from_snapshot(snapshot), anchor.p10, anchor.p90)
    return result


def weighted_score(normalized: Dict[str, float]) -> float:
    return sum(INTENT_SIGNALS[name].weight * value for name, value in normalized.items())


def stage_for_score(score: float, config: IntentConfig) -> IntentStage:
    if score >= config.bofu_score_threshold:
        return IntentStage.BOFU
    if score >= config.mofu_score_threshold:
        return IntentStage.MOFU
    return IntentStage.TOFU


def compute_intent(
    snapshot: DailyEntitySnapshot,
    percentiles: ClientPercentiles,
    config: IntentConfig | None = None,
) -> IntentResult:
    """Intent score and funnel stage for a snapshot.

    Days with fewer impressions than ``min_impressions_for_penalty`` have
    their score multiplied by ``volatility_penalty``.
    """
    config = config or IntentConfig()

    score = weighted_score(normalized_signals(snapshot, percentiles))

    impressions = snapshot.performance.impressions
    if 0 < impressions < config.min_impressions_for_penalty:
        score *= config.volatility_penalty

    score = round(score, 4)
    return IntentResult(score=score, stage=stage_for_score(score, config))
