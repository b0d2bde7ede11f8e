"""ADLENS: Intent Signal Registry.

Defines the canonical set of intent signals: how each is read from a daily
snapshot, how it is read from the rolling-metric population, its weight in
the intent score and its fallback percentile anchors. The percentile
normalizer and the intent engine both iterate this registry, so adding a
signal here is enough for them to treat it uniformly.
"""

from enum import Enum
from typing import Callable, Dict

from app.models.snapshot_models import DailyEntitySnapshot, EntityRollingMetrics


class SignalUnit(str, Enum):
    """How a signal value is expressed."""

    RATIO = "ratio"  # 0..1 fraction
    PERCENT = "percent"  # 0..100
    INVERSE_CURRENCY = "inverse_currency"  # conversions per currency unit


def _safe_div(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


class SignalDefinition:
    """Describes a single intent signal."""

    def __init__(
        self,
        name: str,
        unit: SignalUnit,
        weight: float,
        default_p10: float,
        default_p90: float,
        from_snapshot: Callable[[DailyEntitySnapshot], float],
        from_rolling: Callable[[EntityRollingMetrics], float],
        description: str = "",
    ):
        self.name = name
        self.unit = unit
        self.weight = weight
        self.default_p10 = default_p10
        self.default_p90 = default_p90
        self.from_snapshot = from_snapshot
        self.from_rolling = from_rolling
        self.description = description

    def __repr__(self) -> str:
        return f"<Signal {self.name} ({self.unit.value}, w={self.weight})>"


# ─────────────────────────────────────────────
# INTENT SIGNALS: canonical registry
# ─────────────────────────────────────────────

INTENT_SIGNALS: Dict[str, SignalDefinition] = {
    "fitr": SignalDefinition(
        "fitr",
        SignalUnit.RATIO,
        0.30,
        0.01,
        0.12,
        from_snapshot=lambda s: _safe_div(s.performance.purchases, s.performance.clicks),
        from_rolling=lambda r: _safe_div(r.purchases_7d, r.clicks_7d),
        description="Purchases per click",
    ),
    "conv_rate": SignalDefinition(
        "conv_rate",
        SignalUnit.RATIO,
        0.25,
        0.001,
        0.018,
        from_snapshot=lambda s: _safe_div(
            s.performance.purchases, s.performance.impressions
        ),
        from_rolling=lambda r: _safe_div(r.purchases_7d, r.impressions_7d),
        description="Purchases per impression",
    ),
    "cpa_inv": SignalDefinition(
        "cpa_inv",
        SignalUnit.INVERSE_CURRENCY,
        0.25,
        0.01,
        0.2,
        from_snapshot=lambda s: (
            _safe_div(s.performance.purchases, s.performance.spend)
            if s.performance.purchases
            else 0.0
        ),
        from_rolling=lambda r: _safe_div(1.0, r.cpa_7d),
        description="Inverse CPA (purchases per unit of spend)",
    ),
    "ctr": SignalDefinition(
        "ctr",
        SignalUnit.PERCENT,
        0.20,
        0.7,
        2.8,
        from_snapshot=lambda s: s.performance.ctr_pct,
        from_rolling=lambda r: r.ctr_7d,
        description="Click-through rate",
    ),
}


# ─────────────────────────────────────────────
# HELPERS
# ─────────────────────────────────────────────


def total_weight() -> float:
    return sum(s.weight for s in INTENT_SIGNALS.values())
