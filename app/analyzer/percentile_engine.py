"""ADLENS: Percentile Engine.

Computes per-client 10th/90th percentile anchors for the intent signals
from the population of that client's rolling metrics. Anchors are
recomputed on every classification run and never persisted.
"""

import math
from typing import Callable, Iterable, List

from app.core.metric_registry import INTENT_SIGNALS
from app.models.analysis_models import ClientPercentiles, PercentileAnchor
from app.models.snapshot_models import EntityRollingMetrics
from app.core.logging import get_logger

logger = get_logger("analyzer.percentile")

P_LOW = 0.10
P_HIGH = 0.90


def percentile(values: Iterable[float], p: float) -> float:
    """Linearly interpolated percentile of ``values``; 0.0 when empty.

    Uses rank ``(n - 1) * p`` and interpolates between the two adjacent
    sorted values.
    """
    ordered = sorted(values)
    if not ordered:
        return 0.0
    pos = (len(ordered) - 1) * p
    base = math.floor(pos)
    rest = pos - base
    if base + 1 < len(ordered):
        return ordered[base] + rest * (ordered[base + 1] - ordered[base])
    return ordered[base]


def extract_population(
    rolling: Iterable[EntityRollingMetrics],
    extractor: Callable[[EntityRollingMetrics], float],
) -> List[float]:
    """Collect the strictly positive, finite values of one metric."""
    values: List[float] = []
    for r in rolling:
        v = extractor(r)
        if v is not None and v > 0 and math.isfinite(v):
            values.append(v)
    return values


def compute_client_percentiles(
    rolling: List[EntityRollingMetrics],
    population_anchors: bool = True,
) -> ClientPercentiles:
    """Build the four anchor pairs for a client.

    Each anchor falls back to the registry default when the population is
    empty or the interpolated value is zero. With ``population_anchors``
    off only inverse CPA is derived; the others use calibration constants.
    """
    anchors = {}
    derived = []
    for name, signal in INTENT_SIGNALS.items():
        if not population_anchors and name != "cpa_inv":
            anchors[name] = PercentileAnchor(
                p10=signal.default_p10, p90=signal.default_p90
            )
            continue
        values = extract_population(rolling, signal.from_rolling)
        anchors[name] = PercentileAnchor(
            p10=percentile(values, P_LOW) or signal.default_p10,
            p90=percentile(values, P_HIGH) or signal.default_p90,
        )
        if values:
            derived.append(name)

    logger.info(
        f"Percentiles from {len(rolling)} rolling records "
        f"(population-derived: {', '.join(derived) or 'none'})"
    )
    return ClientPercentiles(**anchors)
