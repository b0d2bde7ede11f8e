"""ADLENS: Findings Engine.

Account-level anomaly detection: compares the current period against the
previous one (split at the midpoint of the available dates) and runs a
fixed set of independent rules. Any number of rules may fire in one pass.
"""

import math
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from app.models.analysis_models import (
    DiagnosticFinding,
    FindingEvidence,
    FindingStatus,
    FindingType,
    Severity,
)
from app.models.engine_config import FindingsConfig
from app.models.snapshot_models import DailyInsight
from app.core.logging import get_logger

logger = get_logger("analyzer.findings")


class PeriodStats(BaseModel):
    """Aggregated totals and ratios for one period."""

    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    purchases: float = 0.0
    purchase_value: float = 0.0
    ctr: float = 0.0  # fraction
    cpc: float = 0.0
    roas: float = 0.0
    cpa: float = 0.0
    cvr: float = 0.0  # purchases per click


class CampaignStats(BaseModel):
    id: str
    name: str = ""
    spend: float = 0.0
    purchases: float = 0.0
    purchase_value: float = 0.0
    clicks: int = 0
    impressions: int = 0

    @property
    def cpa(self) -> float:
        return self.spend / self.purchases if self.purchases > 0 else 0.0


# ─────────────────────────────────────────────
# AGGREGATION
# ─────────────────────────────────────────────


def aggregate_period(rows: Sequence[DailyInsight]) -> PeriodStats:
    spend = sum(r.spend for r in rows)
    impressions = sum(r.impressions for r in rows)
    clicks = sum(r.clicks for r in rows)
    purchases = sum(r.purchases for r in rows)
    value = sum(r.purchase_value for r in rows)
    return PeriodStats(
        spend=spend,
        impressions=impressions,
        clicks=clicks,
        purchases=purchases,
        purchase_value=value,
        ctr=clicks / impressions if impressions > 0 else 0.0,
        cpc=spend / clicks if clicks > 0 else 0.0,
        roas=value / spend if spend > 0 else 0.0,
        cpa=spend / purchases if purchases > 0 else 0.0,
        cvr=purchases / clicks if clicks > 0 else 0.0,
    )


def split_periods(
    rows: Sequence[DailyInsight],
) -> Tuple[List[DailyInsight], List[DailyInsight], List[str]]:
    """Split rows at the midpoint of their sorted unique dates.

    Returns (previous_rows, current_rows, current_dates). With an odd
    number of dates the extra day goes to the current period.
    """
    dates = sorted({r.date for r in rows})
    mid = len(dates) // 2
    current_dates = dates[mid:]
    current_set = set(current_dates)
    previous = [r for r in rows if r.date not in current_set]
    current = [r for r in rows if r.date in current_set]
    return previous, current, current_dates


def aggregate_campaigns(rows: Sequence[DailyInsight]) -> List[CampaignStats]:
    """Per-campaign totals, sorted by spend descending."""
    by_id: Dict[str, CampaignStats] = {}
    for r in rows:
        c = by_id.get(r.campaign_id)
        if c is None:
            c = by_id[r.campaign_id] = CampaignStats(id=r.campaign_id, name=r.campaign_name)
        c.spend += r.spend
        c.purchases += r.purchases
        c.purchase_value += r.purchase_value
        c.clicks += r.clicks
        c.impressions += r.impressions
    return sorted(by_id.values(), key=lambda c: c.spend, reverse=True)


def daily_cpas(rows: Sequence[DailyInsight]) -> List[float]:
    """Account CPA for each day that had at least one purchase."""
    spend: Dict[str, float] = defaultdict(float)
    purchases: Dict[str, float] = defaultdict(float)
    for r in rows:
        spend[r.date] += r.spend
        purchases[r.date] += r.purchases
    return [spend[d] / purchases[d] for d in sorted(spend) if purchases[d] > 0]


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _change(current: float, previous: float) -> float:
    return current / previous - 1


# ─────────────────────────────────────────────
# RULES
# ─────────────────────────────────────────────


class FindingInputs(BaseModel):
    client_id: str
    current: PeriodStats
    previous: PeriodStats
    campaigns: List[CampaignStats] = []
    daily_cpas: List[float] = []
    created_at: str = ""


def _finding(
    inputs: FindingInputs,
    type: FindingType,
    title: str,
    description: str,
    severity: Severity,
    evidence: FindingEvidence,
    entities: Optional[List[str]] = None,
    status: FindingStatus = FindingStatus.ATTENTION,
) -> DiagnosticFinding:
    return DiagnosticFinding(
        client_id=inputs.client_id,
        type=type,
        title=title,
        description=description,
        severity=severity,
        status=status,
        entities=entities or [],
        evidence=evidence,
        created_at=inputs.created_at,
    )


def _cpa_spike(i: FindingInputs, t: FindingsConfig) -> Optional[DiagnosticFinding]:
    if i.previous.cpa <= 0:
        return None
    delta = _change(i.current.cpa, i.previous.cpa)
    if delta <= t.cpa_spike_threshold:
        return None
    return _finding(
        i,
        FindingType.CPA_SPIKE,
        "Critical Cost-Per-Acquisition Spike",
        f"Account CPA has increased by {round(delta * 100)}% compared to the "
        "previous period. Conversion cost efficiency is dropping significantly.",
        Severity.CRITICAL,
        FindingEvidence(
            current=i.current.cpa,
            previous=i.previous.cpa,
            delta=delta * 100,
            threshold=t.cpa_spike_threshold * 100,
        ),
    )


def _roas_drop(i: FindingInputs, t: FindingsConfig) -> Optional[DiagnosticFinding]:
    if i.previous.roas <= 0:
        return None
    delta = _change(i.current.roas, i.previous.roas)
    if delta >= t.roas_drop_threshold:
        return None
    return _finding(
        i,
        FindingType.ROAS_DROP,
        "Revenue Efficiency Decline",
        f"ROAS has dropped by {abs(round(delta * 100))}% period over period. "
        "Your return on ad spend is deteriorating.",
        Severity.CRITICAL,
        FindingEvidence(
            current=i.current.roas,
            previous=i.previous.roas,
            delta=delta * 100,
            threshold=t.roas_drop_threshold * 100,
        ),
    )


def _cvr_drop(i: FindingInputs, t: FindingsConfig) -> Optional[DiagnosticFinding]:
    if i.previous.cvr <= 0 or i.previous.ctr <= 0:
        return None
    ctr_delta = abs(_change(i.current.ctr, i.previous.ctr))
    cvr_delta = _change(i.current.cvr, i.previous.cvr)
    if not (ctr_delta < t.ctr_stable_band and cvr_delta < t.cvr_drop_threshold):
        return None
    return _finding(
        i,
        FindingType.CVR_DROP,
        "Post-Click Conversion Drop",
        "Traffic looks stable (CTR unchanged), but conversion rate fell by "
        f"{abs(round(cvr_delta * 100))}%. Investigate landing page or offer changes.",
        Severity.WARNING,
        FindingEvidence(
            current=i.current.cvr,
            previous=i.previous.cvr,
            delta=cvr_delta * 100,
            threshold=t.cvr_drop_threshold * 100,
        ),
    )


def _ctr_drop(i: FindingInputs, t: FindingsConfig) -> Optional[DiagnosticFinding]:
    if i.previous.ctr <= 0:
        return None
    delta = _change(i.current.ctr, i.previous.ctr)
    if delta >= t.ctr_drop_threshold:
        return None
    return _finding(
        i,
        FindingType.CTR_DROP,
        "Ad Relevancy Decay",
        f"Click-through rate dropped by {abs(round(delta * 100))}%. This usually "
        "indicates creative fatigue or audience mismatch.",
        Severity.WARNING,
        FindingEvidence(
            current=i.current.ctr,
            previous=i.previous.ctr,
            delta=delta * 100,
            threshold=t.ctr_drop_threshold * 100,
        ),
    )


def _spend_concentration(
    i: FindingInputs, t: FindingsConfig
) -> Optional[DiagnosticFinding]:
    campaigns = i.campaigns
    total = i.current.spend
    if len(campaigns) <= t.concentration_min_campaigns or total <= 0:
        return None
    top_count = max(1, _round_half_up(len(campaigns) * t.concentration_top_share))
    top = campaigns[:top_count]
    share = sum(c.spend for c in top) / total
    if share <= t.concentration_pct:
        return None
    return _finding(
        i,
        FindingType.SPEND_CONCENTRATION,
        "High Budget Concentration",
        f"{share * 100:.0f}% of spend sits in only {top_count} campaigns. "
        "Account performance depends heavily on very few entities.",
        Severity.WARNING,
        FindingEvidence(
            current=share * 100, threshold=t.concentration_pct * 100
        ),
        entities=[c.name for c in top],
    )


def _budget_bleed(i: FindingInputs, t: FindingsConfig) -> Optional[DiagnosticFinding]:
    avg_cpa = i.current.cpa or t.fallback_cpa
    limit = avg_cpa * t.bleed_cpa_multiplier
    bleeding = [c for c in i.campaigns if c.purchases == 0 and c.spend > limit]
    if not bleeding:
        return None
    return _finding(
        i,
        FindingType.NO_CONVERSIONS_HIGH_SPEND,
        "Budget Bleed Detected",
        f"{len(bleeding)} campaigns spent over {t.bleed_cpa_multiplier:g}x average "
        "CPA with zero conversions. Immediate action required.",
        Severity.CRITICAL,
        FindingEvidence(current=sum(c.spend for c in bleeding), threshold=limit),
        entities=[c.name for c in bleeding],
    )


def _volatility(i: FindingInputs, t: FindingsConfig) -> Optional[DiagnosticFinding]:
    values = i.daily_cpas
    if len(values) <= t.volatility_min_points:
        return None
    mean = sum(values) / len(values)
    if mean <= 0:
        return None
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    cv = math.sqrt(variance) / mean
    if cv <= t.volatility_threshold:
        return None
    return _finding(
        i,
        FindingType.VOLATILITY,
        "Performance Instability",
        f"Daily CPA varies by {cv * 100:.0f}% (coefficient of variation). "
        "Delivery is struggling to find stable audience segments.",
        Severity.WARNING,
        FindingEvidence(current=cv * 100, threshold=t.volatility_threshold * 100),
    )


def _underfunded_winners(
    i: FindingInputs, t: FindingsConfig
) -> Optional[DiagnosticFinding]:
    if not i.campaigns:
        return None
    avg_spend = i.current.spend / len(i.campaigns)
    winners = [
        c
        for c in i.campaigns
        if c.spend > 0
        and c.purchases > 0
        and c.cpa < i.current.cpa * t.winner_cpa_ratio
        and c.spend < avg_spend
    ]
    if not winners:
        return None
    return _finding(
        i,
        FindingType.UNDERFUNDED_WINNERS,
        "Scaling Opportunity",
        f"{len(winners)} campaigns have CPA at least "
        f"{(1 - t.winner_cpa_ratio) * 100:.0f}% better than average but receive "
        "below-average budget.",
        Severity.HEALTHY,
        FindingEvidence(current=len(winners)),
        entities=[c.name for c in winners],
        status=FindingStatus.OPTIMAL,
    )


FINDING_RULES: List[
    Callable[[FindingInputs, FindingsConfig], Optional[DiagnosticFinding]]
] = [
    _cpa_spike,
    _roas_drop,
    _cvr_drop,
    _ctr_drop,
    _spend_concentration,
    _budget_bleed,
    _volatility,
    _underfunded_winners,
]


def run_diagnostic_rules(
    client_id: str,
    current: PeriodStats,
    previous: PeriodStats,
    campaigns: List[CampaignStats],
    daily_cpa_values: List[float],
    thresholds: FindingsConfig | None = None,
    now: Optional[datetime] = None,
) -> List[DiagnosticFinding]:
    """Evaluate every rule against already-aggregated periods."""
    thresholds = thresholds or FindingsConfig()
    inputs = FindingInputs(
        client_id=client_id,
        current=current,
        previous=previous,
        campaigns=campaigns,
        daily_cpas=daily_cpa_values,
        created_at=(now or datetime.now(timezone.utc)).isoformat(),
    )
    findings = [f for f in (rule(inputs, thresholds) for rule in FINDING_RULES) if f]
    logger.info(
        f"Findings for {client_id}: {len(findings)} "
        f"({', '.join(f.type.value for f in findings) or 'none'})",
        extra={"client_id": client_id},
    )
    return findings


def diagnose(
    client_id: str,
    rows: Sequence[DailyInsight],
    thresholds: FindingsConfig | None = None,
    now: Optional[datetime] = None,
) -> Tuple[List[DiagnosticFinding], PeriodStats, PeriodStats]:
    """Split raw daily rows into periods and run the rules.

    Returns (findings, current_stats, previous_stats).
    """
    previous_rows, current_rows, _ = split_periods(rows)
    current = aggregate_period(current_rows)
    previous = aggregate_period(previous_rows)
    findings = run_diagnostic_rules(
        client_id,
        current,
        previous,
        aggregate_campaigns(current_rows),
        daily_cpas(current_rows),
        thresholds,
        now,
    )
    return findings, current, previous
