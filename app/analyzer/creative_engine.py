"""ADLENS: Creative Strategic Classifier.

Buckets every ad into one of six strategic categories from its rolling
metrics, its ad-level classification and its position in the account
(spend share, P25 spend). A companion extractor profiles the winners
(DOMINANT_SCALABLE + HIDDEN_BOFU) for creative briefs.
"""

import math
import re
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from app.models.analysis_models import (
    CreativeCategory,
    CreativeCategoryResult,
    EntityClassification,
    FatigueState,
    FinalDecision,
    IntentStage,
    PatternInsight,
    WinningPatterns,
)
from app.models.engine_config import CreativeConfig
from app.models.snapshot_models import (
    DailyEntitySnapshot,
    EntityLevel,
    EntityRollingMetrics,
)
from app.core.logging import get_logger

logger = get_logger("analyzer.creative")

SATURATING_FATIGUE = {FatigueState.REAL, FatigueState.CONCEPT_DECAY}
WINNER_CATEGORIES = {CreativeCategory.DOMINANT_SCALABLE, CreativeCategory.HIDDEN_BOFU}


@dataclass(frozen=True)
class AdFacts:
    """Numbers one ad is judged on."""

    entity_id: str
    spend_7d: float
    spend_pct: float  # % of account 7d spend
    impressions: int
    conversions_7d: float
    cpa_7d: float  # inf when nothing converted
    days_active: int
    p25_spend: float
    target_cpa: Optional[float]
    config: CreativeConfig
    classification: Optional[EntityClassification] = None

    @property
    def stage(self) -> Optional[IntentStage]:
        return self.classification.intent_stage if self.classification else None

    @property
    def is_bofu(self) -> bool:
        return self.stage == IntentStage.BOFU

    @property
    def is_scale(self) -> bool:
        return (
            self.classification is not None
            and self.classification.final_decision == FinalDecision.SCALE
        )

    @property
    def is_saturating(self) -> bool:
        return (
            self.classification is not None
            and self.classification.fatigue_state in SATURATING_FATIGUE
        )


@dataclass(frozen=True)
class CreativeRule:
    name: str
    category: CreativeCategory
    guard: Callable[[AdFacts], bool]
    reason: Callable[[AdFacts], str]


def _money(value: float, decimals: int = 2) -> str:
    return f"${value:.{decimals}f}" if math.isfinite(value) else "n/a"


CREATIVE_RULES: List[CreativeRule] = [
    CreativeRule(
        "new",
        CreativeCategory.NEW_INSUFFICIENT_DATA,
        lambda f: (
            f.days_active < f.config.new_max_days
            and f.impressions < f.config.new_max_impressions
        ),
        lambda f: (
            f"Active for {f.days_active} days with {f.impressions} impressions; "
            "not enough data."
        ),
    ),
    CreativeRule(
        "zombie",
        CreativeCategory.ZOMBIE,
        lambda f: f.spend_7d > f.config.zombie_min_spend and f.conversions_7d == 0,
        lambda f: f"{_money(f.spend_7d, 0)} spent in 7d with 0 conversions.",
    ),
    CreativeRule(
        "dominant",
        CreativeCategory.DOMINANT_SCALABLE,
        lambda f: (
            f.is_bofu
            and (
                f.is_scale
                or (f.target_cpa is not None and f.cpa_7d <= f.target_cpa)
            )
            and f.spend_pct > f.config.dominant_spend_share_pct
        ),
        lambda f: (
            f"BOFU holding {f.spend_pct:.0f}% of total spend. "
            f"CPA: {_money(f.cpa_7d)}."
        ),
    ),
    CreativeRule(
        "saturating",
        CreativeCategory.WINNER_SATURATING,
        lambda f: f.is_bofu and f.is_saturating,
        lambda f: (
            f"BOFU with {f.classification.fatigue_state.value} fatigue. "
            "Needs a concept rotation."
        ),
    ),
    CreativeRule(
        "hidden",
        CreativeCategory.HIDDEN_BOFU,
        lambda f: f.is_bofu and f.spend_7d < f.p25_spend and f.conversions_7d > 0,
        lambda f: (
            f"Underfunded BOFU ({_money(f.spend_7d, 0)} < P25 "
            f"{_money(f.p25_spend, 0)})."
        ),
    ),
    CreativeRule(
        "inefficient",
        CreativeCategory.INEFFICIENT_TOFU,
        lambda f: (
            f.stage == IntentStage.TOFU
            and f.target_cpa is not None
            and f.target_cpa > 0
            and f.cpa_7d > f.target_cpa * f.config.inefficient_cpa_multiplier
            and f.spend_7d > f.config.inefficient_min_spend
        ),
        lambda f: (
            f"TOFU with CPA {_money(f.cpa_7d)} "
            f"({f.cpa_7d / f.target_cpa * 100:.0f}% of target). "
            f"Spend: {_money(f.spend_7d, 0)}."
            if math.isfinite(f.cpa_7d)
            else f"TOFU without conversions. Spend: {_money(f.spend_7d, 0)}."
        ),
    ),
    CreativeRule(
        "zombie_fallback",
        CreativeCategory.ZOMBIE,
        lambda f: f.conversions_7d == 0 and f.spend_7d > f.config.zombie_fallback_spend,
        lambda f: f"No conversions on {_money(f.spend_7d, 0)} of spend.",
    ),
    CreativeRule(
        "dominant_fallback",
        CreativeCategory.DOMINANT_SCALABLE,
        lambda f: f.is_bofu and f.spend_pct > f.config.fallback_spend_share_pct,
        lambda f: f"BOFU performing well. {f.spend_pct:.0f}% of spend.",
    ),
    CreativeRule(
        "unclear",
        CreativeCategory.NEW_INSUFFICIENT_DATA,
        lambda f: True,
        lambda f: "No clear category fits. Limited data.",
    ),
]


def spend_percentile(spends: Iterable[float], p: float) -> float:
    """Nearest-rank percentile over positive spends; 0 when none."""
    ordered = sorted(s for s in spends if s > 0)
    if not ordered:
        return 0.0
    return ordered[min(int(math.floor(len(ordered) * p)), len(ordered) - 1)]


def classify_ad(facts: AdFacts) -> CreativeCategoryResult:
    for rule in CREATIVE_RULES:
        if rule.guard(facts):
            return CreativeCategoryResult(
                entity_id=facts.entity_id,
                category=rule.category,
                reasoning=rule.reason(facts),
            )
    last = CREATIVE_RULES[-1]
    return CreativeCategoryResult(
        entity_id=facts.entity_id, category=last.category, reasoning=last.reason(facts)
    )


def _index_ad_classifications(
    classifications: Iterable[EntityClassification],
) -> Dict[str, EntityClassification]:
    return {
        c.entity_id: c
        for c in classifications
        if c.level == EntityLevel.AD.value
    }


def classify_creatives(
    ads: List[EntityRollingMetrics],
    classifications: Iterable[EntityClassification],
    account_spend_7d: float,
    target_cpa: Optional[float] = None,
    config: CreativeConfig | None = None,
) -> List[CreativeCategoryResult]:
    """Categorize every ad of an account."""
    config = config or CreativeConfig()
    by_id = _index_ad_classifications(classifications)
    p25 = spend_percentile((a.spend_7d for a in ads), config.hidden_spend_percentile)

    results: List[CreativeCategoryResult] = []
    for ad in ads:
        conversions = ad.conversions_7d
        facts = AdFacts(
            entity_id=ad.entity_id,
            spend_7d=ad.spend_7d,
            spend_pct=ad.spend_7d / account_spend_7d * 100 if account_spend_7d > 0 else 0.0,
            impressions=ad.impressions_7d,
            conversions_7d=conversions,
            cpa_7d=ad.spend_7d / conversions if conversions > 0 else math.inf,
            days_active=ad.days_active or 0,
            p25_spend=p25,
            target_cpa=target_cpa,
            config=config,
            classification=by_id.get(ad.entity_id),
        )
        results.append(classify_ad(facts))

    counts = Counter(r.category.value for r in results)
    logger.info(f"Creative categories for {len(results)} ads: {dict(counts)}")
    return results


# ─────────────────────────────────────────────
# WINNING PATTERNS
# ─────────────────────────────────────────────

_HOOK_SPLIT = re.compile(r"[_\-|>/\s]+")
_HOOK_NOISE = re.compile(r"^(ad|v\d|copy|img|vid|act|set)\d*$")


def extract_hooks(names: Iterable[str], limit: int = 5) -> List[str]:
    """Tokens from ad names shared by more than one winner, most common first."""
    counts: Counter = Counter()
    for name in names:
        if not name:
            continue
        for token in _HOOK_SPLIT.split(name.lower()):
            if len(token) > 2 and not _HOOK_NOISE.match(token):
                counts[token] += 1
    return [token for token, n in counts.most_common() if n > 1][:limit]


def _dominant_format(
    winner_ids: set, snapshots: Iterable[DailyEntitySnapshot]
) -> str:
    formats = Counter(
        s.meta.format_type.upper()
        for s in snapshots
        if s.entity_id in winner_ids and s.meta.format_type
    )
    if not formats:
        return "MIXED"
    ranked = formats.most_common(2)
    if len(ranked) > 1 and ranked[0][1] == ranked[1][1]:
        return "MIXED"
    fmt, count = ranked[0]
    return fmt if count * 2 > sum(formats.values()) else "MIXED"


def _share(count: int, total: int) -> int:
    return int(math.floor(count / total * 100 + 0.5))


def extract_winning_patterns(
    ads: List[EntityRollingMetrics],
    classifications: Iterable[EntityClassification],
    categories: List[CreativeCategoryResult],
    account_spend_7d: float,
    snapshots: Iterable[DailyEntitySnapshot] = (),
) -> WinningPatterns:
    winner_ids = {c.entity_id for c in categories if c.category in WINNER_CATEGORIES}
    winners = [a for a in ads if a.entity_id in winner_ids]
    if not winners:
        return WinningPatterns()

    by_id = _index_ad_classifications(classifications)
    winner_classifs = [by_id[w] for w in winner_ids if w in by_id]

    total_spend = sum(w.spend_7d for w in winners)
    total_conversions = sum(w.conversions_7d for w in winners)
    total_revenue = sum(w.roas_7d * w.spend_7d for w in winners)

    stage_counts = Counter(c.intent_stage for c in winner_classifs)
    dominant_stage = (
        stage_counts.most_common(1)[0][0] if stage_counts else IntentStage.BOFU
    )

    n = len(winners)
    patterns: List[PatternInsight] = []

    high_freq = sum(1 for w in winners if w.frequency_7d > 3)
    if high_freq:
        patterns.append(
            PatternInsight(
                label="High frequency",
                value=f"{high_freq} of {n} winners run at frequency > 3",
                frequency=_share(high_freq, n),
            )
        )

    high_share = sum(
        1
        for w in winners
        if account_spend_7d > 0 and w.spend_7d / account_spend_7d * 100 > 20
    )
    if high_share:
        patterns.append(
            PatternInsight(
                label="High concentration",
                value=f"{high_share} creatives each hold > 20% of spend",
                frequency=_share(high_share, n),
            )
        )

    scale = sum(1 for c in winner_classifs if c.final_decision == FinalDecision.SCALE)
    if scale:
        patterns.append(
            PatternInsight(
                label="Ready to scale",
                value=f"{scale} of {n} with a SCALE decision",
                frequency=_share(scale, n),
            )
        )

    return WinningPatterns(
        total_winners=n,
        dominant_format=_dominant_format(winner_ids, snapshots),
        dominant_funnel_stage=dominant_stage,
        avg_cpa=total_spend / total_conversions if total_conversions > 0 else 0.0,
        avg_roas=total_revenue / total_spend if total_spend > 0 else 0.0,
        avg_spend_pct=(
            total_spend / account_spend_7d * 100 / n if account_spend_7d > 0 else 0.0
        ),
        top_hooks=extract_hooks(w.name for w in winners),
        patterns=patterns,
    )
