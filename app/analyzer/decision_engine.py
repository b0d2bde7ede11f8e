"""ADLENS: Decision Engine.

Combines the four upstream classifications with raw rolling metrics and
client targets into one recommended action. The matrix is an ordered
table of rules evaluated top-down; the first rule whose guard holds wins.
Every rule explains itself with evidence strings built from the same
numbers its guard tested.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from app.config import settings
from app.analyzer.fatigue_engine import classify_fatigue
from app.analyzer.intent_engine import compute_intent
from app.analyzer.learning_engine import classify_learning_state
from app.analyzer.structure_engine import classify_structure
from app.models.analysis_models import (
    MATERIAL_DECISIONS,
    ClientPercentiles,
    EntityClassification,
    FatigueState,
    FinalDecision,
    IntentResult,
    IntentStage,
    LearningState,
    StructuralState,
)
from app.models.client_models import ClientTargets
from app.models.engine_config import EngineConfig
from app.models.snapshot_models import (
    ConceptRollingMetrics,
    DailyEntitySnapshot,
    EntityRollingMetrics,
)
from app.core.logging import get_logger

logger = get_logger("analyzer.decision")


@dataclass(frozen=True)
class DecisionContext:
    """Everything a rule may look at for one entity."""

    snapshot: DailyEntitySnapshot
    rolling: EntityRollingMetrics
    config: EngineConfig
    learning: LearningState
    intent: IntentResult
    fatigue: FatigueState
    structure: StructuralState
    target_cpa: Optional[float]
    target_roas: float
    active_sub_units: int = 0
    conversions_7d: float = 0.0
    concept: Optional[ConceptRollingMetrics] = None

    @property
    def budget_change_pct(self) -> float:
        change = self.snapshot.stability.budget_change_3d_pct
        return change if change is not None else self.rolling.budget_change_3d_pct


@dataclass(frozen=True)
class DecisionRule:
    name: str
    decision: FinalDecision
    confidence: float
    guard: Callable[[DecisionContext], bool]
    explain: Callable[[DecisionContext], List[str]]


# ─────────────────────────────────────────────
# GUARDS
# ─────────────────────────────────────────────


def _exploration_kill(ctx: DecisionContext) -> bool:
    return (
        ctx.learning == LearningState.EXPLORATION
        and ctx.rolling.spend_7d > ctx.config.learning.kill_min_spend
        and ctx.rolling.conversions_7d == 0
    )


def _cpa_within_target(ctx: DecisionContext) -> bool:
    return (
        ctx.target_cpa is not None
        and ctx.rolling.cpa_7d > 0
        and ctx.rolling.cpa_7d <= ctx.target_cpa
    )


def _roas_meets_target(ctx: DecisionContext) -> bool:
    return ctx.rolling.roas_7d > 0 and ctx.rolling.roas_7d >= ctx.target_roas


def _velocity_holding(ctx: DecisionContext) -> bool:
    r = ctx.rolling
    return r.conversion_velocity_7d > 0 and (
        r.conversion_velocity_7d >= r.conversion_velocity_14d
    )


def _scalable(ctx: DecisionContext) -> bool:
    return (
        ctx.learning == LearningState.EXPLOITATION
        and ctx.intent.stage == IntentStage.BOFU
        and (_cpa_within_target(ctx) or _roas_meets_target(ctx))
        and _velocity_holding(ctx)
        and ctx.rolling.frequency_7d < ctx.config.alerts.scaling_frequency_max
        and ctx.snapshot.stability.days_since_last_edit
        >= ctx.config.learning.unstable_days
    )


# ─────────────────────────────────────────────
# EVIDENCE
# ─────────────────────────────────────────────


def _explain_kill(ctx: DecisionContext) -> List[str]:
    return [
        f"Zero conversions on ${ctx.rolling.spend_7d:.2f} spend during exploration "
        f"(> ${ctx.config.learning.kill_min_spend:.2f})."
    ]


def _explain_exploration(ctx: DecisionContext) -> List[str]:
    return [
        f"Early learning phase: {ctx.snapshot.stability.days_active} days active "
        f"(<= {ctx.config.learning.exploration_days})."
    ]


def _explain_unstable(ctx: DecisionContext) -> List[str]:
    facts = [
        f"Edited {ctx.snapshot.stability.days_since_last_edit} days ago "
        f"(< {ctx.config.learning.unstable_days}); letting delivery re-stabilize."
    ]
    limit = ctx.config.alerts.learning_reset_budget_change_pct
    if abs(ctx.budget_change_pct) > limit:
        facts.append(
            f"Budget change of {ctx.budget_change_pct:.1f}% exceeds the "
            f"{limit:.0f}% learning-reset threshold."
        )
    return facts


def _explain_fatigue(ctx: DecisionContext) -> List[str]:
    cfg = ctx.config.fatigue
    if ctx.fatigue == FatigueState.REAL:
        r = ctx.rolling
        return [
            f"Frequency {r.frequency_7d:.2f} > {cfg.frequency_threshold:.2f}.",
            f"CPA 7d (${r.cpa_7d:.2f}) above {cfg.cpa_multiplier_threshold:.2f}x "
            f"CPA 14d (${r.cpa_14d:.2f}).",
            f"Hook rate delta {r.hook_rate_delta * 100:.1f}% below "
            f"{cfg.hook_rate_delta_threshold * 100:.1f}%.",
            f"Top ad holds {r.spend_top1_ad_pct * 100:.0f}% of spend "
            f"(> {cfg.concentration_threshold * 100:.0f}%).",
        ]
    c = ctx.concept
    if c is None:
        return ["Concept average CPA rising while hook rate falls."]
    return [
        f"Concept {c.concept_id} average CPA 7d (${c.avg_cpa_7d:.2f}) above "
        f"{cfg.cpa_multiplier_threshold:.2f}x 14d (${c.avg_cpa_14d:.2f}).",
        f"Concept hook rate delta {c.hook_rate_delta * 100:.1f}% below "
        f"{cfg.hook_rate_delta_threshold * 100:.1f}%.",
    ]


def _explain_fragmented(ctx: DecisionContext) -> List[str]:
    cfg = ctx.config.structure
    return [
        f"{ctx.conversions_7d:.0f} conversions in 7d "
        f"(< {cfg.fragmentation_min_conversions:.0f}) spread across "
        f"{ctx.active_sub_units} active ad sets (> {cfg.fragmentation_adsets_max})."
    ]


def _explain_overconcentrated(ctx: DecisionContext) -> List[str]:
    cfg = ctx.config.structure
    return [
        f"Top unit holds {ctx.rolling.spend_top1_ad_pct * 100:.0f}% of "
        f"${ctx.rolling.spend_7d:.2f} spend (> {cfg.overconcentration_pct * 100:.0f}%)."
    ]


def _explain_scale(ctx: DecisionContext) -> List[str]:
    r = ctx.rolling
    facts = []
    if _cpa_within_target(ctx):
        facts.append(f"CPA (${r.cpa_7d:.2f}) within target (${ctx.target_cpa:.2f}).")
    if _roas_meets_target(ctx):
        facts.append(f"ROAS ({r.roas_7d:.2f}) at or above target ({ctx.target_roas:.2f}).")
    facts.append(
        f"Velocity {r.conversion_velocity_7d:.2f}/day holding vs 14d "
        f"({r.conversion_velocity_14d:.2f}/day)."
    )
    facts.append(
        f"Frequency {r.frequency_7d:.2f} below scaling ceiling "
        f"{ctx.config.alerts.scaling_frequency_max:.2f}."
    )
    facts.append("High, stable performance in exploitation phase.")
    return facts


def _explain_bofu_variants(ctx: DecisionContext) -> List[str]:
    return [
        f"Intent score {ctx.intent.score:.2f} (MOFU): intent present but "
        "conversion volume could be higher."
    ]


def _explain_default(ctx: DecisionContext) -> List[str]:
    return ["No rule triggered a change; keep monitoring."]


# ─────────────────────────────────────────────
# DECISION MATRIX (order is priority)
# ─────────────────────────────────────────────

DECISION_RULES: List[DecisionRule] = [
    DecisionRule(
        "exploration_kill", FinalDecision.KILL_RETRY, 0.8,
        _exploration_kill, _explain_kill,
    ),
    DecisionRule(
        "exploration_hold", FinalDecision.HOLD, 0.9,
        lambda ctx: ctx.learning == LearningState.EXPLORATION,
        _explain_exploration,
    ),
    DecisionRule(
        "unstable_hold", FinalDecision.HOLD, 0.85,
        lambda ctx: ctx.learning == LearningState.UNSTABLE,
        _explain_unstable,
    ),
    DecisionRule(
        "fatigue_rotate", FinalDecision.ROTATE_CONCEPT, 0.85,
        lambda ctx: ctx.fatigue in (FatigueState.REAL, FatigueState.CONCEPT_DECAY),
        _explain_fatigue,
    ),
    DecisionRule(
        "fragmented_consolidate", FinalDecision.CONSOLIDATE, 0.8,
        lambda ctx: ctx.structure == StructuralState.FRAGMENTED,
        _explain_fragmented,
    ),
    DecisionRule(
        "overconcentrated_consolidate", FinalDecision.CONSOLIDATE, 0.7,
        lambda ctx: ctx.structure == StructuralState.OVERCONCENTRATED,
        _explain_overconcentrated,
    ),
    DecisionRule(
        "bofu_scale", FinalDecision.SCALE, 0.88,
        _scalable, _explain_scale,
    ),
    DecisionRule(
        "mofu_variants", FinalDecision.INTRODUCE_BOFU_VARIANTS, 0.75,
        lambda ctx: (
            ctx.learning == LearningState.EXPLOITATION
            and ctx.intent.stage == IntentStage.MOFU
        ),
        _explain_bofu_variants,
    ),
    DecisionRule(
        "default_hold", FinalDecision.HOLD, 0.95,
        lambda ctx: True,
        _explain_default,
    ),
]


def base_facts(rolling: EntityRollingMetrics) -> List[str]:
    """Headline numbers shown regardless of the decision."""
    facts: List[str] = []
    if rolling.spend_7d > 0:
        facts.append(f"Spend 7d: ${rolling.spend_7d:.2f}")
    if rolling.cpa_7d > 0:
        facts.append(f"CPA 7d: ${rolling.cpa_7d:.2f}")
    if rolling.roas_7d > 0:
        facts.append(f"ROAS 7d: {rolling.roas_7d:.2f}")
    if rolling.conversion_velocity_7d > 0:
        facts.append(f"Conversions/day: {rolling.conversion_velocity_7d:.2f}")
    if abs(rolling.roas_delta_pct) > 5:
        facts.append(f"ROAS delta: {rolling.roas_delta_pct:.1f}%")
    if abs(rolling.hook_rate_delta) > 0.05:
        facts.append(f"Hook rate delta: {rolling.hook_rate_delta * 100:.1f}%")
    return facts


def select_rule(ctx: DecisionContext) -> DecisionRule:
    """First rule whose guard holds. The last rule always matches."""
    for rule in DECISION_RULES:
        if rule.guard(ctx):
            return rule
    return DECISION_RULES[-1]


def impact_score(rolling: EntityRollingMetrics, decision: FinalDecision) -> float:
    """0..100: money at stake plus how consequential the action is."""
    spend_weight = min(rolling.spend_7d / 1000, 1) * 40
    severity_weight = 40 if decision in MATERIAL_DECISIONS else 20
    velocity_weight = min(rolling.conversion_velocity_7d / 5, 1) * 20
    return round(spend_weight + severity_weight + velocity_weight, 2)


def classify_entity(
    snapshot: DailyEntitySnapshot,
    rolling: EntityRollingMetrics,
    percentiles: ClientPercentiles,
    config: EngineConfig | None = None,
    concept: Optional[ConceptRollingMetrics] = None,
    targets: Optional[ClientTargets] = None,
    active_sub_units: int = 0,
    conversions_7d: Optional[float] = None,
    now: Optional[datetime] = None,
) -> EntityClassification:
    """Run all layers for one entity and return its classification.

    ``conversions_7d`` is the total used by the fragmentation check; it
    defaults to the entity's own rolling conversions.
    """
    config = config or EngineConfig()
    targets = targets or ClientTargets()
    if conversions_7d is None:
        conversions_7d = rolling.conversions_7d

    # Layers 1-4
    learning = classify_learning_state(
        snapshot.stability.days_active,
        snapshot.stability.days_since_last_edit,
        config.learning,
    )
    intent = compute_intent(snapshot, percentiles, config.intent)
    fatigue = classify_fatigue(rolling, concept, config.fatigue)
    structure = classify_structure(
        snapshot.level,
        active_sub_units,
        conversions_7d,
        rolling.spend_top1_ad_pct,
        rolling.spend_7d,
        config.structure,
    )

    # Layer 5
    ctx = DecisionContext(
        snapshot=snapshot,
        rolling=rolling,
        config=config,
        learning=learning,
        intent=intent,
        fatigue=fatigue,
        structure=structure,
        target_cpa=targets.target_cpa,
        target_roas=(
            targets.target_roas
            if targets.target_roas is not None
            else settings.default_target_roas
        ),
        active_sub_units=active_sub_units,
        conversions_7d=conversions_7d,
        concept=concept,
    )
    rule = select_rule(ctx)
    evidence = base_facts(rolling) + rule.explain(ctx)

    logger.debug(
        f"{snapshot.level.value}/{snapshot.entity_id} → {rule.decision.value} "
        f"via {rule.name}",
        extra={
            "entity_id": snapshot.entity_id,
            "entity_level": snapshot.level.value,
            "decision": rule.decision.value,
        },
    )

    return EntityClassification(
        client_id=snapshot.client_id,
        level=snapshot.level.value,
        entity_id=snapshot.entity_id,
        concept_id=snapshot.meta.concept_id,
        updated_at=(now or datetime.now(timezone.utc)).isoformat(),
        learning_state=learning,
        intent_score=intent.score,
        intent_stage=intent.stage,
        fatigue_state=fatigue,
        structural_state=structure,
        final_decision=rule.decision,
        confidence_score=rule.confidence,
        impact_score=impact_score(rolling, rule.decision),
        evidence=evidence,
    )
