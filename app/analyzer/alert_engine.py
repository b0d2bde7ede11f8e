"""ADLENS: Alert Engine.

Entity-level alerts evaluated on demand from rolling metrics, the latest
classifications and the client's engine configuration. Titles and
descriptions come from the configurable templates; ``enabled_alerts``
filters what is returned.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from app.config import settings
from app.models.analysis_models import (
    Alert,
    EntityClassification,
    FatigueState,
    FinalDecision,
    Severity,
    StructuralState,
)
from app.models.client_models import ClientTargets
from app.models.engine_config import DEFAULT_ALERT_TEMPLATES, AlertTemplate, EngineConfig
from app.models.snapshot_models import (
    DailyEntitySnapshot,
    EntityLevel,
    EntityRollingMetrics,
)
from app.core.logging import get_logger

logger = get_logger("analyzer.alerts")

# Which rolling counter is the "primary" conversion per business model
PRIMARY_METRIC = {
    "ecommerce": ("purchases_7d", "Sales"),
    "leads": ("leads_7d", "Leads"),
    "whatsapp": ("whatsapp_7d", "Conversations"),
    "apps": ("installs_7d", "App installs"),
}

FATIGUE_LABELS = {
    FatigueState.REAL: "Real fatigue",
    FatigueState.CONCEPT_DECAY: "Concept decay",
    FatigueState.HEALTHY_REPETITION: "Healthy repetition",
    FatigueState.NONE: "None",
}

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def format_template(template: str, values: Dict[str, object]) -> str:
    """Substitute ``{name}`` placeholders; unknown names are left as-is."""
    return _PLACEHOLDER.sub(
        lambda m: str(values[m.group(1)]) if m.group(1) in values else m.group(0),
        template,
    )


@dataclass
class _EntityView:
    rolling: EntityRollingMetrics
    display_name: str
    values: Dict[str, object]


def _display_name(
    rolling: EntityRollingMetrics,
    snapshot: Optional[DailyEntitySnapshot],
    names: Dict[str, str],
) -> str:
    name = rolling.name or rolling.entity_id
    if snapshot is None:
        return name
    meta = snapshot.meta
    if rolling.level == EntityLevel.AD and meta.adset_id and meta.campaign_id:
        return (
            f"{names.get(meta.campaign_id, 'Camp.')} > "
            f"{names.get(meta.adset_id, 'Set')} > {name}"
        )
    if rolling.level == EntityLevel.ADSET and meta.campaign_id:
        return f"{names.get(meta.campaign_id, 'Camp.')} > {name}"
    return name


def _money(value: Optional[float]) -> str:
    return f"${value:.2f}" if value else "N/A"


def evaluate_alerts(
    client_id: str,
    rolling: List[EntityRollingMetrics],
    classifications: Iterable[EntityClassification],
    snapshots: Iterable[DailyEntitySnapshot],
    config: EngineConfig | None = None,
    targets: Optional[ClientTargets] = None,
    business_model: str = "ecommerce",
) -> List[Alert]:
    """Alerts for every entity with rolling metrics, sorted by impact."""
    config = config or EngineConfig(client_id=client_id)
    targets = targets or ClientTargets()
    target_cpa = targets.target_cpa
    target_roas = targets.target_roas or settings.default_target_roas
    is_ecommerce = business_model == "ecommerce"
    metric_field, metric_label = PRIMARY_METRIC.get(
        business_model, ("purchases_7d", "Conv.")
    )

    snaps = {(s.level, s.entity_id): s for s in snapshots}
    classifs = {(c.level, c.entity_id): c for c in classifications}
    names = {r.entity_id: r.name for r in rolling if r.name}
    templates = config.alerts.templates

    alerts: List[Alert] = []

    def emit(
        view: _EntityView,
        type: str,
        severity: Severity,
        impact: float,
        evidence: List[str],
        **extra: object,
    ) -> None:
        template: AlertTemplate = templates.get(type) or DEFAULT_ALERT_TEMPLATES[type]
        values = {**view.values, **extra}
        alerts.append(
            Alert(
                client_id=client_id,
                level=view.rolling.level.value,
                entity_id=view.rolling.entity_id,
                entity_name=view.display_name,
                type=type,
                severity=severity,
                title=format_template(template.title, values),
                description=format_template(template.description, values),
                impact_score=impact,
                evidence=evidence,
            )
        )

    for r in rolling:
        snap = snaps.get((r.level, r.entity_id))
        classif = classifs.get((r.level.value, r.entity_id))
        primary = float(getattr(r, metric_field))
        primary_cpa = r.spend_7d / primary if primary > 0 else None
        display = _display_name(r, snap, names)
        view = _EntityView(
            rolling=r,
            display_name=display,
            values={
                "entityName": display,
                "spend_7d": f"${r.spend_7d:.2f}",
                "cpa_7d": _money(primary_cpa),
                "targetCpa": _money(target_cpa),
                "frequency_7d": f"{r.frequency_7d:.1f}",
                "budget_change_3d_pct": f"{r.budget_change_3d_pct:.0f}",
                "cpa_delta_pct": f"{r.cpa_delta_pct:.0f}",
            },
        )
        base_impact = classif.impact_score if classif else 50.0

        # ── Scaling opportunity ──
        cpa_meets = (
            target_cpa is not None and primary_cpa is not None and primary_cpa <= target_cpa
        )
        roas_meets = r.roas_7d >= target_roas if is_ecommerce else True
        velocity = r.conversion_velocity_7d if is_ecommerce else primary / 7
        days_stable = (
            snap.stability.days_since_last_edit >= config.learning.unstable_days
            if snap
            else True
        )
        if (
            (cpa_meets or (is_ecommerce and roas_meets))
            and velocity > config.alerts.scaling_min_velocity
            and r.frequency_7d < config.alerts.scaling_frequency_max
            and days_stable
        ):
            cost_label = "CPA" if is_ecommerce else f"Cost/{metric_label}"
            emit(
                view,
                "SCALING_OPPORTUNITY",
                Severity.INFO,
                base_impact,
                [
                    f"{cost_label} 7d: {view.values['cpa_7d']}",
                    f"ROAS 7d: {r.roas_7d:.2f}x"
                    if is_ecommerce
                    else f"Volume 7d: {primary:g}",
                    f"Frequency: {view.values['frequency_7d']}",
                ],
            )

        # ── Learning reset risk ──
        budget_change = r.budget_change_3d_pct
        recent_edit = (
            snap.stability.days_since_last_edit < config.learning.unstable_days
            if snap
            else False
        )
        if abs(budget_change) > config.alerts.learning_reset_budget_change_pct and recent_edit:
            emit(
                view,
                "LEARNING_RESET_RISK",
                Severity.WARNING,
                min(base_impact + 15, 100),
                [
                    f"Budget change 3d: {budget_change:.1f}%",
                    f"Edited less than {config.learning.unstable_days} days ago",
                ],
                threshold_pct=f"{config.alerts.learning_reset_budget_change_pct:g}",
            )

        # ── CPA spike ──
        if r.cpa_delta_pct > config.findings.cpa_spike_threshold * 100:
            emit(
                view,
                "CPA_SPIKE",
                Severity.CRITICAL,
                80,
                [
                    f"CPA 7d: {view.values['cpa_7d']}",
                    f"CPA 14d: ${r.cpa_14d:.2f}",
                    f"Delta: {r.cpa_delta_pct:.1f}%",
                ],
            )

        # ── Budget bleed ──
        if primary == 0 and target_cpa and r.spend_7d > target_cpa * 2:
            emit(
                view,
                "BUDGET_BLEED",
                Severity.CRITICAL,
                90,
                [
                    f"Spend 7d: {view.values['spend_7d']}",
                    "Conversions: 0",
                    f"Target CPA: {view.values['targetCpa']}",
                ],
            )

        # ── Volatility ──
        volatility_pct = config.findings.volatility_threshold * 100
        if abs(budget_change) > volatility_pct:
            emit(
                view,
                "CPA_VOLATILITY",
                Severity.WARNING,
                40,
                [
                    f"Budget change 3d: {budget_change:.1f}%",
                    f"Threshold: {volatility_pct:g}%",
                ],
            )

        if classif is None:
            continue

        if classif.fatigue_state in (FatigueState.REAL, FatigueState.CONCEPT_DECAY):
            emit(
                view,
                "ROTATE_CONCEPT",
                Severity.CRITICAL,
                classif.impact_score,
                classif.evidence,
                fatigueLabel=FATIGUE_LABELS[classif.fatigue_state],
                hook_rate_7d=f"{r.hook_rate_7d:.2f}%",
            )

        if classif.structural_state in (
            StructuralState.FRAGMENTED,
            StructuralState.OVERCONCENTRATED,
        ):
            emit(
                view,
                "CONSOLIDATE",
                Severity.WARNING,
                classif.impact_score,
                classif.evidence,
                structuralState=(
                    "Fragmented"
                    if classif.structural_state == StructuralState.FRAGMENTED
                    else "Overconcentrated"
                ),
            )

        if classif.final_decision == FinalDecision.KILL_RETRY:
            emit(view, "KILL_RETRY", Severity.WARNING, classif.impact_score, classif.evidence)

        if classif.final_decision == FinalDecision.INTRODUCE_BOFU_VARIANTS:
            emit(
                view,
                "INTRODUCE_BOFU_VARIANTS",
                Severity.INFO,
                classif.impact_score,
                classif.evidence,
            )

    enabled = set(
        templates.keys()
        if config.alerts.enabled_alerts is None
        else config.alerts.enabled_alerts
    )
    result = [a for a in alerts if a.type in enabled]
    result.sort(key=lambda a: a.impact_score, reverse=True)

    logger.info(
        f"Alerts for {client_id}: {len(result)} of {len(alerts)} enabled",
        extra={"client_id": client_id},
    )
    return result
