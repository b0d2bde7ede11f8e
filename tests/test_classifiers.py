"""Tests for the layer classifiers: percentiles, learning, intent, fatigue, structure."""

import math

import pytest

from conftest import build_classification, build_rolling, build_snapshot
from app.analyzer.fatigue_engine import classify_fatigue, summarize_fatigue
from app.analyzer.intent_engine import (
    compute_intent,
    normalize,
    stage_for_score,
    weighted_score,
)
from app.analyzer.learning_engine import classify_learning_state
from app.analyzer.percentile_engine import compute_client_percentiles, percentile
from app.analyzer.structure_engine import classify_structure
from app.core.metric_registry import INTENT_SIGNALS, total_weight
from app.models.analysis_models import (
    FatigueState,
    IntentStage,
    LearningState,
    StructuralState,
)
from app.models.engine_config import (
    FatigueConfig,
    IntentConfig,
    LearningConfig,
    StructureConfig,
)
from app.models.snapshot_models import ConceptRollingMetrics, EntityLevel


class TestPercentile:
    def test_empty_is_zero(self):
        assert percentile([], 0.9) == 0.0

    def test_linear_interpolation(self):
        # pos = 4 * 0.1 = 0.4 → 1 + 0.4 * (2 - 1)
        assert percentile([5, 1, 3, 2, 4], 0.1) == pytest.approx(1.4)
        assert percentile([5, 1, 3, 2, 4], 0.9) == pytest.approx(4.6)

    def test_single_value(self):
        assert percentile([7.0], 0.1) == 7.0
        assert percentile([7.0], 0.9) == 7.0

    def test_empty_population_uses_defaults(self):
        anchors = compute_client_percentiles([])
        for name, signal in INTENT_SIGNALS.items():
            anchor = getattr(anchors, name)
            assert anchor.p10 == signal.default_p10
            assert anchor.p90 == signal.default_p90
            assert math.isfinite(anchor.p10) and math.isfinite(anchor.p90)

    def test_population_derived_anchors(self):
        rolling = [build_rolling(f"ad_{i}", cpa_7d=float(cpa)) for i, cpa in enumerate([10, 20, 40, 50, 100])]
        anchors = compute_client_percentiles(rolling)
        inv = sorted(1 / c for c in [10, 20, 40, 50, 100])
        assert anchors.cpa_inv.p10 == pytest.approx(percentile(inv, 0.1))
        assert anchors.cpa_inv.p90 == pytest.approx(percentile(inv, 0.9))

    def test_fixed_anchors_except_inverse_cpa(self):
        rolling = [build_rolling(f"ad_{i}", ctr_7d=5.0 + i) for i in range(5)]
        anchors = compute_client_percentiles(rolling, population_anchors=False)
        assert anchors.ctr.p10 == INTENT_SIGNALS["ctr"].default_p10
        assert anchors.cpa_inv.p10 == pytest.approx(1 / 50.0)


class TestLearningState:
    @pytest.mark.parametrize("age", [1, 5, 14, 200])
    def test_recent_edit_is_always_unstable(self, age):
        assert classify_learning_state(age, 0) == LearningState.UNSTABLE
        assert classify_learning_state(age, 2) == LearningState.UNSTABLE

    @pytest.mark.parametrize(
        "age, expected",
        [
            (4, LearningState.EXPLORATION),
            (5, LearningState.STABILIZING),
            (14, LearningState.STABILIZING),
            (15, LearningState.EXPLOITATION),
        ],
    )
    def test_age_buckets(self, age, expected):
        assert classify_learning_state(age, 3) == expected

    def test_config_driven(self):
        config = LearningConfig(unstable_days=1, exploration_days=2)
        assert classify_learning_state(3, 1, config) == LearningState.STABILIZING


class TestIntent:
    def test_normalize_clamps(self):
        assert normalize(-1, 0, 1) == 0.0
        assert normalize(2, 0, 1) == 1.0
        assert normalize(0.25, 0, 1) == 0.25

    def test_degenerate_range_is_neutral(self):
        assert normalize(10, 1, 1) == 0.5
        assert normalize(10, 2, 1) == 0.5

    def test_weights_sum_to_one(self):
        assert total_weight() == pytest.approx(1.0)

    def test_score_monotonic_in_each_signal(self):
        base = {name: 0.5 for name in INTENT_SIGNALS}
        for name in INTENT_SIGNALS:
            previous = -1.0
            for v in (0.0, 0.25, 0.5, 0.75, 1.0):
                score = weighted_score({**base, name: v})
                assert score >= previous
                previous = score

    def test_stage_cut_points(self):
        config = IntentConfig()
        assert stage_for_score(0.65, config) == IntentStage.BOFU
        assert stage_for_score(0.64, config) == IntentStage.MOFU
        assert stage_for_score(0.35, config) == IntentStage.MOFU
        assert stage_for_score(0.34, config) == IntentStage.TOFU

    def test_strong_snapshot_is_bofu(self, default_percentiles):
        snap = build_snapshot(spend=300, impressions=2000, clicks=250, purchases=30)
        result = compute_intent(snap, default_percentiles)
        assert result.stage == IntentStage.BOFU
        assert 0 <= result.score <= 1

    def test_low_volume_penalty_off_by_default(self, default_percentiles):
        full = build_snapshot(spend=300, impressions=2000, clicks=250, purchases=30)
        thin = build_snapshot(spend=300, impressions=1999, clicks=250, purchases=30)
        scored_full = compute_intent(full, default_percentiles).score
        scored_thin = compute_intent(thin, default_percentiles).score
        assert scored_thin == pytest.approx(scored_full, abs=1e-3)

    def test_low_volume_penalty_when_configured(self, default_percentiles):
        config = IntentConfig(volatility_penalty=0.6)
        full = build_snapshot(spend=300, impressions=2000, clicks=250, purchases=30)
        thin = build_snapshot(spend=300, impressions=1999, clicks=250, purchases=30)
        scored_full = compute_intent(full, default_percentiles, config).score
        scored_thin = compute_intent(thin, default_percentiles, config).score
        assert scored_thin == pytest.approx(scored_full * 0.6, abs=1e-3)

    def test_no_purchases_gives_zero_inverse_cpa(self, default_percentiles):
        snap = build_snapshot(purchases=0, clicks=0, impressions=5000)
        assert compute_intent(snap, default_percentiles).stage == IntentStage.TOFU


class TestFatigue:
    def test_real_fatigue_needs_all_three_signals(self):
        rolling = build_rolling(
            frequency_7d=4.5,
            cpa_7d=60.0,
            cpa_14d=40.0,
            hook_rate_delta=-0.3,
            spend_top1_ad_pct=0.7,
        )
        config = FatigueConfig(frequency_threshold=1)
        assert classify_fatigue(rolling, config=config) == FatigueState.REAL

    def test_two_signals_are_not_enough(self):
        rolling = build_rolling(
            frequency_7d=4.5,
            cpa_7d=60.0,
            cpa_14d=40.0,
            hook_rate_delta=-0.3,
            spend_top1_ad_pct=0.3,
        )
        assert classify_fatigue(rolling, config=FatigueConfig(frequency_threshold=1)) == FatigueState.NONE

    def test_high_frequency_without_degradation_is_healthy(self):
        rolling = build_rolling(frequency_7d=6.0, cpa_7d=40.0, cpa_14d=40.0, hook_rate_delta=0.0)
        assert classify_fatigue(rolling) == FatigueState.HEALTHY_REPETITION

    def test_low_frequency_is_never_entity_fatigue(self):
        rolling = build_rolling(
            frequency_7d=1.0, cpa_7d=90.0, cpa_14d=40.0, hook_rate_delta=-0.5, spend_top1_ad_pct=0.9
        )
        assert classify_fatigue(rolling) == FatigueState.NONE

    def test_concept_decay(self):
        concept = ConceptRollingMetrics(
            client_id="acme", concept_id="k1", avg_cpa_7d=70, avg_cpa_14d=50, hook_rate_delta=-0.25
        )
        assert classify_fatigue(build_rolling(), concept) == FatigueState.CONCEPT_DECAY

    def test_summary_counts(self):
        signals = summarize_fatigue(
            [
                build_classification("a", fatigue_state=FatigueState.REAL),
                build_classification("b", fatigue_state=FatigueState.REAL),
                build_classification("c", fatigue_state=FatigueState.NONE),
            ]
        )
        assert signals == ["2 entities with real fatigue"]


class TestStructure:
    def test_fragmented_at_campaign_level(self):
        state = classify_structure(EntityLevel.CAMPAIGN, 8, 10, 0.2, 500)
        assert state == StructuralState.FRAGMENTED

    def test_fragmentation_ignored_below_campaign(self):
        state = classify_structure(EntityLevel.ADSET, 8, 10, 0.2, 500)
        assert state == StructuralState.HEALTHY

    def test_enough_conversions_is_not_fragmented(self):
        state = classify_structure(EntityLevel.ACCOUNT, 8, 30, 0.2, 500)
        assert state == StructuralState.HEALTHY

    def test_overconcentrated_needs_spend_floor(self):
        assert classify_structure(EntityLevel.AD, 0, 0, 0.9, 500) == StructuralState.OVERCONCENTRATED
        assert classify_structure(EntityLevel.AD, 0, 0, 0.9, 20) == StructuralState.HEALTHY

    def test_fragmented_wins_over_overconcentrated(self):
        state = classify_structure(EntityLevel.ACCOUNT, 8, 10, 0.9, 500)
        assert state == StructuralState.FRAGMENTED

    def test_config_driven(self):
        config = StructureConfig(fragmentation_adsets_max=2)
        assert classify_structure(EntityLevel.CAMPAIGN, 3, 5, 0, 0, config) == StructuralState.FRAGMENTED
