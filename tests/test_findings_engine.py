"""Tests for the findings engine: period split, aggregation and the eight rules."""

import pytest

from conftest import FIXED_NOW, build_insight
from app.analyzer.findings_engine import (
    CampaignStats,
    PeriodStats,
    aggregate_campaigns,
    aggregate_period,
    daily_cpas,
    diagnose,
    run_diagnostic_rules,
    split_periods,
)
from app.models.analysis_models import FindingStatus, FindingType, Severity
from app.models.engine_config import FindingsConfig


def _types(findings):
    return {f.type for f in findings}


class TestPeriods:
    def test_split_at_midpoint(self):
        rows = [build_insight(d) for d in ["2026-02-03", "2026-02-01", "2026-02-04", "2026-02-02"]]
        previous, current, dates = split_periods(rows)
        assert dates == ["2026-02-03", "2026-02-04"]
        assert {r.date for r in previous} == {"2026-02-01", "2026-02-02"}
        assert len(current) == 2

    def test_odd_day_goes_to_current(self):
        rows = [build_insight(f"2026-02-0{d}") for d in range(1, 6)]
        previous, current, dates = split_periods(rows)
        assert len(previous) == 2
        assert dates == ["2026-02-03", "2026-02-04", "2026-02-05"]

    def test_aggregate_ratios(self):
        stats = aggregate_period(
            [
                build_insight("2026-02-01", spend=100, impressions=10000, clicks=200, purchases=4, purchase_value=400),
                build_insight("2026-02-02", spend=100, impressions=10000, clicks=200, purchases=4, purchase_value=400),
            ]
        )
        assert stats.spend == 200
        assert stats.ctr == pytest.approx(0.02)
        assert stats.cpc == pytest.approx(0.5)
        assert stats.cpa == pytest.approx(25)
        assert stats.roas == pytest.approx(4)
        assert stats.cvr == pytest.approx(0.02)

    def test_empty_period_is_all_zero(self):
        stats = aggregate_period([])
        assert stats.cpa == 0 and stats.roas == 0 and stats.ctr == 0

    def test_campaigns_sorted_by_spend(self):
        rows = [
            build_insight("2026-02-01", "a", spend=10),
            build_insight("2026-02-01", "b", spend=50),
            build_insight("2026-02-02", "a", spend=15),
        ]
        campaigns = aggregate_campaigns(rows)
        assert [c.id for c in campaigns] == ["b", "a"]
        assert campaigns[1].spend == 25

    def test_daily_cpas_skip_days_without_purchases(self):
        rows = [
            build_insight("2026-02-01", spend=100, purchases=2),
            build_insight("2026-02-02", spend=100, purchases=0),
        ]
        assert daily_cpas(rows) == [50.0]


class TestCpaSpike:
    def test_thirty_percent_rise_fires(self):
        findings = run_diagnostic_rules(
            "acme", PeriodStats(cpa=130), PeriodStats(cpa=100), [], [], now=FIXED_NOW
        )
        spike = [f for f in findings if f.type == FindingType.CPA_SPIKE]
        assert len(spike) == 1
        assert spike[0].severity == Severity.CRITICAL
        assert spike[0].evidence.delta == pytest.approx(30)
        assert spike[0].evidence.threshold == pytest.approx(25)
        assert spike[0].evidence.current == 130
        assert spike[0].evidence.previous == 100
        assert spike[0].created_at == FIXED_NOW.isoformat()

    def test_ten_percent_rise_does_not_fire(self):
        findings = run_diagnostic_rules(
            "acme", PeriodStats(cpa=110), PeriodStats(cpa=100), [], []
        )
        assert FindingType.CPA_SPIKE not in _types(findings)

    def test_threshold_is_configurable(self):
        findings = run_diagnostic_rules(
            "acme",
            PeriodStats(cpa=110),
            PeriodStats(cpa=100),
            [],
            [],
            FindingsConfig(cpa_spike_threshold=0.05),
        )
        assert FindingType.CPA_SPIKE in _types(findings)


class TestPeriodRules:
    def test_roas_drop(self):
        findings = run_diagnostic_rules("acme", PeriodStats(roas=2.0), PeriodStats(roas=3.0), [], [])
        drop = [f for f in findings if f.type == FindingType.ROAS_DROP][0]
        assert drop.severity == Severity.CRITICAL
        assert drop.evidence.delta == pytest.approx(-33.333, rel=1e-3)

    def test_cvr_drop_needs_stable_ctr(self):
        stable = run_diagnostic_rules(
            "acme", PeriodStats(ctr=0.0201, cvr=0.01), PeriodStats(ctr=0.02, cvr=0.02), [], []
        )
        assert FindingType.CVR_DROP in _types(stable)
        moving = run_diagnostic_rules(
            "acme", PeriodStats(ctr=0.015, cvr=0.01), PeriodStats(ctr=0.02, cvr=0.02), [], []
        )
        assert FindingType.CVR_DROP not in _types(moving)
        assert FindingType.CTR_DROP in _types(moving)

    def test_no_previous_data_fires_nothing(self):
        findings = run_diagnostic_rules("acme", PeriodStats(cpa=100, roas=2), PeriodStats(), [], [])
        assert findings == []


class TestCampaignRules:
    def test_spend_concentration(self):
        campaigns = [CampaignStats(id="big", name="Big", spend=900)] + [
            CampaignStats(id=f"s{i}", name=f"Small {i}", spend=25) for i in range(4)
        ]
        findings = run_diagnostic_rules(
            "acme", PeriodStats(spend=1000), PeriodStats(), campaigns, []
        )
        concentration = [f for f in findings if f.type == FindingType.SPEND_CONCENTRATION][0]
        assert concentration.entities == ["Big"]
        assert concentration.severity == Severity.WARNING

    def test_concentration_needs_more_than_three_campaigns(self):
        campaigns = [
            CampaignStats(id="big", spend=900),
            CampaignStats(id="a", spend=50),
            CampaignStats(id="b", spend=50),
        ]
        findings = run_diagnostic_rules("acme", PeriodStats(spend=1000), PeriodStats(), campaigns, [])
        assert FindingType.SPEND_CONCENTRATION not in _types(findings)

    def test_budget_bleed(self):
        campaigns = [
            CampaignStats(id="ok", name="OK", spend=500, purchases=10),
            CampaignStats(id="bleed", name="Bleeder", spend=150, purchases=0),
        ]
        findings = run_diagnostic_rules(
            "acme", PeriodStats(spend=650, purchases=8, cpa=80), PeriodStats(), campaigns, []
        )
        assert FindingType.NO_CONVERSIONS_HIGH_SPEND not in _types(findings)

        findings = run_diagnostic_rules(
            "acme", PeriodStats(spend=650, purchases=13, cpa=50), PeriodStats(), campaigns, []
        )
        bleed = [f for f in findings if f.type == FindingType.NO_CONVERSIONS_HIGH_SPEND][0]
        assert bleed.entities == ["Bleeder"]
        assert bleed.evidence.threshold == pytest.approx(100)

    def test_budget_bleed_uses_fallback_cpa(self):
        campaigns = [CampaignStats(id="x", name="X", spend=120)]
        findings = run_diagnostic_rules("acme", PeriodStats(spend=120), PeriodStats(), campaigns, [])
        assert FindingType.NO_CONVERSIONS_HIGH_SPEND in _types(findings)

    def test_underfunded_winners(self):
        campaigns = [
            CampaignStats(id="a", name="Main", spend=800, purchases=10),
            CampaignStats(id="b", name="Gem", spend=100, purchases=5),
        ]
        findings = run_diagnostic_rules(
            "acme", PeriodStats(spend=900, purchases=15, cpa=60), PeriodStats(), campaigns, []
        )
        winners = [f for f in findings if f.type == FindingType.UNDERFUNDED_WINNERS][0]
        assert winners.entities == ["Gem"]
        assert winners.severity == Severity.HEALTHY
        assert winners.status == FindingStatus.OPTIMAL


class TestVolatility:
    def test_high_cv_fires(self):
        findings = run_diagnostic_rules("acme", PeriodStats(), PeriodStats(), [], [10, 50, 10, 50])
        volatility = [f for f in findings if f.type == FindingType.VOLATILITY][0]
        assert volatility.evidence.current == pytest.approx(66.667, rel=1e-3)

    def test_needs_more_than_three_points(self):
        findings = run_diagnostic_rules("acme", PeriodStats(), PeriodStats(), [], [10, 50, 10])
        assert FindingType.VOLATILITY not in _types(findings)

    def test_stable_series(self):
        findings = run_diagnostic_rules("acme", PeriodStats(), PeriodStats(), [], [40, 42, 41, 39])
        assert FindingType.VOLATILITY not in _types(findings)


class TestDiagnose:
    def test_end_to_end_cpa_spike(self):
        rows = [
            build_insight("2026-02-01", spend=100, impressions=10000, clicks=200, purchases=1, purchase_value=300),
            build_insight("2026-02-02", spend=100, impressions=10000, clicks=200, purchases=1, purchase_value=300),
            build_insight("2026-02-03", spend=130, impressions=10000, clicks=200, purchases=1, purchase_value=390),
            build_insight("2026-02-04", spend=130, impressions=10000, clicks=200, purchases=1, purchase_value=390),
        ]
        findings, current, previous = diagnose("acme", rows, now=FIXED_NOW)
        assert previous.cpa == pytest.approx(100)
        assert current.cpa == pytest.approx(130)
        assert _types(findings) == {FindingType.CPA_SPIKE}
        assert all(f.client_id == "acme" for f in findings)
