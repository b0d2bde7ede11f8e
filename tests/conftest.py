"""Shared fixtures for the ADLENS test suite.

- Factories for snapshots, rolling metrics and classifications with
  sensible healthy defaults; tests override only what they exercise.
- An in-memory SQLite database (StaticPool, one connection shared across
  threads) with every table created.
- A FastAPI TestClient whose ``get_session`` dependency points at it.
"""

from datetime import datetime, timezone
from typing import Any, Dict

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from app.core.config_store import config_cache
from app.core.metric_registry import INTENT_SIGNALS
from app.database import get_session, init_db
from app.models.analysis_models import (
    ClientPercentiles,
    EntityClassification,
    FatigueState,
    FinalDecision,
    IntentStage,
    LearningState,
    PercentileAnchor,
    StructuralState,
)
from app.models.client_models import ClientRecord
from app.models.snapshot_models import (
    DailyEntitySnapshot,
    DailyInsight,
    EntityLevel,
    EntityRollingMetrics,
    MetaInfo,
    PerformanceMetrics,
    StabilityMetrics,
)

CLIENT_ID = "acme"
FIXED_NOW = datetime(2026, 2, 18, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _clear_config_cache():
    config_cache.clear()
    yield
    config_cache.clear()


# ============================================================
# FACTORIES
# ============================================================


def build_snapshot(
    entity_id: str = "ad_1",
    level: EntityLevel = EntityLevel.AD,
    date: str = "2026-02-18",
    days_active: int = 30,
    days_since_last_edit: int = 10,
    budget_change_3d_pct: float | None = None,
    concept_id: str | None = None,
    format_type: str | None = None,
    name: str = "",
    **performance: Any,
) -> DailyEntitySnapshot:
    perf: Dict[str, Any] = {
        "spend": 100.0,
        "impressions": 5000,
        "clicks": 100,
        "purchases": 2.0,
        "revenue": 200.0,
    }
    perf.update(performance)
    return DailyEntitySnapshot(
        client_id=CLIENT_ID,
        date=date,
        level=level,
        entity_id=entity_id,
        name=name or entity_id,
        meta=MetaInfo(concept_id=concept_id, format_type=format_type),
        performance=PerformanceMetrics(**perf),
        stability=StabilityMetrics(
            days_active=days_active,
            days_since_last_edit=days_since_last_edit,
            budget_change_3d_pct=budget_change_3d_pct,
        ),
    )


def build_rolling(
    entity_id: str = "ad_1",
    level: EntityLevel = EntityLevel.AD,
    **fields: Any,
) -> EntityRollingMetrics:
    values: Dict[str, Any] = {
        "client_id": CLIENT_ID,
        "entity_id": entity_id,
        "level": level,
        "name": entity_id,
        "spend_7d": 200.0,
        "spend_14d": 400.0,
        "impressions_7d": 20000,
        "clicks_7d": 400,
        "purchases_7d": 4.0,
        "cpa_7d": 50.0,
        "cpa_14d": 50.0,
        "roas_7d": 1.0,
        "conversion_velocity_7d": 0.6,
        "conversion_velocity_14d": 0.6,
        "frequency_7d": 1.5,
        "ctr_7d": 2.0,
    }
    values.update(fields)
    return EntityRollingMetrics(**values)


def build_classification(
    entity_id: str = "ad_1",
    level: str = "ad",
    intent_stage: IntentStage = IntentStage.BOFU,
    final_decision: FinalDecision = FinalDecision.HOLD,
    fatigue_state: FatigueState = FatigueState.NONE,
    structural_state: StructuralState = StructuralState.HEALTHY,
    impact_score: float = 50.0,
) -> EntityClassification:
    return EntityClassification(
        client_id=CLIENT_ID,
        level=level,
        entity_id=entity_id,
        learning_state=LearningState.EXPLOITATION,
        intent_score=0.7,
        intent_stage=intent_stage,
        fatigue_state=fatigue_state,
        structural_state=structural_state,
        final_decision=final_decision,
        confidence_score=0.9,
        impact_score=impact_score,
        evidence=["evidence"],
    )


def build_insight(
    date: str, campaign_id: str = "c1", **fields: Any
) -> DailyInsight:
    return DailyInsight(
        client_id=CLIENT_ID,
        date=date,
        campaign_id=campaign_id,
        campaign_name=fields.pop("campaign_name", f"Campaign {campaign_id}"),
        **fields,
    )


@pytest.fixture
def default_percentiles() -> ClientPercentiles:
    return ClientPercentiles(
        **{
            name: PercentileAnchor(p10=s.default_p10, p90=s.default_p90)
            for name, s in INTENT_SIGNALS.items()
        }
    )


# ============================================================
# DATABASE / API
# ============================================================


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(db_engine):
    with Session(db_engine) as session:
        yield session


@pytest.fixture
def client_record(session) -> ClientRecord:
    record = ClientRecord(id=CLIENT_ID, name="Acme", target_cpa=50.0, target_roas=2.0)
    session.add(record)
    session.commit()
    session.refresh(record)
    return record


@pytest.fixture
def api(db_engine):
    from fastapi.testclient import TestClient

    from app.main import app

    def _session_override():
        with Session(db_engine) as session:
            yield session

    app.dependency_overrides[get_session] = _session_override
    # No context manager: lifespan (file DB, scheduler) stays off
    yield TestClient(app)
    app.dependency_overrides.clear()
