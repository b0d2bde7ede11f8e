"""ADLENS: Analysis Pipeline Orchestrator.

Runs the data flows around the pure engines:
  load synced documents → compute percentiles → classify each entity → upsert
  load daily insights → split periods → findings rules → append
  load ad classifications → creative categories + winning patterns → upsert
  load rolling + classifications → alerts (on demand, not stored)

The engines never touch the database; everything here does.
"""

import json
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Type

from sqlmodel import Session, SQLModel, select

from app.config import settings
from app.analyzer.alert_engine import evaluate_alerts
from app.analyzer.creative_engine import classify_creatives, extract_winning_patterns
from app.analyzer.decision_engine import classify_entity
from app.analyzer.fatigue_engine import summarize_fatigue
from app.analyzer.findings_engine import diagnose
from app.analyzer.percentile_engine import compute_client_percentiles
from app.core.config_store import get_engine_config
from app.core.logging import get_logger
from app.exceptions import ClientNotFoundError, InsufficientDataError
from app.models.analysis_models import (
    Alert,
    ClassificationRecord,
    ClassificationRunSummary,
    CreativeCategoryRecord,
    CreativeCategoryResult,
    DiagnosticFinding,
    EntityClassification,
    FindingRecord,
    WinningPatterns,
)
from app.models.client_models import ClientRecord, ClientTargets
from app.models.engine_config import EngineConfig, FindingsConfig
from app.models.raw_models import (
    ConceptMetricsRecord,
    InsightRecord,
    RollingMetricsRecord,
    SnapshotRecord,
)
from app.models.snapshot_models import (
    ConceptRollingMetrics,
    DailyEntitySnapshot,
    DailyInsight,
    EntityLevel,
    EntityRollingMetrics,
)

logger = get_logger("analyzer.pipeline")

ANALYSIS_SCHEMA_VERSION = settings.analysis_schema_version


def _now() -> datetime:
    return datetime.now(timezone.utc)


def get_client(session: Session, client_id: str) -> ClientRecord:
    client = session.get(ClientRecord, client_id)
    if client is None:
        raise ClientNotFoundError(client_id)
    return client


# ─────────────────────────────────────────────
# INGEST: overwrite-on-resync upserts
# ─────────────────────────────────────────────


def _upsert(
    session: Session, model: Type[SQLModel], keys: Dict[str, str], payload: str
) -> None:
    query = select(model)
    for column, value in keys.items():
        query = query.where(getattr(model, column) == value)
    record = session.exec(query).first()
    if record is None:
        record = model(**keys, payload_json=payload)
    else:
        record.payload_json = payload
        record.synced_at = _now()
    session.add(record)


def upsert_snapshots(
    session: Session, client_id: str, snapshots: Sequence[DailyEntitySnapshot]
) -> int:
    for s in snapshots:
        _upsert(
            session,
            SnapshotRecord,
            {
                "client_id": client_id,
                "date": s.date,
                "level": s.level.value,
                "entity_id": s.entity_id,
            },
            s.model_copy(update={"client_id": client_id}).model_dump_json(),
        )
    session.commit()
    logger.info(f"Stored {len(snapshots)} snapshots", extra={"client_id": client_id})
    return len(snapshots)


def upsert_rolling_metrics(
    session: Session, client_id: str, rolling: Sequence[EntityRollingMetrics]
) -> int:
    for r in rolling:
        _upsert(
            session,
            RollingMetricsRecord,
            {"client_id": client_id, "level": r.level.value, "entity_id": r.entity_id},
            r.model_copy(update={"client_id": client_id}).model_dump_json(),
        )
    session.commit()
    logger.info(
        f"Stored {len(rolling)} rolling metric records", extra={"client_id": client_id}
    )
    return len(rolling)


def upsert_concept_metrics(
    session: Session, client_id: str, concepts: Sequence[ConceptRollingMetrics]
) -> int:
    for c in concepts:
        _upsert(
            session,
            ConceptMetricsRecord,
            {"client_id": client_id, "concept_id": c.concept_id},
            c.model_copy(update={"client_id": client_id}).model_dump_json(),
        )
    session.commit()
    logger.info(
        f"Stored {len(concepts)} concept metric records", extra={"client_id": client_id}
    )
    return len(concepts)


def upsert_insights(
    session: Session, client_id: str, rows: Sequence[DailyInsight]
) -> int:
    for row in rows:
        _upsert(
            session,
            InsightRecord,
            {"client_id": client_id, "date": row.date, "campaign_id": row.campaign_id},
            row.model_copy(update={"client_id": client_id}).model_dump_json(),
        )
    session.commit()
    logger.info(f"Stored {len(rows)} insight rows", extra={"client_id": client_id})
    return len(rows)


# ─────────────────────────────────────────────
# LOADERS
# ─────────────────────────────────────────────


def latest_snapshot_date(session: Session, client_id: str) -> Optional[str]:
    record = session.exec(
        select(SnapshotRecord)
        .where(SnapshotRecord.client_id == client_id)
        .order_by(SnapshotRecord.date.desc())  # type: ignore
        .limit(1)
    ).first()
    return record.date if record else None


def load_snapshots(
    session: Session, client_id: str, date: str
) -> List[DailyEntitySnapshot]:
    records = session.exec(
        select(SnapshotRecord).where(
            SnapshotRecord.client_id == client_id, SnapshotRecord.date == date
        )
    ).all()
    return [DailyEntitySnapshot.model_validate_json(r.payload_json) for r in records]


def load_rolling_metrics(session: Session, client_id: str) -> List[EntityRollingMetrics]:
    records = session.exec(
        select(RollingMetricsRecord).where(RollingMetricsRecord.client_id == client_id)
    ).all()
    return [EntityRollingMetrics.model_validate_json(r.payload_json) for r in records]


def load_concept_metrics(
    session: Session, client_id: str
) -> List[ConceptRollingMetrics]:
    records = session.exec(
        select(ConceptMetricsRecord).where(ConceptMetricsRecord.client_id == client_id)
    ).all()
    return [ConceptRollingMetrics.model_validate_json(r.payload_json) for r in records]


def load_insights(session: Session, client_id: str) -> List[DailyInsight]:
    records = session.exec(
        select(InsightRecord).where(InsightRecord.client_id == client_id)
    ).all()
    return [DailyInsight.model_validate_json(r.payload_json) for r in records]


def load_classifications(
    session: Session, client_id: str, level: Optional[str] = None
) -> List[EntityClassification]:
    query = select(ClassificationRecord).where(
        ClassificationRecord.client_id == client_id
    )
    if level:
        query = query.where(ClassificationRecord.level == level)
    records = session.exec(
        query.order_by(ClassificationRecord.impact_score.desc())  # type: ignore
    ).all()
    return [EntityClassification.model_validate_json(r.result_json) for r in records]


# ─────────────────────────────────────────────
# CLASSIFICATION
# ─────────────────────────────────────────────


def classify_batch(
    client_id: str,
    snapshots: Iterable[DailyEntitySnapshot],
    rolling: List[EntityRollingMetrics],
    concepts: Iterable[ConceptRollingMetrics] = (),
    config: EngineConfig | None = None,
    targets: Optional[ClientTargets] = None,
    now: Optional[datetime] = None,
) -> Tuple[List[EntityClassification], Dict[str, int]]:
    """Classify every spending snapshot of one day.

    Percentile anchors and the account-wide fragmentation inputs are
    computed once up front. Snapshots without a
    rolling counterpart are skipped; a failure on one entity is logged and
    does not stop the others. Returns (classifications, counts) where counts
    has ``classified``, ``skipped`` and ``failed``.
    """
    config = config or EngineConfig(client_id=client_id)
    now = now or _now()

    rolling_by_key = {(r.level, r.entity_id): r for r in rolling}
    concepts_by_id = {c.concept_id: c for c in concepts}
    percentiles = compute_client_percentiles(rolling, config.intent.population_anchors)

    active_adsets = sum(
        1 for r in rolling if r.level == EntityLevel.ADSET and r.spend_7d > 0
    )
    account = next((r for r in rolling if r.level == EntityLevel.ACCOUNT), None)
    # Fragmentation compares account-wide ad sets with account-wide conversions
    account_conversions = (
        account.conversions_7d
        if account
        else sum(r.conversions_7d for r in rolling if r.level == EntityLevel.CAMPAIGN)
    )

    results: List[EntityClassification] = []
    counts = {"classified": 0, "skipped": 0, "failed": 0}

    for snap in snapshots:
        if snap.performance.spend <= 0:
            continue
        entity_rolling = rolling_by_key.get((snap.level, snap.entity_id))
        if entity_rolling is None:
            counts["skipped"] += 1
            logger.warning(
                f"No rolling metrics for {snap.level.value}/{snap.entity_id}, skipping",
                extra={
                    "client_id": client_id,
                    "entity_id": snap.entity_id,
                    "entity_level": snap.level.value,
                },
            )
            continue

        concept = (
            concepts_by_id.get(snap.meta.concept_id) if snap.meta.concept_id else None
        )
        try:
            results.append(
                classify_entity(
                    snap,
                    entity_rolling,
                    percentiles,
                    config=config,
                    concept=concept,
                    targets=targets,
                    active_sub_units=active_adsets,
                    conversions_7d=account_conversions,
                    now=now,
                )
            )
            counts["classified"] += 1
        except Exception as e:
            counts["failed"] += 1
            logger.error(
                f"Classification failed for {snap.level.value}/{snap.entity_id}: {e}",
                extra={
                    "client_id": client_id,
                    "entity_id": snap.entity_id,
                    "entity_level": snap.level.value,
                },
            )

    return results, counts


def store_classifications(
    session: Session, classifications: Sequence[EntityClassification]
) -> None:
    """Upsert by (client, level, entity) in one commit."""
    for c in classifications:
        record = session.exec(
            select(ClassificationRecord).where(
                ClassificationRecord.client_id == c.client_id,
                ClassificationRecord.level == c.level,
                ClassificationRecord.entity_id == c.entity_id,
            )
        ).first()
        if record is None:
            record = ClassificationRecord(
                client_id=c.client_id,
                level=c.level,
                entity_id=c.entity_id,
                result_json="",
            )
        record.final_decision = c.final_decision.value
        record.impact_score = c.impact_score
        record.schema_version = ANALYSIS_SCHEMA_VERSION
        record.updated_at = _now()
        record.result_json = c.model_dump_json()
        session.add(record)
    session.commit()


def run_classification(
    session: Session, client_id: str, date: Optional[str] = None
) -> ClassificationRunSummary:
    """Classify a client's entities for ``date`` (default: latest snapshot date)."""
    started = time.perf_counter()
    client = get_client(session, client_id)

    date = date or latest_snapshot_date(session, client_id)
    if not date:
        raise InsufficientDataError(client_id, "daily snapshots")

    snapshots = load_snapshots(session, client_id, date)
    rolling = load_rolling_metrics(session, client_id)
    if not snapshots:
        raise InsufficientDataError(client_id, f"daily snapshots for {date}")

    config = get_engine_config(session, client_id)
    classifications, counts = classify_batch(
        client_id,
        snapshots,
        rolling,
        load_concept_metrics(session, client_id),
        config=config,
        targets=ClientTargets.from_client(client),
    )
    store_classifications(session, classifications)

    summary = ClassificationRunSummary(
        client_id=client_id,
        date=date,
        decisions=dict(Counter(c.final_decision.value for c in classifications)),
        fatigue_signals=summarize_fatigue(classifications),
        **counts,
    )
    duration_ms = round((time.perf_counter() - started) * 1000, 1)
    logger.info(
        f"Classification for {client_id} on {date}: {summary.classified} classified, "
        f"{summary.skipped} skipped, {summary.failed} failed",
        extra={"client_id": client_id, "duration_ms": duration_ms},
    )
    return summary


# ─────────────────────────────────────────────
# FINDINGS
# ─────────────────────────────────────────────


def findings_thresholds(session: Session, client_id: str) -> FindingsConfig:
    """Fixed defaults unless per-client findings thresholds are enabled."""
    if settings.findings_use_client_config:
        return get_engine_config(session, client_id).findings
    return FindingsConfig()


def run_findings(
    session: Session, client_id: str, now: Optional[datetime] = None
) -> List[DiagnosticFinding]:
    """Run the findings rules over all stored insight rows and append results."""
    get_client(session, client_id)
    rows = load_insights(session, client_id)
    if not rows:
        raise InsufficientDataError(client_id, "daily insights")

    findings, current, previous = diagnose(
        client_id, rows, findings_thresholds(session, client_id), now
    )
    created_at = now or _now()
    for f in findings:
        session.add(
            FindingRecord(
                client_id=client_id,
                type=f.type.value,
                severity=f.severity.value,
                schema_version=ANALYSIS_SCHEMA_VERSION,
                created_at=created_at,
                result_json=f.model_dump_json(),
            )
        )
    session.commit()
    logger.info(
        f"Findings stored for {client_id}: {len(findings)} "
        f"(spend {previous.spend:.2f} → {current.spend:.2f})",
        extra={"client_id": client_id},
    )
    return findings


def load_findings(
    session: Session, client_id: str, limit: int = 50
) -> List[DiagnosticFinding]:
    records = session.exec(
        select(FindingRecord)
        .where(FindingRecord.client_id == client_id)
        .order_by(FindingRecord.created_at.desc(), FindingRecord.id.desc())  # type: ignore
        .limit(limit)
    ).all()
    return [DiagnosticFinding.model_validate_json(r.result_json) for r in records]


# ─────────────────────────────────────────────
# CREATIVES
# ─────────────────────────────────────────────


def run_creative_analysis(
    session: Session, client_id: str
) -> Tuple[List[CreativeCategoryResult], WinningPatterns]:
    """Categorize every ad with rolling metrics and profile the winners."""
    client = get_client(session, client_id)
    rolling = load_rolling_metrics(session, client_id)
    ads = [r for r in rolling if r.level == EntityLevel.AD]
    if not ads:
        raise InsufficientDataError(client_id, "ad rolling metrics")

    account = next((r for r in rolling if r.level == EntityLevel.ACCOUNT), None)
    account_spend = account.spend_7d if account else sum(a.spend_7d for a in ads)

    classifications = load_classifications(session, client_id, EntityLevel.AD.value)
    config = get_engine_config(session, client_id)
    categories = classify_creatives(
        ads, classifications, account_spend, client.target_cpa, config.creative
    )

    date = latest_snapshot_date(session, client_id)
    snapshots = load_snapshots(session, client_id, date) if date else []
    patterns = extract_winning_patterns(
        ads, classifications, categories, account_spend, snapshots
    )

    for result in categories:
        record = session.exec(
            select(CreativeCategoryRecord).where(
                CreativeCategoryRecord.client_id == client_id,
                CreativeCategoryRecord.entity_id == result.entity_id,
            )
        ).first()
        if record is None:
            record = CreativeCategoryRecord(
                client_id=client_id, entity_id=result.entity_id, category=""
            )
        record.category = result.category.value
        record.reasoning = result.reasoning
        record.updated_at = _now()
        session.add(record)
    session.commit()

    logger.info(
        f"Creative analysis for {client_id}: {len(categories)} ads, "
        f"{patterns.total_winners} winners",
        extra={"client_id": client_id},
    )
    return categories, patterns


# ─────────────────────────────────────────────
# ALERTS
# ─────────────────────────────────────────────


def evaluate_client_alerts(session: Session, client_id: str) -> List[Alert]:
    client = get_client(session, client_id)
    date = latest_snapshot_date(session, client_id)
    return evaluate_alerts(
        client_id,
        load_rolling_metrics(session, client_id),
        load_classifications(session, client_id),
        load_snapshots(session, client_id, date) if date else [],
        config=get_engine_config(session, client_id),
        targets=ClientTargets.from_client(client),
        business_model=client.business_model,
    )


def active_client_ids(session: Session) -> List[str]:
    return list(
        session.exec(select(ClientRecord.id).where(ClientRecord.active == True))  # noqa: E712
    )
