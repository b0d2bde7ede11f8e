"""ADLENS: Synced Input Documents.

Written by the sync collaborator through the ingest API and read back by
the classification and findings runs. Each document is keyed by its
natural identity and overwritten on re-sync; the payload column holds the
validated model as JSON.
"""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint


class SnapshotRecord(SQLModel, table=True):
    """One DailyEntitySnapshot per (client, date, level, entity)."""

    __tablename__ = "daily_entity_snapshots"
    __table_args__ = (
        UniqueConstraint(
            "client_id", "date", "level", "entity_id", name="uq_daily_snapshot"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: str = Field(index=True)
    date: str = Field(index=True, description="YYYY-MM-DD")
    level: str = Field(index=True, description="account | campaign | adset | ad")
    entity_id: str = Field(index=True)
    synced_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    payload_json: str = Field(description="DailyEntitySnapshot as JSON")


class RollingMetricsRecord(SQLModel, table=True):
    """One EntityRollingMetrics per (client, level, entity)."""

    __tablename__ = "entity_rolling_metrics"
    __table_args__ = (
        UniqueConstraint("client_id", "level", "entity_id", name="uq_rolling_metrics"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: str = Field(index=True)
    level: str = Field(index=True)
    entity_id: str = Field(index=True)
    synced_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    payload_json: str = Field(description="EntityRollingMetrics as JSON")


class ConceptMetricsRecord(SQLModel, table=True):
    """One ConceptRollingMetrics per (client, concept)."""

    __tablename__ = "concept_rolling_metrics"
    __table_args__ = (
        UniqueConstraint("client_id", "concept_id", name="uq_concept_metrics"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: str = Field(index=True)
    concept_id: str = Field(index=True)
    synced_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    payload_json: str = Field(description="ConceptRollingMetrics as JSON")


class InsightRecord(SQLModel, table=True):
    """One DailyInsight per (client, date, campaign)."""

    __tablename__ = "insights_daily"
    __table_args__ = (
        UniqueConstraint("client_id", "date", "campaign_id", name="uq_insight_daily"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: str = Field(index=True)
    date: str = Field(index=True)
    campaign_id: str = Field(index=True)
    synced_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    payload_json: str = Field(description="DailyInsight as JSON")
