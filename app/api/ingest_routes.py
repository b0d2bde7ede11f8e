"""ADLENS: Ingest API Routes.

Bulk upserts for the documents the sync collaborator produces. Re-sending
a document with the same identity overwrites it.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from app.database import get_session
from app.models.snapshot_models import (
    ConceptRollingMetrics,
    DailyEntitySnapshot,
    DailyInsight,
    EntityRollingMetrics,
)
from app.analyzer.pipeline import (
    get_client,
    upsert_concept_metrics,
    upsert_insights,
    upsert_rolling_metrics,
    upsert_snapshots,
)
from app.exceptions import ClientNotFoundError
from app.core.logging import get_logger

logger = get_logger("api.ingest")

router = APIRouter(prefix="/clients/{client_id}", tags=["Ingest"])


class IngestResponse(BaseModel):
    status: str = "success"
    stored: int


def _require_client(session: Session, client_id: str) -> None:
    try:
        get_client(session, client_id)
    except ClientNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.put("/snapshots", response_model=IngestResponse)
async def put_snapshots(
    client_id: str,
    snapshots: List[DailyEntitySnapshot],
    session: Session = Depends(get_session),
):
    _require_client(session, client_id)
    return IngestResponse(stored=upsert_snapshots(session, client_id, snapshots))


@router.put("/rolling-metrics", response_model=IngestResponse)
async def put_rolling_metrics(
    client_id: str,
    rolling: List[EntityRollingMetrics],
    session: Session = Depends(get_session),
):
    _require_client(session, client_id)
    return IngestResponse(stored=upsert_rolling_metrics(session, client_id, rolling))


@router.put("/concept-metrics", response_model=IngestResponse)
async def put_concept_metrics(
    client_id: str,
    concepts: List[ConceptRollingMetrics],
    session: Session = Depends(get_session),
):
    _require_client(session, client_id)
    return IngestResponse(stored=upsert_concept_metrics(session, client_id, concepts))


@router.put("/insights", response_model=IngestResponse)
async def put_insights(
    client_id: str,
    rows: List[DailyInsight],
    session: Session = Depends(get_session),
):
    _require_client(session, client_id)
    return IngestResponse(stored=upsert_insights(session, client_id, rows))
