"""ADLENS: Analysis API Routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlmodel import Session

from app.database import get_session
from app.models.analysis_models import (
    Alert,
    ClassificationRunSummary,
    CreativeCategoryResult,
    DiagnosticFinding,
    EntityClassification,
    WinningPatterns,
)
from app.analyzer.pipeline import (
    evaluate_client_alerts,
    get_client,
    load_classifications,
    load_findings,
    run_classification,
    run_creative_analysis,
    run_findings,
)
from app.exceptions import ClientNotFoundError, InsufficientDataError
from app.core.logging import get_logger

logger = get_logger("api.analysis")

router = APIRouter(prefix="/clients/{client_id}", tags=["Analysis"])


# ── Request / Response Models ──


class ClassifyRequest(BaseModel):
    """Request body for POST /clients/{client_id}/classify."""

    date: Optional[str] = None
    """Snapshot date in YYYY-MM-DD format. Defaults to the latest synced date."""

    model_config = {"json_schema_extra": {"examples": [{"date": "2026-02-18"}]}}


class ClassificationsResponse(BaseModel):
    status: str = "success"
    count: int
    classifications: List[EntityClassification]


class FindingsResponse(BaseModel):
    status: str = "success"
    count: int
    findings: List[DiagnosticFinding]


class CreativeAnalysisResponse(BaseModel):
    status: str = "success"
    categories: List[CreativeCategoryResult]
    winning_patterns: WinningPatterns


class AlertsResponse(BaseModel):
    status: str = "success"
    count: int
    alerts: List[Alert]


def _not_found(e: ClientNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(e))


# ── Endpoints ──


@router.post("/classify", response_model=ClassificationRunSummary)
async def classify_entities(
    client_id: str,
    request: Optional[ClassifyRequest] = None,
    session: Session = Depends(get_session),
):
    """Run the classification engine over one day of snapshots."""
    try:
        return run_classification(session, client_id, request.date if request else None)
    except ClientNotFoundError as e:
        raise _not_found(e)
    except InsufficientDataError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error(f"Classification failed: {e}", extra={"client_id": client_id})
        raise HTTPException(status_code=500, detail=f"Classification failed: {str(e)}")


@router.get("/classifications", response_model=ClassificationsResponse)
async def get_classifications(
    client_id: str,
    level: Optional[str] = Query(None, description="account | campaign | adset | ad"),
    decision: Optional[str] = Query(None, description="Filter by final decision"),
    session: Session = Depends(get_session),
):
    """Latest classification per entity, highest impact first."""
    try:
        get_client(session, client_id)
    except ClientNotFoundError as e:
        raise _not_found(e)

    results = load_classifications(session, client_id, level)
    if decision:
        results = [c for c in results if c.final_decision.value == decision.upper()]
    return ClassificationsResponse(count=len(results), classifications=results)


@router.post("/findings", response_model=FindingsResponse)
async def trigger_findings(client_id: str, session: Session = Depends(get_session)):
    """Run the findings engine over the stored daily insights."""
    try:
        findings = run_findings(session, client_id)
        return FindingsResponse(count=len(findings), findings=findings)
    except ClientNotFoundError as e:
        raise _not_found(e)
    except InsufficientDataError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error(f"Findings failed: {e}", extra={"client_id": client_id})
        raise HTTPException(status_code=500, detail=f"Findings failed: {str(e)}")


@router.get("/findings", response_model=FindingsResponse)
async def get_findings(
    client_id: str,
    limit: int = Query(50, ge=1, le=500),
    session: Session = Depends(get_session),
):
    """Most recent findings, newest first."""
    try:
        get_client(session, client_id)
    except ClientNotFoundError as e:
        raise _not_found(e)

    findings = load_findings(session, client_id, limit)
    return FindingsResponse(count=len(findings), findings=findings)


@router.post("/creatives/classify", response_model=CreativeAnalysisResponse)
async def classify_creatives(client_id: str, session: Session = Depends(get_session)):
    """Strategic category per ad plus the winners' profile."""
    try:
        categories, patterns = run_creative_analysis(session, client_id)
        return CreativeAnalysisResponse(categories=categories, winning_patterns=patterns)
    except ClientNotFoundError as e:
        raise _not_found(e)
    except InsufficientDataError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error(f"Creative analysis failed: {e}", extra={"client_id": client_id})
        raise HTTPException(
            status_code=500, detail=f"Creative analysis failed: {str(e)}"
        )


@router.get("/alerts", response_model=AlertsResponse)
async def get_alerts(client_id: str, session: Session = Depends(get_session)):
    """Evaluate alerts from the current rolling metrics and classifications."""
    try:
        alerts = evaluate_client_alerts(session, client_id)
        return AlertsResponse(count=len(alerts), alerts=alerts)
    except ClientNotFoundError as e:
        raise _not_found(e)
    except Exception as e:
        logger.error(f"Alert evaluation failed: {e}", extra={"client_id": client_id})
        raise HTTPException(status_code=500, detail=f"Alert evaluation failed: {str(e)}")
