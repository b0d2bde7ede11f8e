"""ADLENS: Client & Engine Config API Routes."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from app.database import get_session
from app.models.client_models import ClientRecord
from app.models.engine_config import EngineConfig
from app.analyzer.pipeline import get_client
from app.core.config_store import get_engine_config, save_engine_config
from app.exceptions import ClientNotFoundError, EngineConfigError
from app.core.logging import get_logger

logger = get_logger("api.clients")

router = APIRouter(prefix="/clients", tags=["Clients"])


class ClientPayload(BaseModel):
    """Request body for PUT /clients/{client_id}."""

    name: str = ""
    active: bool = True
    target_cpa: Optional[float] = None
    target_roas: Optional[float] = None
    primary_goal: str = ""
    business_model: str = "ecommerce"
    growth_mode: str = ""
    funnel_priority: str = ""
    ltv: Optional[float] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"name": "Acme Store", "target_cpa": 25.0, "target_roas": 3.0},
            ]
        }
    }


@router.put("/{client_id}", response_model=ClientRecord)
async def upsert_client(
    client_id: str,
    payload: ClientPayload,
    session: Session = Depends(get_session),
):
    """Create or replace a client record."""
    client = session.get(ClientRecord, client_id) or ClientRecord(id=client_id)
    for field, value in payload.model_dump().items():
        setattr(client, field, value)
    session.add(client)
    session.commit()
    session.refresh(client)
    logger.info(f"Client {client_id} saved", extra={"client_id": client_id})
    return client


@router.get("/{client_id}", response_model=ClientRecord)
async def read_client(client_id: str, session: Session = Depends(get_session)):
    try:
        return get_client(session, client_id)
    except ClientNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{client_id}/engine-config", response_model=EngineConfig)
async def read_engine_config(client_id: str, session: Session = Depends(get_session)):
    """Defaults merged with the client's stored overrides."""
    try:
        get_client(session, client_id)
    except ClientNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return get_engine_config(session, client_id)


@router.put("/{client_id}/engine-config", response_model=EngineConfig)
async def update_engine_config(
    client_id: str,
    overrides: Dict[str, Any],
    session: Session = Depends(get_session),
):
    """Store a partial override, e.g. ``{"fatigue": {"frequency_threshold": 3}}``."""
    try:
        get_client(session, client_id)
        return save_engine_config(session, client_id, overrides)
    except ClientNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except EngineConfigError as e:
        raise HTTPException(status_code=422, detail=e.errors)
