"""ADLENS: Client Records and Targets."""

from typing import Optional
from pydantic import BaseModel
from sqlmodel import SQLModel, Field


class ClientRecord(SQLModel, table=True):
    """Advertiser account with its business goals."""

    __tablename__ = "clients"

    id: str = Field(primary_key=True)
    name: str = Field(default="")
    active: bool = Field(default=True, index=True)
    target_cpa: Optional[float] = Field(default=None)
    target_roas: Optional[float] = Field(default=None)
    primary_goal: str = Field(default="", description="purchases | leads | ...")
    business_model: str = Field(
        default="ecommerce", description="ecommerce | leads | whatsapp | apps"
    )
    growth_mode: str = Field(default="", description="e.g. scale | efficiency")
    funnel_priority: str = Field(default="")
    ltv: Optional[float] = Field(default=None)


class ClientTargets(BaseModel):
    """Targets the decision matrix compares CPA/ROAS against."""

    target_cpa: Optional[float] = None
    target_roas: Optional[float] = None

    @classmethod
    def from_client(cls, client: Optional[ClientRecord]) -> "ClientTargets":
        if client is None:
            return cls()
        return cls(target_cpa=client.target_cpa, target_roas=client.target_roas)
