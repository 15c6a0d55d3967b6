"""Usage accounting models"""

import uuid
from datetime import date, datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field


class UsageRecord(BaseModel):
    """Append-only record of one metered call"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    tenant_id: str
    service: str
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    description: str = ""
    cost: float = Field(0.0, ge=0)
    tokens_used: int = Field(0, ge=0)
    images_generated: int = Field(0, ge=0)
    requests_count: int = Field(1, ge=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    usage_date: date = Field(default_factory=date.today)
    created_at: datetime = Field(default_factory=datetime.now)


class UsageSummary(BaseModel):
    """Usage grouped by service"""
    service: str
    total_cost: float = 0.0
    tokens_used: int = 0
    images_generated: int = 0
    requests_count: int = 0


class AgentRun(BaseModel):
    """Input/output of one agent interaction"""
    agent_id: str
    tenant_id: str
    input: str
    output: str
    tokens_used: int = 0
    cost: float = 0.0
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)
