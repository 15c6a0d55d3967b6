"""Pydantic models for API requests and responses"""

from typing import Optional, Literal, Dict, Any
from pydantic import BaseModel, ConfigDict, Field

from jarvis_hq.models.webhook import HookEventType


class GenerateRequest(BaseModel):
    """Generation request, camelCase on the wire"""
    model_config = ConfigDict(populate_by_name=True)

    tenant_id: str = Field(..., alias="tenantId", min_length=1)
    agent_id: Optional[str] = Field(None, alias="agentId")
    agent_name: Optional[str] = Field(None, alias="agentName")
    input: str = Field(..., min_length=1)
    provider: Literal["openai", "claude", "gemini", "ollama"] = "ollama"
    model: Optional[str] = None
    system_prompt: Optional[str] = Field(None, alias="systemPrompt")


class UsageInfo(BaseModel):
    tokens_used: int
    cost: float
    provider: str


class BudgetStatus(BaseModel):
    current_spend: float
    budget_limit: float
    percentage_used: float


class GenerateResponse(BaseModel):
    success: bool = True
    content: str
    usage: UsageInfo
    budget_status: BudgetStatus


class CheckoutSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    customer_id: str = Field(..., alias="customerId", min_length=1)
    invoice_id: str = Field(..., alias="invoiceId", min_length=1)
    company_id: str = Field(..., alias="companyId", min_length=1)
    amount: float = Field(..., gt=0)
    description: str = ""
    success_url: str = Field(..., alias="successUrl")
    cancel_url: str = Field(..., alias="cancelUrl")


class CheckoutSessionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId")
    url: Optional[str] = None


class MediaUsageRequest(BaseModel):
    """Metered media call made outside the generation endpoint"""
    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["image", "text_to_speech", "transcription", "video"]
    # images, characters or minutes depending on kind
    quantity: float = Field(..., gt=0)
    resolution: Literal["standard", "high"] = "standard"
    service: Optional[str] = None
    agent_id: Optional[str] = Field(None, alias="agentId")


class EventTriggerRequest(BaseModel):
    event_type: HookEventType
    payload: Dict[str, Any] = Field(default_factory=dict)
