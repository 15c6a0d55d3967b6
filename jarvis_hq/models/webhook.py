"""Outbound webhook models"""

from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field
from enum import Enum


class HookEventType(str, Enum):
    """Domain events delivered to outbound integrations"""
    CLIENT_CREATED = "client_created"
    INVOICE_CREATED = "invoice_created"
    INVOICE_OVERDUE = "invoice_overdue"
    JOB_CREATED = "job_created"
    JOB_COMPLETED = "job_completed"
    DOCUMENT_UPLOADED = "document_uploaded"
    MEDIA_GENERATED = "media_generated"


class WebhookIntegration(str, Enum):
    """Named outbound integrations, one config each per tenant"""
    ZAPIER = "zapier"
    TASKER = "tasker"


class OutboundWebhookConfig(BaseModel):
    """Per-tenant, per-integration delivery settings"""
    enabled: bool = False
    webhook_url: Optional[str] = None
    api_key: Optional[str] = None
    # Empty means every event
    events: List[HookEventType] = Field(default_factory=list)

    def subscribes_to(self, event_type: HookEventType) -> bool:
        return not self.events or event_type in self.events

    @property
    def deliverable(self) -> bool:
        return self.enabled and bool(self.webhook_url)


class WebhookPayload(BaseModel):
    """Body POSTed to integration URLs"""
    event_type: HookEventType
    timestamp: datetime = Field(default_factory=datetime.now)
    source: str = "jarvis_hq"
    payload: Dict[str, Any] = Field(default_factory=dict)


class HookResponse(BaseModel):
    """Outcome of one delivery attempt"""
    integration: WebhookIntegration
    success: bool
    message: str
    webhook_id: Optional[str] = None
    error: Optional[str] = None


# Event payloads

class ClientCreatedPayload(BaseModel):
    client_id: str
    client_name: str
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class InvoiceCreatedPayload(BaseModel):
    invoice_id: str
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    amount: float
    currency: str = "usd"
    due_date: Optional[str] = None
    status: str
    created_at: datetime = Field(default_factory=datetime.now)


class InvoiceOverduePayload(BaseModel):
    invoice_id: str
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    amount: float
    currency: str = "usd"
    due_date: Optional[str] = None
    days_overdue: int = 0
    status: str = "overdue"


class JobCreatedPayload(BaseModel):
    job_id: str
    job_title: str
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    priority: str = "medium"
    status: str = "pending"
    created_at: datetime = Field(default_factory=datetime.now)


class JobCompletedPayload(BaseModel):
    job_id: str
    job_title: str
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    completed_at: datetime = Field(default_factory=datetime.now)
    status: str = "completed"


class DocumentUploadedPayload(BaseModel):
    document_id: str
    title: str
    file_name: str
    file_size: int = 0
    file_type: str = ""
    uploaded_at: datetime = Field(default_factory=datetime.now)


class MediaGeneratedPayload(BaseModel):
    media_id: str
    media_type: str  # image, video, audio
    ai_service: str
    prompt: str = ""
    file_url: str = ""
    generated_at: datetime = Field(default_factory=datetime.now)
