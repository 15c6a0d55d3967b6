"""Invoice and settlement models"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Literal, Optional
from pydantic import BaseModel, Field


class InvoiceStatus(str, Enum):
    """Invoice lifecycle states"""
    DRAFT = "draft"
    OPEN = "open"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class Invoice(BaseModel):
    """Invoice owned by a tenant"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    company_id: str
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    amount: float = Field(..., gt=0)
    currency: str = "usd"
    description: str = ""
    status: InvoiceStatus = InvoiceStatus.DRAFT
    due_date: Optional[date] = None
    paid_date: Optional[date] = None
    transaction_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID


class InvoiceCreate(BaseModel):
    """
    Client-supplied invoice fields

    Payment fields are absent: an invoice only becomes paid through
    settlement.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), min_length=1)
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    amount: float = Field(..., gt=0)
    currency: str = "usd"
    description: str = ""
    status: Literal["draft", "open", "sent"] = "draft"
    due_date: Optional[date] = None

    def to_invoice(self, company_id: str) -> Invoice:
        return Invoice(company_id=company_id, **self.model_dump())


class Transaction(BaseModel):
    """Settlement record, one per paid invoice"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    invoice_id: str
    company_id: str
    amount: float
    payment_method: str = "stripe"
    stripe_session_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class SettlementResult(BaseModel):
    """Outcome of a settlement attempt"""
    success: bool = True
    invoice_id: str
    transaction_id: Optional[str] = None
    company_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    already_paid: bool = False
