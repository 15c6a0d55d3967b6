"""Tenant (company) model and budget status"""

from datetime import datetime
from typing import Optional, Literal
from pydantic import BaseModel, Field


class Tenant(BaseModel):
    """Tenant model"""
    id: str
    name: str = ""
    created_at: datetime = Field(default_factory=datetime.now)
    is_active: bool = True

    # Budget config, in USD. A limit of 0 means unlimited.
    monthly_budget_limit: float = Field(0.0, ge=0)
    current_spend: float = Field(0.0, ge=0)

    # Alerts
    alerts_enabled: bool = True
    warning_threshold: int = Field(80, ge=0, le=100)
    critical_threshold: int = Field(95, ge=0, le=100)

    # Payments
    stripe_customer_id: Optional[str] = None


class TenantCreate(BaseModel):
    """Fields a client may set when registering a tenant"""
    id: str = Field(..., min_length=1)
    name: str = ""
    monthly_budget_limit: float = Field(0.0, ge=0)
    alerts_enabled: bool = True
    warning_threshold: int = Field(80, ge=0, le=100)
    critical_threshold: int = Field(95, ge=0, le=100)

    def to_tenant(self) -> Tenant:
        return Tenant(**self.model_dump())


class BudgetUpdate(BaseModel):
    """Tenant-editable budget settings"""
    monthly_budget_limit: Optional[float] = Field(None, ge=0)
    alerts_enabled: Optional[bool] = None
    warning_threshold: Optional[int] = Field(None, ge=0, le=100)
    critical_threshold: Optional[int] = Field(None, ge=0, le=100)


AlertLevel = Literal["normal", "warning", "critical"]


class BudgetCheck(BaseModel):
    """Result of a pre-flight budget check"""
    can_proceed: bool
    budget_limit: float
    current_spend: float
    projected_spend: float
    percentage_used: float = 0.0
    alert_level: AlertLevel = "normal"
    alerts_enabled: bool = True
    unlimited: bool = False
    # Set when the lookup failed and the guard let the call through anyway
    fail_open: bool = False
