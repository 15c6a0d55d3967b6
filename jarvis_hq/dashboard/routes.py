"""Dashboard API routes"""

import os
from fastapi import APIRouter, HTTPException, Header
from typing import Optional
from datetime import date, datetime, timedelta

from jarvis_hq.gateway import components

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


def verify_admin_key(admin_key: Optional[str] = Header(None, alias="X-Admin-Key")) -> str:
    """Verify admin API key"""
    expected_key = os.getenv("ADMIN_API_KEY")
    if not expected_key:
        raise HTTPException(status_code=500, detail="Admin key not configured")
    if admin_key != expected_key:
        raise HTTPException(status_code=401, detail="Invalid admin key")
    return admin_key


@router.get("/stats")
async def get_stats(admin_key: str = Header(None, alias="X-Admin-Key")):
    """Background delivery counters"""
    verify_admin_key(admin_key)

    return {
        "dispatcher": dict(components.dispatcher.stats),
        "pending_tasks": components.dispatcher.pending,
        "timestamp": datetime.now().isoformat(),
    }


@router.get("/tenants")
async def list_tenants(admin_key: str = Header(None, alias="X-Admin-Key")):
    """List all tenants with their budget position"""
    verify_admin_key(admin_key)

    tenants = []
    for tenant_id in await components.tenant_manager.list_tenant_ids():
        tenant = await components.tenant_manager.get_tenant(tenant_id)
        if tenant is None:
            continue
        check = components.budget_guard.evaluate(tenant, 0.0)
        tenants.append({
            "id": tenant.id,
            "name": tenant.name,
            "is_active": tenant.is_active,
            "created_at": tenant.created_at.isoformat(),
            "current_spend": check.current_spend,
            "budget_limit": check.budget_limit,
            "percentage_used": check.percentage_used,
            "alert_level": check.alert_level,
        })

    return {
        "tenants": tenants,
        "total": len(tenants),
    }


@router.get("/tenants/{tenant_id}/usage")
async def get_tenant_usage(
    tenant_id: str,
    days: int = 7,
    admin_key: str = Header(None, alias="X-Admin-Key"),
):
    """Daily counters plus per-service totals for the last `days` days"""
    verify_admin_key(admin_key)

    today = date.today()
    start = today - timedelta(days=max(days, 1) - 1)
    daily = [
        await components.usage_recorder.get_daily_usage(tenant_id, start + timedelta(days=offset))
        for offset in range((today - start).days + 1)
    ]
    summary = await components.usage_recorder.get_usage_summary(tenant_id, start, today)

    return {
        "tenant_id": tenant_id,
        "period_days": days,
        "daily": daily,
        "services": [item.model_dump() for item in summary],
        "total_cost": sum(item.total_cost for item in summary),
    }


@router.post("/budgets/reset")
async def reset_budgets(
    tenant_id: Optional[str] = None,
    admin_key: str = Header(None, alias="X-Admin-Key"),
):
    """Zero current spend at the start of a billing month"""
    verify_admin_key(admin_key)

    reset = await components.tenant_manager.reset_monthly_spend(tenant_id)
    return {"reset": reset}


@router.get("/health/detailed")
async def detailed_health(admin_key: str = Header(None, alias="X-Admin-Key")):
    """Detailed health check"""
    verify_admin_key(admin_key)

    return {
        "status": "healthy",
        "storage": await components.store.get_stats(),
        "observability": "enabled" if components.tracer.enabled else "disabled",
        "budget_fail_open": components.budget_guard.fail_open,
        "timestamp": datetime.now().isoformat(),
    }
