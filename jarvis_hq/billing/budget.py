"""
Budget Guard - pre-flight check before metered calls

Compares an estimated cost against the tenant's monthly limit and current
spend. A limit of 0 means unlimited.

When the lookup itself fails, BUDGET_FAIL_OPEN decides the outcome:
true (default) lets the call through so a storage outage does not block
all AI usage; false rejects it with a 503.
"""

import logging
import os
from typing import Optional

from jarvis_hq.billing.cost import from_micros, to_micros
from jarvis_hq.errors import BudgetUnavailableError
from jarvis_hq.models.tenant import BudgetCheck, Tenant
from jarvis_hq.tenancy.tenant_manager import TenantManager

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def alert_level(
    projected_spend: float,
    budget_limit: float,
    warning_threshold: int,
    critical_threshold: int,
) -> str:
    projected = to_micros(projected_spend)
    limit = to_micros(budget_limit)
    if limit <= 0:
        return "normal"
    # percentages compared as projected * 100 >= threshold * limit
    if projected > limit or projected * 100 >= critical_threshold * limit:
        return "critical"
    if projected * 100 >= warning_threshold * limit:
        return "warning"
    return "normal"


class BudgetGuard:
    """Allow or deny a metered call against the tenant's monthly budget"""

    def __init__(self, tenant_manager: TenantManager, fail_open: Optional[bool] = None):
        self.tenant_manager = tenant_manager
        self.fail_open = _env_flag("BUDGET_FAIL_OPEN", True) if fail_open is None else fail_open

    def evaluate(self, tenant: Optional[Tenant], estimated_cost: float) -> BudgetCheck:
        """Pure decision for a known tenant state"""
        if tenant is None:
            tenant = Tenant(id="unknown")

        limit = tenant.monthly_budget_limit
        spend = tenant.current_spend
        # Decide in integer micro-dollars so 0.1 + 0.2 fits a 0.3 limit
        projected_micros = to_micros(spend) + to_micros(estimated_cost)
        projected = from_micros(projected_micros)

        if to_micros(limit) <= 0:
            return BudgetCheck(
                can_proceed=True,
                budget_limit=limit,
                current_spend=spend,
                projected_spend=projected,
                alerts_enabled=tenant.alerts_enabled,
                unlimited=True,
            )

        return BudgetCheck(
            can_proceed=projected_micros <= to_micros(limit),
            budget_limit=limit,
            current_spend=spend,
            projected_spend=projected,
            percentage_used=round((spend / limit) * 100, 2),
            alert_level=alert_level(
                projected, limit, tenant.warning_threshold, tenant.critical_threshold
            ),
            alerts_enabled=tenant.alerts_enabled,
        )

    async def check(self, tenant_id: str, estimated_cost: float) -> BudgetCheck:
        """
        Check whether a call estimated at `estimated_cost` may proceed

        Returns:
            BudgetCheck with the current spend and limit for display

        Raises:
            BudgetUnavailableError: lookup failed and fail-open is disabled
        """
        try:
            tenant = await self.tenant_manager.get_tenant(tenant_id)
        except Exception as e:
            if not self.fail_open:
                logger.error("[BUDGET] Budget lookup failed for %s, rejecting: %s", tenant_id, e)
                raise BudgetUnavailableError("Budget check unavailable") from e

            logger.warning("[BUDGET] Budget lookup failed for %s, allowing call: %s", tenant_id, e)
            return BudgetCheck(
                can_proceed=True,
                budget_limit=0.0,
                current_spend=0.0,
                projected_spend=estimated_cost,
                fail_open=True,
            )

        if tenant is None:
            logger.debug("[BUDGET] No budget configured for %s, treating as unlimited", tenant_id)

        result = self.evaluate(tenant, estimated_cost)
        if not result.can_proceed:
            logger.info(
                "[BUDGET] Denied %s: spend %.4f + estimate %.4f > limit %.2f",
                tenant_id, result.current_spend, estimated_cost, result.budget_limit,
            )
        return result
