"""
Usage Recorder - append usage records and advance tenant spend

The usage record and the spend increment are written in one MULTI/EXEC
transaction, so either both land or neither does. Spend is kept as
integer micro-dollars so repeated increments never drift.

Storage failures are logged and reported as None: a response that was
already generated is still returned to the caller.
"""

import logging
from collections import defaultdict
from datetime import date
from typing import Optional, Dict, Any, List

from jarvis_hq.billing.budget import alert_level
from jarvis_hq.billing.cost import CostEstimate, from_micros, to_micros
from jarvis_hq.models.usage import UsageRecord, UsageSummary, AgentRun
from jarvis_hq.storage.redis_client import (
    RedisStore,
    SPEND_FIELD,
    tenant_key,
    usage_key,
    daily_usage_key,
    agent_runs_key,
)
from jarvis_hq.tenancy.tenant_manager import TenantManager

logger = logging.getLogger(__name__)

DAILY_USAGE_TTL = 90 * 24 * 3600


class UsageRecorder:
    """Persist metered usage and keep tenant spend in step with it"""

    def __init__(self, store: RedisStore, tenant_manager: Optional[TenantManager] = None):
        self.store = store
        self.tenant_manager = tenant_manager

    async def record(
        self,
        tenant_id: str,
        service: str,
        description: str,
        cost: float,
        tokens_used: int = 0,
        agent_id: Optional[str] = None,
        agent_name: Optional[str] = None,
        images_generated: int = 0,
        requests_count: int = 1,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[UsageRecord]:
        """
        Log one metered call and add its cost to the tenant's spend

        Raises:
            ValueError: negative cost or token counts
        """
        record = UsageRecord(
            tenant_id=tenant_id,
            service=service,
            description=description,
            cost=cost,
            tokens_used=tokens_used,
            agent_id=agent_id,
            agent_name=agent_name,
            images_generated=images_generated,
            requests_count=requests_count,
            metadata=metadata or {},
        )
        return await self.record_usage(record)

    async def record_estimate(
        self,
        tenant_id: str,
        service: str,
        estimate: CostEstimate,
        agent_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[UsageRecord]:
        """Record usage priced by one of the media calculators"""
        return await self.record(
            tenant_id=tenant_id,
            service=service,
            description=estimate.details,
            cost=estimate.cost,
            tokens_used=estimate.tokens_used,
            agent_id=agent_id,
            images_generated=estimate.images_generated,
            requests_count=estimate.requests_count,
            metadata=metadata,
        )

    async def record_usage(self, record: UsageRecord) -> Optional[UsageRecord]:
        if not self.store.client:
            logger.error("[USAGE] Storage unavailable, usage for %s not recorded", record.tenant_id)
            return None

        daily_key = daily_usage_key(record.tenant_id, record.usage_date.isoformat())
        cost_micros = to_micros(record.cost)

        try:
            async with self.store.client.pipeline(transaction=True) as pipe:
                pipe.rpush(usage_key(record.tenant_id), record.model_dump_json())
                pipe.hincrby(tenant_key(record.tenant_id), SPEND_FIELD, cost_micros)
                pipe.hincrby(daily_key, "request_count", record.requests_count)
                pipe.hincrby(daily_key, "total_tokens", record.tokens_used)
                pipe.hincrby(daily_key, "cost_micros", cost_micros)
                pipe.hincrby(daily_key, f"service:{record.service}", 1)
                pipe.expire(daily_key, DAILY_USAGE_TTL)
                await pipe.execute()
        except Exception as e:
            logger.error("[USAGE] Failed to record usage for %s: %s", record.tenant_id, e)
            return None

        await self._check_thresholds(record.tenant_id)
        return record

    async def record_agent_run(self, run: AgentRun):
        """Keep the agent's input/output for the console history"""
        if not self.store.client:
            return

        try:
            await self.store.client.rpush(agent_runs_key(run.tenant_id), run.model_dump_json())
        except Exception as e:
            logger.error("[USAGE] Failed to log agent run for %s: %s", run.agent_id, e)

    async def _check_thresholds(self, tenant_id: str):
        if not self.tenant_manager:
            return

        try:
            tenant = await self.tenant_manager.get_tenant(tenant_id)
        except Exception as e:
            logger.error("[USAGE] Budget threshold check failed for %s: %s", tenant_id, e)
            return

        if not tenant or not tenant.alerts_enabled or tenant.monthly_budget_limit <= 0:
            return

        level = alert_level(
            tenant.current_spend,
            tenant.monthly_budget_limit,
            tenant.warning_threshold,
            tenant.critical_threshold,
        )
        if level != "normal":
            percentage = tenant.current_spend / tenant.monthly_budget_limit * 100
            logger.warning(
                "[BUDGET] %s alert for %s: %.1f%% of monthly budget used ($%.2f / $%.2f)",
                level.capitalize(), tenant_id, percentage,
                tenant.current_spend, tenant.monthly_budget_limit,
            )

    async def list_usage(
        self,
        tenant_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        service: Optional[str] = None,
    ) -> List[UsageRecord]:
        """Usage records for a date range, newest first"""
        client = self.store.require_client()
        raw_records = await client.lrange(usage_key(tenant_id), 0, -1)

        records = []
        for raw in raw_records:
            record = UsageRecord.model_validate_json(raw)
            if start_date and record.usage_date < start_date:
                continue
            if end_date and record.usage_date > end_date:
                continue
            if service and record.service != service:
                continue
            records.append(record)

        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    async def get_usage_summary(
        self,
        tenant_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[UsageSummary]:
        """Usage grouped by service"""
        records = await self.list_usage(tenant_id, start_date, end_date)

        groups: Dict[str, UsageSummary] = defaultdict(lambda: UsageSummary(service=""))
        for record in records:
            summary = groups[record.service]
            summary.service = record.service
            summary.total_cost += record.cost
            summary.tokens_used += record.tokens_used
            summary.images_generated += record.images_generated
            summary.requests_count += record.requests_count or 1

        return sorted(groups.values(), key=lambda s: s.service)

    async def get_total_cost(
        self,
        tenant_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> float:
        records = await self.list_usage(tenant_id, start_date, end_date)
        return sum(record.cost for record in records)

    async def get_daily_usage(self, tenant_id: str, day: Optional[date] = None) -> Dict[str, Any]:
        """Daily counters for the dashboard"""
        client = self.store.require_client()
        day = day or date.today()
        data = await client.hgetall(daily_usage_key(tenant_id, day.isoformat()))

        return {
            "date": day.isoformat(),
            "request_count": int(data.get("request_count", 0)),
            "total_tokens": int(data.get("total_tokens", 0)),
            "total_cost": from_micros(int(data.get("cost_micros", 0))),
            "services": {
                field.split(":", 1)[1]: int(count)
                for field, count in data.items()
                if field.startswith("service:")
            },
        }
