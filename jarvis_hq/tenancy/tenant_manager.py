"""Tenant management and storage"""

import logging
from typing import Optional, List

from redis.exceptions import WatchError

from jarvis_hq.billing.cost import from_micros
from jarvis_hq.errors import TenantExistsError
from jarvis_hq.models.tenant import Tenant, BudgetUpdate
from jarvis_hq.storage.redis_client import (
    RedisStore,
    SPEND_FIELD,
    tenant_key,
    tenants_index_key,
    to_hash,
)

logger = logging.getLogger(__name__)

# Fields only the billing side may write
_SERVER_FIELDS = {"current_spend", "stripe_customer_id"}


class TenantManager:
    """
    Manages tenants and their budget configuration

    Spend lives in the tenant hash as integer micro-dollars. It is only
    ever changed with HINCRBY by the usage recorder, or zeroed by the
    monthly reset.
    """

    def __init__(self, store: RedisStore):
        self.store = store

    async def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        """Get tenant by ID, raising if storage is unreachable"""
        client = self.store.require_client()
        data = await client.hgetall(tenant_key(tenant_id))
        if not data:
            return None
        data.setdefault("id", tenant_id)
        data["current_spend"] = from_micros(int(data.pop(SPEND_FIELD, 0)))
        return Tenant.model_validate(data)

    async def create_tenant(self, tenant: Tenant) -> Tenant:
        """
        Register a new tenant

        Spend starts at zero, or keeps whatever usage was already metered
        against the id before registration.

        Raises:
            TenantExistsError: the id is already registered
        """
        client = self.store.require_client()
        key = tenant_key(tenant.id)

        async with client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(tenants_index_key())
                    if await pipe.sismember(tenants_index_key(), tenant.id):
                        await pipe.unwatch()
                        raise TenantExistsError(tenant.id)

                    pipe.multi()
                    pipe.hset(key, mapping=to_hash(tenant, exclude=_SERVER_FIELDS))
                    pipe.hsetnx(key, SPEND_FIELD, 0)
                    pipe.sadd(tenants_index_key(), tenant.id)
                    await pipe.execute()
                    break
                except WatchError:
                    continue

        logger.info("[TENANT] Created tenant %s", tenant.id)
        return await self.get_tenant(tenant.id)

    async def list_tenant_ids(self) -> List[str]:
        client = self.store.require_client()
        return sorted(await client.smembers(tenants_index_key()))

    async def update_budget(self, tenant_id: str, update: BudgetUpdate) -> Optional[Tenant]:
        """Apply tenant-editable budget settings; spend is never touched here"""
        client = self.store.require_client()
        if not await client.exists(tenant_key(tenant_id)):
            return None

        fields = to_hash(update)
        if fields:
            await client.hset(tenant_key(tenant_id), mapping=fields)
        return await self.get_tenant(tenant_id)

    async def set_stripe_customer_id(self, tenant_id: str, customer_id: str):
        client = self.store.require_client()
        if not await client.exists(tenant_key(tenant_id)):
            logger.warning("[TENANT] Cannot store customer id for unknown tenant %s", tenant_id)
            return
        await client.hset(tenant_key(tenant_id), "stripe_customer_id", customer_id)

    async def reset_monthly_spend(self, tenant_id: Optional[str] = None) -> int:
        """Zero current spend for one tenant or all of them (first of the month)"""
        client = self.store.require_client()
        tenant_ids = [tenant_id] if tenant_id else await self.list_tenant_ids()

        async with client.pipeline(transaction=True) as pipe:
            for tid in tenant_ids:
                pipe.hset(tenant_key(tid), SPEND_FIELD, 0)
            await pipe.execute()

        logger.info("[TENANT] Monthly spend reset for %d tenant(s)", len(tenant_ids))
        return len(tenant_ids)
