"""Shared fixtures: an isolated in-memory Redis per test"""

import fakeredis
import pytest_asyncio

from jarvis_hq.billing.cost import to_micros
from jarvis_hq.models.tenant import Tenant
from jarvis_hq.storage.redis_client import RedisStore, SPEND_FIELD, tenant_key
from jarvis_hq.tenancy.tenant_manager import TenantManager


async def _seed_tenant(manager: TenantManager, tenant: Tenant, spend: float = 0.0) -> Tenant:
    """Register a tenant and meter `spend` against it the way usage does"""
    await manager.create_tenant(tenant)
    if spend:
        await manager.store.client.hincrby(tenant_key(tenant.id), SPEND_FIELD, to_micros(spend))
    return await manager.get_tenant(tenant.id)


@pytest_asyncio.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def store(redis_client):
    store = RedisStore()
    store.client = redis_client
    return store


@pytest_asyncio.fixture
async def tenant_manager(store):
    return TenantManager(store)


@pytest_asyncio.fixture
async def seed_tenant():
    return _seed_tenant
