"""
Redis Store - Shared connection for tenant, billing and webhook state

All components share one connection so that multi-key updates (usage
record + spend, invoice + transaction) can run inside a single
MULTI/EXEC transaction.
"""

import json
import logging
import os
from typing import Optional, Dict, Any
import redis.asyncio as redis
from redis.asyncio import Redis
from pydantic import BaseModel

from jarvis_hq.errors import StorageUnavailableError

logger = logging.getLogger(__name__)

KEY_PREFIX = "jarvis"

# Tenant hash field holding spend as integer micro-dollars (HINCRBY only)
SPEND_FIELD = "spend_micros"


def tenant_key(tenant_id: str) -> str:
    return f"{KEY_PREFIX}:tenant:{tenant_id}"


def tenants_index_key() -> str:
    return f"{KEY_PREFIX}:tenants"


def provider_key(tenant_id: str, provider: str) -> str:
    return f"{KEY_PREFIX}:provider_keys:{tenant_id}:{provider}"


def usage_key(tenant_id: str) -> str:
    return f"{KEY_PREFIX}:usage:{tenant_id}"


def daily_usage_key(tenant_id: str, day: str) -> str:
    return f"{KEY_PREFIX}:usage:daily:{tenant_id}:{day}"


def agent_runs_key(tenant_id: str) -> str:
    return f"{KEY_PREFIX}:agent_runs:{tenant_id}"


def invoice_key(invoice_id: str) -> str:
    return f"{KEY_PREFIX}:invoice:{invoice_id}"


def tenant_invoices_key(tenant_id: str) -> str:
    return f"{KEY_PREFIX}:invoices:{tenant_id}"


def transaction_key(transaction_id: str) -> str:
    return f"{KEY_PREFIX}:transaction:{transaction_id}"


def settlement_session_key(session_id: str) -> str:
    return f"{KEY_PREFIX}:settlement:session:{session_id}"


def activity_log_key(tenant_id: str) -> str:
    return f"{KEY_PREFIX}:activity_log:{tenant_id}"


def webhook_config_key(tenant_id: str, integration: str) -> str:
    return f"{KEY_PREFIX}:webhook_config:{tenant_id}:{integration}"


def to_hash(model: BaseModel, exclude: Optional[set] = None) -> Dict[str, str]:
    """Flatten a model into Redis hash fields, dropping unset values"""
    data = model.model_dump(mode="json", exclude_none=True, exclude=exclude)
    return {
        field: value if isinstance(value, str) else json.dumps(value)
        for field, value in data.items()
    }


class RedisStore:
    """
    Holder for the shared Redis connection

    A failed connect leaves `client` unset; components treat that as
    "storage unavailable" rather than crashing the gateway.
    """

    def __init__(self):
        self.host = os.getenv("REDIS_HOST", "localhost")
        self.port = int(os.getenv("REDIS_PORT", "6379"))
        self.password = os.getenv("REDIS_PASSWORD")
        self.db = int(os.getenv("REDIS_DB", "0"))
        self.client: Optional[Redis] = None

    async def connect(self):
        """Connect to Redis"""
        if self.client is not None:
            return

        try:
            self.client = redis.from_url(
                f"redis://{self.host}:{self.port}/{self.db}",
                password=self.password,
                decode_responses=True,
            )
            await self.client.ping()
        except Exception as e:
            logger.warning("[STORE] Redis connection failed: %s. Running without storage.", e)
            self.client = None

    async def disconnect(self):
        """Disconnect from Redis"""
        if self.client:
            await self.client.aclose()
            self.client = None

    def require_client(self) -> Redis:
        if self.client is None:
            raise StorageUnavailableError("Storage is not connected")
        return self.client

    async def health_check(self) -> bool:
        """Check Redis connection health"""
        if not self.client:
            return False

        try:
            await self.client.ping()
            return True
        except Exception:
            return False

    async def get_stats(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "db": self.db,
            "connected": await self.health_check(),
        }
