"""
Credential Resolver - per-tenant provider keys with environment fallback
"""

import json
import logging
import os
from typing import Optional, Dict

from pydantic import ValidationError

from jarvis_hq.models.credentials import (
    ProviderCredential,
    OllamaCredential,
    credential_adapter,
)
from jarvis_hq.storage.redis_client import RedisStore, provider_key

logger = logging.getLogger(__name__)

# Process-wide defaults used when a tenant has no stored key
ENV_API_KEYS: Dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "claude": "ANTHROPIC_API_KEY",
    "gemini": "GOOGLE_AI_API_KEY",
}


class CredentialResolver:
    """Resolve a provider credential, preferring the tenant's stored config"""

    def __init__(self, store: RedisStore):
        self.store = store

    async def get_stored(self, tenant_id: str, provider: str) -> Optional[ProviderCredential]:
        if not self.store.client:
            return None

        try:
            raw = await self.store.client.get(provider_key(tenant_id, provider))
        except Exception as e:
            logger.error("[CREDENTIALS] Lookup failed for %s/%s: %s", tenant_id, provider, e)
            return None

        if not raw:
            return None

        try:
            data = json.loads(raw)
            if isinstance(data, dict):
                data.setdefault("provider", provider)
            credential = credential_adapter.validate_python(data)
        except (ValueError, ValidationError) as e:
            logger.error("[CREDENTIALS] Invalid stored credential for %s/%s: %s", tenant_id, provider, e)
            return None

        if credential.provider != provider:
            logger.error(
                "[CREDENTIALS] Stored credential for %s/%s is tagged %s",
                tenant_id, provider, credential.provider,
            )
            return None
        return credential

    def get_default(self, provider: str) -> Optional[ProviderCredential]:
        if provider == "ollama":
            return OllamaCredential(base_url=os.getenv("OLLAMA_BASE_URL") or None)

        env_name = ENV_API_KEYS.get(provider)
        api_key = os.getenv(env_name) if env_name else None
        if not api_key:
            return None
        return credential_adapter.validate_python({"provider": provider, "api_key": api_key})

    async def resolve(self, tenant_id: str, provider: str) -> Optional[ProviderCredential]:
        """Stored tenant credential first, then the environment default"""
        credential = await self.get_stored(tenant_id, provider)
        if credential is not None:
            if provider == "ollama" and not credential.base_url:
                return self.get_default(provider)
            return credential
        return self.get_default(provider)

    async def store_credential(self, tenant_id: str, credential: ProviderCredential):
        client = self.store.require_client()
        await client.set(
            provider_key(tenant_id, credential.provider),
            credential.model_dump_json(),
        )

    async def delete_credential(self, tenant_id: str, provider: str) -> bool:
        client = self.store.require_client()
        return bool(await client.delete(provider_key(tenant_id, provider)))
