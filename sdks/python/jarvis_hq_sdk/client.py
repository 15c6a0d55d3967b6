"""Jarvis HQ Python SDK Client"""

import httpx
from typing import Optional, Dict, Any


class JarvisHQError(Exception):
    """Non-2xx response from the gateway"""

    def __init__(self, status_code: int, body: Dict[str, Any]):
        self.status_code = status_code
        self.body = body
        self.code = body.get("code") or body.get("error")
        super().__init__(body.get("message") or body.get("error") or f"HTTP {status_code}")


class JarvisHQClient:
    """Python SDK for the Jarvis HQ gateway"""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        admin_key: Optional[str] = None,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        headers = {"Content-Type": "application/json"}
        if admin_key:
            headers["X-Admin-Key"] = admin_key
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = await self.client.request(method, path, **kwargs)
        try:
            data = response.json()
        except ValueError:
            data = {"error": response.text}
        if response.is_error:
            raise JarvisHQError(response.status_code, data)
        return data

    async def generate(
        self,
        tenant_id: str,
        input: str,
        provider: str = "ollama",
        model: Optional[str] = None,
        system_prompt: Optional[str] = None,
        agent_id: Optional[str] = None,
        agent_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Budget-checked generation

        Args:
            tenant_id: Company the call is billed to
            input: User prompt
            provider: openai, claude, gemini or ollama
            model: Provider model (optional, provider default if None)
            system_prompt: Overrides the default system prompt
            agent_id: Agent to log the run against

        Returns:
            Response with content, usage and budget_status

        Raises:
            JarvisHQError: budget exceeded, missing credentials, provider offline
        """
        payload: Dict[str, Any] = {
            "tenantId": tenant_id,
            "input": input,
            "provider": provider,
        }

        if model:
            payload["model"] = model
        if system_prompt:
            payload["systemPrompt"] = system_prompt
        if agent_id:
            payload["agentId"] = agent_id
        if agent_name:
            payload["agentName"] = agent_name

        return await self._request("POST", "/v1/generate", json=payload)

    async def create_checkout_session(
        self,
        customer_id: str,
        invoice_id: str,
        company_id: str,
        amount: float,
        success_url: str,
        cancel_url: str,
        description: str = "",
    ) -> Dict[str, Any]:
        """Open a checkout session; returns sessionId and url"""
        return await self._request("POST", "/v1/checkout/sessions", json={
            "customerId": customer_id,
            "invoiceId": invoice_id,
            "companyId": company_id,
            "amount": amount,
            "description": description,
            "successUrl": success_url,
            "cancelUrl": cancel_url,
        })

    async def get_budget(self, tenant_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/v1/tenants/{tenant_id}/budget")

    async def update_budget(self, tenant_id: str, **settings: Any) -> Dict[str, Any]:
        """Set monthly_budget_limit, alerts_enabled or thresholds"""
        return await self._request("PUT", f"/v1/tenants/{tenant_id}/budget", json=settings)

    async def get_usage_summary(self, tenant_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/v1/tenants/{tenant_id}/usage/summary")

    async def close(self):
        """Close the client"""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
