"""Tests for the Python SDK client"""

import json

import httpx
import pytest

from jarvis_hq_sdk.client import JarvisHQClient, JarvisHQError


def gateway_transport(seen):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/v1/generate":
            body = json.loads(request.content)
            if body["tenantId"] == "broke":
                return httpx.Response(400, json={
                    "error": "Budget exceeded. Current spend: $10.00, Limit: $10.00",
                    "code": "budget_exceeded",
                })
            return httpx.Response(200, json={
                "success": True,
                "content": "Hello",
                "usage": {"tokens_used": 12, "cost": 0.0, "provider": body["provider"]},
                "budget_status": {"current_spend": 0.0, "budget_limit": 0.0, "percentage_used": 0.0},
            })
        if request.url.path == "/v1/checkout/sessions":
            return httpx.Response(200, json={"sessionId": "cs_1", "url": "https://pay.test/cs_1"})
        return httpx.Response(404, json={"error": "Not Found"})

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_generate_sends_camel_case():
    seen = []
    async with JarvisHQClient(transport=gateway_transport(seen)) as client:
        result = await client.generate("acme", "Hi", system_prompt="Be kind", agent_id="a-1")

    assert result["content"] == "Hello"
    body = json.loads(seen[0].content)
    assert body == {
        "tenantId": "acme",
        "input": "Hi",
        "provider": "ollama",
        "systemPrompt": "Be kind",
        "agentId": "a-1",
    }


@pytest.mark.asyncio
async def test_error_response_raises():
    async with JarvisHQClient(transport=gateway_transport([])) as client:
        with pytest.raises(JarvisHQError) as exc_info:
            await client.generate("broke", "Hi", provider="openai")

    assert exc_info.value.status_code == 400
    assert exc_info.value.code == "budget_exceeded"
    assert "Budget exceeded" in str(exc_info.value)


@pytest.mark.asyncio
async def test_checkout_session_and_admin_header():
    seen = []
    async with JarvisHQClient(admin_key="admin", transport=gateway_transport(seen)) as client:
        session = await client.create_checkout_session(
            customer_id="cus_1",
            invoice_id="inv-1",
            company_id="acme",
            amount=10.0,
            success_url="https://app.test/ok",
            cancel_url="https://app.test/cancel",
        )

    assert session["sessionId"] == "cs_1"
    assert seen[0].headers["X-Admin-Key"] == "admin"
