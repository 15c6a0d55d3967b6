"""Tests for the HTTP surface"""

import json
from types import SimpleNamespace

import httpx
import litellm
import pytest
import pytest_asyncio

from jarvis_hq.billing.cost import to_micros
from jarvis_hq.gateway import components
from jarvis_hq.gateway.main import app
from jarvis_hq.models.invoice import Invoice, InvoiceStatus
from jarvis_hq.models.tenant import Tenant
from jarvis_hq.storage.redis_client import SPEND_FIELD, invoice_key, tenant_key, to_hash, usage_key
from jarvis_hq.webhooks.verifier import build_signature_header

WEBHOOK_SECRET = "whsec_gateway"


@pytest_asyncio.fixture
async def client(redis_client, monkeypatch):
    monkeypatch.setattr(components.store, "client", redis_client)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://gateway.test") as client:
        yield client


@pytest.fixture
def llm_calls(monkeypatch):
    calls = []

    async def acompletion(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="Generated text"))],
            usage=SimpleNamespace(prompt_tokens=100, completion_tokens=50),
        )

    monkeypatch.setattr(litellm, "acompletion", acompletion)
    return calls


async def add_tenant(limit, spend, tenant_id="acme"):
    await components.tenant_manager.create_tenant(Tenant(id=tenant_id, monthly_budget_limit=limit))
    await components.store.client.hincrby(tenant_key(tenant_id), SPEND_FIELD, to_micros(spend))


async def add_invoice(redis_client, **kwargs) -> Invoice:
    invoice = Invoice(company_id="acme", amount=300.0, status=InvoiceStatus.SENT, **kwargs)
    await redis_client.hset(invoice_key(invoice.id), mapping=to_hash(invoice))
    return invoice


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["storage"] == "connected"


@pytest.mark.asyncio
async def test_generate_records_spend(client, redis_client, llm_calls, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    await add_tenant(limit=100, spend=10)

    response = await client.post("/v1/generate", json={
        "tenantId": "acme",
        "input": "Write a haiku",
        "provider": "openai",
        "model": "gpt-4",
    })

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["content"] == "Generated text"
    assert body["usage"]["tokens_used"] == 150
    assert body["usage"]["cost"] == pytest.approx(0.006)
    assert body["budget_status"] == {"current_spend": 10.0, "budget_limit": 100.0, "percentage_used": 10.0}
    assert llm_calls[0]["api_key"] == "sk-env"

    tenant = await components.tenant_manager.get_tenant("acme")
    assert tenant.current_spend == pytest.approx(10.006)
    assert await redis_client.llen(usage_key("acme")) == 1


@pytest.mark.asyncio
async def test_generate_over_budget(client, redis_client, llm_calls, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    await add_tenant(limit=1, spend=1)

    response = await client.post("/v1/generate", json={
        "tenantId": "acme",
        "input": "Write a haiku",
        "provider": "openai",
    })

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "budget_exceeded"
    assert body["error"] == "Budget exceeded. Current spend: $1.00, Limit: $1.00"
    assert llm_calls == []
    assert await redis_client.llen(usage_key("acme")) == 0


@pytest.mark.asyncio
async def test_generate_missing_credentials(client, monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

    response = await client.post("/v1/generate", json={
        "tenantId": "acme",
        "input": "hello",
        "provider": "claude",
    })

    assert response.status_code == 400
    assert response.json()["code"] == "missing_credentials"


@pytest.mark.asyncio
async def test_generate_uses_stored_tenant_key(client, llm_calls, monkeypatch):
    monkeypatch.delenv("GOOGLE_AI_API_KEY", raising=False)

    stored = await client.put("/v1/tenants/acme/credentials/gemini", json={"apiKey": "tenant-gemini"})
    response = await client.post("/v1/generate", json={
        "tenantId": "acme",
        "input": "hello",
        "provider": "gemini",
    })

    assert stored.status_code == 200
    assert response.status_code == 200
    assert llm_calls[0]["api_key"] == "tenant-gemini"
    assert llm_calls[0]["model"] == "gemini/gemini-pro"


@pytest.mark.asyncio
async def test_generate_ollama_offline(client, redis_client, monkeypatch):
    def offline(request):
        raise httpx.ConnectError("connection refused", request=request)

    monkeypatch.setattr(components.invoker, "transport", httpx.MockTransport(offline))
    await add_tenant(limit=100, spend=5)

    response = await client.post("/v1/generate", json={"tenantId": "acme", "input": "hello"})

    assert response.status_code == 503
    assert response.json() == {
        "error": "OLLAMA_UNAVAILABLE",
        "status": "gpu_offline",
        "message": "Ollama service is not available. Please start your GPU pod "
                   "or ensure Ollama is running locally.",
    }
    assert await redis_client.llen(usage_key("acme")) == 0
    assert (await components.tenant_manager.get_tenant("acme")).current_spend == 5


@pytest.mark.asyncio
async def test_generate_missing_fields(client):
    response = await client.post("/v1/generate", json={"input": "hello"})

    assert response.status_code == 400
    assert "tenantId" in response.json()["error"]


@pytest.mark.asyncio
async def test_budget_endpoints(client):
    await add_tenant(limit=200, spend=50)

    updated = await client.put("/v1/tenants/acme/budget", json={"monthly_budget_limit": 100})
    budget = await client.get("/v1/tenants/acme/budget")

    assert updated.status_code == 200
    assert budget.json()["percentage_used"] == 50.0
    assert budget.json()["budget_limit"] == 100.0


def signed(event, secret=WEBHOOK_SECRET):
    body = json.dumps(event).encode()
    return body, {"stripe-signature": build_signature_header(body, secret), "content-type": "application/json"}


def completed_event(invoice_id, company_id="acme", session_id="cs_live_1"):
    metadata = {"company_id": company_id}
    if invoice_id:
        metadata["invoice_id"] = invoice_id
    return {
        "type": "checkout.session.completed",
        "data": {"object": {"id": session_id, "customer": "cus_9", "metadata": metadata}},
    }


@pytest.mark.asyncio
async def test_stripe_webhook_settles_once(client, redis_client, monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    invoice = await add_invoice(redis_client)
    body, headers = signed(completed_event(invoice.id))

    first = await client.post("/v1/webhooks/stripe", content=body, headers=headers)
    second = await client.post("/v1/webhooks/stripe", content=body, headers=headers)

    assert first.status_code == 200
    assert first.json()["already_paid"] is False
    assert second.status_code == 200
    assert second.json()["already_paid"] is True
    assert second.json()["transaction_id"] == first.json()["transaction_id"]
    assert await redis_client.hget(invoice_key(invoice.id), "status") == "paid"


@pytest.mark.asyncio
async def test_stripe_webhook_rejects_tampered_body(client, redis_client, monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    invoice = await add_invoice(redis_client)
    body, headers = signed(completed_event(invoice.id))

    response = await client.post(
        "/v1/webhooks/stripe",
        content=body.replace(b"cus_9", b"cus_0"),
        headers=headers,
    )

    assert response.status_code == 400
    assert await redis_client.hget(invoice_key(invoice.id), "status") == "sent"


@pytest.mark.asyncio
async def test_stripe_webhook_missing_signature(client, monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)

    response = await client.post("/v1/webhooks/stripe", content=b"{}")

    assert response.status_code == 400
    assert response.json()["error"] == "Missing Stripe signature"


@pytest.mark.asyncio
async def test_stripe_webhook_without_secret(client, monkeypatch):
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET", raising=False)
    body, headers = signed(completed_event("inv-1"))

    response = await client.post("/v1/webhooks/stripe", content=body, headers=headers)

    assert response.status_code == 500


@pytest.mark.asyncio
async def test_stripe_webhook_ignores_other_events(client, monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    body, headers = signed({"type": "payment_intent.created", "data": {"object": {}}})

    response = await client.post("/v1/webhooks/stripe", content=body, headers=headers)

    assert response.status_code == 200
    assert response.json()["ignored"] is True


@pytest.mark.asyncio
async def test_stripe_webhook_requires_invoice_id(client, monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    body, headers = signed(completed_event(None))

    response = await client.post("/v1/webhooks/stripe", content=body, headers=headers)

    assert response.status_code == 400
    assert response.json()["error"] == "Invoice ID missing"


@pytest.mark.asyncio
async def test_stripe_webhook_wrong_company(client, redis_client, monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    invoice = await add_invoice(redis_client)
    body, headers = signed(completed_event(invoice.id, company_id="globex"))

    response = await client.post("/v1/webhooks/stripe", content=body, headers=headers)

    assert response.status_code == 404
    assert await redis_client.hget(invoice_key(invoice.id), "status") == "sent"


@pytest.mark.asyncio
async def test_checkout_session_for_paid_invoice(client, redis_client, monkeypatch):
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test")
    invoice = await add_invoice(redis_client)
    await redis_client.hset(invoice_key(invoice.id), "status", "paid")

    response = await client.post("/v1/checkout/sessions", json={
        "customerId": "cus_1",
        "invoiceId": invoice.id,
        "companyId": "acme",
        "amount": 300.0,
        "successUrl": "https://app.test/ok",
        "cancelUrl": "https://app.test/cancel",
    })

    assert response.status_code == 400
    assert response.json()["code"] == "invoice_already_paid"


@pytest.mark.asyncio
async def test_storage_down_returns_503(monkeypatch):
    monkeypatch.setattr(components.store, "client", None)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://gateway.test") as client:
        response = await client.get("/v1/tenants/acme/invoices/inv-1")

    assert response.status_code == 503
    assert response.json()["code"] == "storage_unavailable"


@pytest.mark.asyncio
async def test_event_trigger_delivers_in_background(client, monkeypatch):
    received = []

    def handler(request):
        received.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "zap-1"})

    monkeypatch.setattr(components.webhook_manager, "transport", httpx.MockTransport(handler))
    configured = await client.put("/v1/tenants/acme/webhooks/zapier", json={
        "enabled": True,
        "webhook_url": "https://hooks.zapier.test/catch/1",
    })

    response = await client.post("/v1/tenants/acme/events", json={
        "event_type": "job_created",
        "payload": {"job_id": "job-7", "job_title": "Paint deck"},
    })
    await components.dispatcher.drain(timeout=5)

    assert configured.status_code == 200
    assert response.status_code == 202
    assert [event["payload"]["job_id"] for event in received] == ["job-7"]


@pytest.mark.asyncio
async def test_dashboard_requires_admin_key(client, monkeypatch):
    monkeypatch.setenv("ADMIN_API_KEY", "admin-secret")
    await add_tenant(limit=100, spend=25)

    denied = await client.get("/api/dashboard/tenants")
    allowed = await client.get("/api/dashboard/tenants", headers={"X-Admin-Key": "admin-secret"})

    assert denied.status_code == 401
    assert allowed.status_code == 200
    assert allowed.json()["tenants"][0]["percentage_used"] == 25.0


@pytest.mark.asyncio
async def test_dashboard_budget_reset(client, monkeypatch):
    monkeypatch.setenv("ADMIN_API_KEY", "admin-secret")
    await add_tenant(limit=100, spend=25)

    response = await client.post("/api/dashboard/budgets/reset", headers={"X-Admin-Key": "admin-secret"})

    assert response.json() == {"reset": 1}
    assert (await components.tenant_manager.get_tenant("acme")).current_spend == 0


@pytest.mark.asyncio
async def test_media_usage_priced_and_recorded(client):
    await add_tenant(limit=100, spend=0)

    response = await client.post("/v1/tenants/acme/usage/media", json={
        "kind": "image",
        "quantity": 4,
        "resolution": "high",
    })

    assert response.status_code == 201
    record = response.json()
    assert record["service"] == "Stability AI"
    assert record["images_generated"] == 4
    assert record["cost"] == pytest.approx(0.08)
    assert (await components.tenant_manager.get_tenant("acme")).current_spend == pytest.approx(0.08)


@pytest.mark.asyncio
async def test_create_tenant_twice_keeps_spend(client):
    created = await client.post("/v1/tenants", json={"id": "t1", "monthly_budget_limit": 100})
    await components.usage_recorder.record(tenant_id="t1", service="OPENAI", description="a", cost=85.0)

    again = await client.post("/v1/tenants", json={"id": "t1", "monthly_budget_limit": 100, "current_spend": 0})

    assert created.status_code == 201
    assert again.status_code == 409
    assert again.json()["code"] == "tenant_exists"
    assert (await components.tenant_manager.get_tenant("t1")).current_spend == pytest.approx(85.0)


@pytest.mark.asyncio
async def test_create_tenant_ignores_client_spend(client):
    response = await client.post("/v1/tenants", json={
        "id": "t2",
        "monthly_budget_limit": 50,
        "current_spend": 49,
        "stripe_customer_id": "cus_forged",
    })

    assert response.status_code == 201
    assert response.json()["current_spend"] == 0.0
    assert response.json()["stripe_customer_id"] is None


@pytest.mark.asyncio
async def test_reposting_settled_invoice_conflicts(client, redis_client, monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    created = await client.post("/v1/tenants/acme/invoices", json={"id": "inv1", "amount": 120.0, "status": "sent"})
    body, headers = signed(completed_event("inv1", session_id="cs_1"))
    first = await client.post("/v1/webhooks/stripe", content=body, headers=headers)

    reposted = await client.post("/v1/tenants/acme/invoices", json={"id": "inv1", "amount": 120.0})
    body, headers = signed(completed_event("inv1", session_id="cs_2"))
    second = await client.post("/v1/webhooks/stripe", content=body, headers=headers)
    await components.dispatcher.drain(timeout=5)

    assert created.status_code == 201
    assert first.json()["already_paid"] is False
    assert reposted.status_code == 409
    assert reposted.json()["code"] == "invoice_exists"
    assert second.json()["already_paid"] is True
    assert await redis_client.hget(invoice_key("inv1"), "status") == "paid"
    assert len(await redis_client.keys("jarvis:transaction:*")) == 1


@pytest.mark.asyncio
async def test_create_invoice_cannot_set_payment_fields(client):
    paid = await client.post("/v1/tenants/acme/invoices", json={"amount": 75.0, "status": "paid"})
    forged = await client.post("/v1/tenants/acme/invoices", json={
        "amount": 75.0,
        "paid_date": "2024-03-01",
        "transaction_id": "tx-forged",
    })
    await components.dispatcher.drain(timeout=5)

    assert paid.status_code == 400
    assert forged.status_code == 201
    assert forged.json()["status"] == "draft"
    assert forged.json()["company_id"] == "acme"
    assert forged.json()["paid_date"] is None
    assert forged.json()["transaction_id"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize("event", [
    {"type": "checkout.session.completed", "data": "x"},
    {"type": "checkout.session.completed", "data": {"object": "x"}},
    {"type": "checkout.session.completed", "data": {"object": {"id": "cs_1", "metadata": []}}},
    {"type": "checkout.session.completed", "data": {"object": {"id": "cs_1", "metadata": {"invoice_id": ["inv"]}}}},
    {"type": "checkout.session.completed", "data": {"object": {"id": {"x": 1}, "metadata": {"invoice_id": "inv"}}}},
])
async def test_stripe_webhook_malformed_session(client, monkeypatch, event):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    body, headers = signed(event)

    response = await client.post("/v1/webhooks/stripe", content=body, headers=headers)

    assert response.status_code == 400
    assert response.json()["code"] == "invalid_webhook"


@pytest.mark.asyncio
async def test_stripe_webhook_session_reused_for_other_invoice(client, redis_client, monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    settled = await add_invoice(redis_client)
    other = await add_invoice(redis_client)
    body, headers = signed(completed_event(settled.id, session_id="cs_1"))
    await client.post("/v1/webhooks/stripe", content=body, headers=headers)

    body, headers = signed(completed_event(other.id, session_id="cs_1"))
    response = await client.post("/v1/webhooks/stripe", content=body, headers=headers)

    assert response.status_code == 409
    assert response.json()["code"] == "session_conflict"
    assert await redis_client.hget(invoice_key(other.id), "status") == "sent"
