"""
Jarvis HQ Gateway - Main FastAPI Application

Budget-checked AI generation for tenants, Stripe checkout and settlement
of invoices, and outbound integration webhooks.
"""

import json
import logging
import os
from contextlib import asynccontextmanager
from datetime import date
from typing import Optional, Dict, Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from jarvis_hq.errors import (
    ConfigurationError,
    InvalidWebhookError,
    InvoiceNotFoundError,
    JarvisHQError,
    StorageUnavailableError,
)
from jarvis_hq.billing.cost import (
    image_generation_cost,
    text_to_speech_cost,
    transcription_cost,
    video_generation_cost,
)
from jarvis_hq.gateway import components
from jarvis_hq.gateway.models import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    EventTriggerRequest,
    GenerateRequest,
    GenerateResponse,
    MediaUsageRequest,
)
from jarvis_hq.models.credentials import credential_adapter
from jarvis_hq.models.tenant import BudgetUpdate, TenantCreate
from jarvis_hq.models.invoice import InvoiceCreate
from jarvis_hq.models.webhook import OutboundWebhookConfig, WebhookIntegration
from jarvis_hq.webhooks.verifier import verify_signature

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"
CHECKOUT_COMPLETED = "checkout.session.completed"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    await components.store.connect()
    await components.tracer.initialize()
    yield
    # Shutdown
    await components.dispatcher.drain(timeout=10)
    await components.store.disconnect()


app = FastAPI(
    title="Jarvis HQ Gateway",
    description="Budget-checked AI generation, invoice settlement and integration webhooks",
    version=VERSION,
    lifespan=lifespan,
)

# Include dashboard routes
from jarvis_hq.dashboard.routes import router as dashboard_router
app.include_router(dashboard_router)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(JarvisHQError)
async def jarvis_error_handler(request: Request, exc: JarvisHQError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = sorted({
        str(error["loc"][-1]) for error in exc.errors() if error.get("loc")
    })
    return JSONResponse(
        status_code=400,
        content={
            "error": f"Missing or invalid fields: {', '.join(fields)}",
            "code": "invalid_request",
        },
    )


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    store_status = await components.store.health_check()
    return {
        "status": "healthy",
        "storage": "connected" if store_status else "disconnected",
        "budget_mode": os.getenv("BUDGET_MODE", "dev"),
        "version": VERSION,
    }


@app.post("/v1/generate", response_model=GenerateResponse)
async def generate(request: GenerateRequest):
    """
    Budget-checked AI generation

    400 for missing credentials or an exceeded budget, 503 when the
    self-hosted provider is offline, 500 when the provider call fails.
    """
    return await components.generation_service.generate(request)


@app.post("/v1/checkout/sessions", response_model=CheckoutSessionResponse, response_model_by_alias=True)
async def create_checkout_session(request: CheckoutSessionRequest):
    """Open a Stripe checkout session for an unpaid invoice"""
    session = await components.checkout_service.create_session(
        customer_id=request.customer_id,
        invoice_id=request.invoice_id,
        company_id=request.company_id,
        amount=request.amount,
        description=request.description,
        success_url=request.success_url,
        cancel_url=request.cancel_url,
    )
    return CheckoutSessionResponse(**session)


def _webhook_tolerance() -> Optional[int]:
    value = os.getenv("STRIPE_WEBHOOK_TOLERANCE")
    return int(value) if value else None


def _checkout_session(event: Dict[str, Any]):
    """Session object and its metadata; raises on any non-object or non-string field"""
    data = event.get("data") or {}
    if not isinstance(data, dict):
        raise InvalidWebhookError("Malformed checkout session payload")
    session = data.get("object") or {}
    if not isinstance(session, dict):
        raise InvalidWebhookError("Malformed checkout session payload")

    metadata = session.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise InvalidWebhookError("Malformed checkout session metadata")

    fields = [session.get("id"), session.get("customer"), metadata.get("invoice_id"), metadata.get("company_id")]
    if any(value is not None and not isinstance(value, str) for value in fields):
        raise InvalidWebhookError("Malformed checkout session payload")
    return session, metadata


@app.post("/v1/webhooks/stripe")
async def stripe_webhook(request: Request):
    """
    Settle invoices on checkout.session.completed

    Other event types are acknowledged and ignored.
    """
    secret = os.getenv("STRIPE_WEBHOOK_SECRET")
    if not secret:
        logger.error("[WEBHOOK] STRIPE_WEBHOOK_SECRET not configured")
        raise ConfigurationError("Webhook secret not configured", status_code=500)

    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    if not signature:
        raise InvalidWebhookError("Missing Stripe signature")

    if not verify_signature(payload, signature, secret, tolerance=_webhook_tolerance()):
        logger.warning("[WEBHOOK] Invalid webhook signature")
        raise InvalidWebhookError("Invalid signature")

    try:
        event = json.loads(payload)
    except ValueError:
        raise InvalidWebhookError("Invalid JSON payload")
    if not isinstance(event, dict):
        raise InvalidWebhookError("Invalid JSON payload")

    event_type = event.get("type")
    if event_type != CHECKOUT_COMPLETED:
        logger.info("[WEBHOOK] Ignoring event type %s", event_type)
        return {"success": True, "ignored": True, "event_type": event_type}

    session, metadata = _checkout_session(event)
    invoice_id = metadata.get("invoice_id")
    if not invoice_id:
        logger.error("[WEBHOOK] No invoice ID found in session metadata")
        raise InvalidWebhookError("Invoice ID missing")

    result = await components.invoice_settler.settle(
        invoice_id=invoice_id,
        company_id=metadata.get("company_id"),
        customer_id=session.get("customer"),
        session_id=session.get("id"),
    )
    return result.model_dump(exclude_none=True)


# Tenant settings endpoints
@app.post("/v1/tenants", status_code=201)
async def create_tenant(request: TenantCreate):
    """Register a tenant; 409 if the id is taken. Spend always starts server-side."""
    created = await components.tenant_manager.create_tenant(request.to_tenant())
    return created.model_dump(mode="json")


@app.get("/v1/tenants/{tenant_id}/budget")
async def get_budget(tenant_id: str):
    """Current spend, limit and alert level"""
    check = await components.budget_guard.check(tenant_id, 0.0)
    return check.model_dump()


@app.put("/v1/tenants/{tenant_id}/budget")
async def update_budget(tenant_id: str, update: BudgetUpdate):
    tenant = await components.tenant_manager.update_budget(tenant_id, update)
    if tenant is None:
        return JSONResponse(status_code=404, content={"error": "Tenant not found"})
    return tenant.model_dump(mode="json")


@app.get("/v1/tenants/{tenant_id}/usage/summary")
async def usage_summary(
    tenant_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
):
    summary = await components.usage_recorder.get_usage_summary(tenant_id, start_date, end_date)
    return {
        "tenant_id": tenant_id,
        "services": [item.model_dump() for item in summary],
        "total_cost": sum(item.total_cost for item in summary),
    }


MEDIA_SERVICES = {
    "image": "Stability AI",
    "text_to_speech": "ElevenLabs",
    "transcription": "OpenAI",
    "video": "HeyGen",
}


@app.post("/v1/tenants/{tenant_id}/usage/media", status_code=201)
async def record_media_usage(tenant_id: str, request: MediaUsageRequest):
    """Price and record an image, speech, transcription or video call"""
    if request.kind == "image":
        estimate = image_generation_cost(int(request.quantity), request.resolution)
    elif request.kind == "text_to_speech":
        estimate = text_to_speech_cost(int(request.quantity))
    elif request.kind == "transcription":
        estimate = transcription_cost(request.quantity)
    else:
        estimate = video_generation_cost(request.quantity)

    record = await components.usage_recorder.record_estimate(
        tenant_id,
        request.service or MEDIA_SERVICES[request.kind],
        estimate,
        agent_id=request.agent_id,
    )
    if record is None:
        raise StorageUnavailableError("Usage could not be recorded")
    return record.model_dump(mode="json")


@app.put("/v1/tenants/{tenant_id}/credentials/{provider}")
async def store_credential(tenant_id: str, provider: str, body: Dict[str, Any]):
    """Save a provider key; the body is validated against that provider's schema"""
    try:
        credential = credential_adapter.validate_python({**body, "provider": provider})
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {provider} credential: {e.error_count()} error(s)")
    await components.credential_resolver.store_credential(tenant_id, credential)
    return {"success": True, "provider": provider}


@app.put("/v1/tenants/{tenant_id}/webhooks/{integration}")
async def update_webhook_config(
    tenant_id: str,
    integration: WebhookIntegration,
    config: OutboundWebhookConfig,
):
    saved = await components.webhook_manager.update_config(tenant_id, integration, config)
    return {"success": True, "integration": integration.value, "config": saved.model_dump(mode="json")}


@app.post("/v1/tenants/{tenant_id}/webhooks/{integration}/test")
async def test_webhook(tenant_id: str, integration: WebhookIntegration):
    response = await components.webhook_manager.test_webhook(tenant_id, integration)
    return response.model_dump(mode="json")


@app.post("/v1/tenants/{tenant_id}/events", status_code=202)
async def trigger_event(tenant_id: str, request: EventTriggerRequest):
    """Fan a domain event out to the tenant's integrations without waiting"""
    components.webhook_manager.trigger(tenant_id, request.event_type, request.payload)
    return {"accepted": True, "event_type": request.event_type.value}


# Invoice endpoints
@app.post("/v1/tenants/{tenant_id}/invoices", status_code=201)
async def create_invoice(tenant_id: str, request: InvoiceCreate):
    """Create an unpaid invoice for the tenant; 409 if the id is taken"""
    created = await components.invoice_manager.create_invoice(request.to_invoice(tenant_id))
    return created.model_dump(mode="json")


@app.get("/v1/tenants/{tenant_id}/invoices/{invoice_id}")
async def get_invoice(tenant_id: str, invoice_id: str):
    invoice = await components.invoice_manager.get_company_invoice(invoice_id, tenant_id)
    if invoice is None:
        raise InvoiceNotFoundError(invoice_id, tenant_id)
    return invoice.model_dump(mode="json")


@app.post("/v1/tenants/{tenant_id}/invoices/{invoice_id}/overdue")
async def mark_invoice_overdue(tenant_id: str, invoice_id: str):
    """Flag an unpaid invoice overdue and notify integrations"""
    if await components.invoice_manager.get_company_invoice(invoice_id, tenant_id) is None:
        raise InvoiceNotFoundError(invoice_id, tenant_id)
    invoice = await components.invoice_manager.mark_overdue(invoice_id)
    return invoice.model_dump(mode="json")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "jarvis_hq.gateway.main:app",
        host=os.getenv("GATEWAY_HOST", "0.0.0.0"),
        port=int(os.getenv("GATEWAY_PORT", "8000")),
        reload=True,
    )
