"""Outbound integration webhooks (Zapier, Tasker)"""

import asyncio
import logging
import os
from typing import Optional, Dict, Any, List, Union

import httpx
from pydantic import BaseModel, ValidationError

from jarvis_hq.async_processing.dispatcher import TaskDispatcher
from jarvis_hq.billing.usage import UsageRecorder
from jarvis_hq.models.webhook import (
    HookEventType,
    HookResponse,
    OutboundWebhookConfig,
    WebhookIntegration,
    WebhookPayload,
    ClientCreatedPayload,
    InvoiceCreatedPayload,
    InvoiceOverduePayload,
    JobCreatedPayload,
    JobCompletedPayload,
    DocumentUploadedPayload,
    MediaGeneratedPayload,
)
from jarvis_hq.storage.redis_client import RedisStore, webhook_config_key

logger = logging.getLogger(__name__)

EventPayload = Union[BaseModel, Dict[str, Any]]


class WebhookManager:
    """
    Deliver domain events to each tenant's enabled integrations

    Delivery is best-effort per target: a failing endpoint is logged and
    reported in its own HookResponse, never raised to the caller.
    """

    SOURCE = "jarvis_hq"

    def __init__(
        self,
        store: RedisStore,
        usage_recorder: Optional[UsageRecorder] = None,
        dispatcher: Optional[TaskDispatcher] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.usage_recorder = usage_recorder
        self.dispatcher = dispatcher or TaskDispatcher()
        self.transport = transport
        self.timeout = float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", "10"))

    def _env_config(self, integration: WebhookIntegration) -> OutboundWebhookConfig:
        prefix = integration.value.upper()
        url = os.getenv(f"{prefix}_WEBHOOK_URL") or None
        return OutboundWebhookConfig(
            enabled=bool(url),
            webhook_url=url,
            api_key=os.getenv(f"{prefix}_API_KEY") or None,
        )

    async def get_config(
        self,
        tenant_id: str,
        integration: WebhookIntegration,
    ) -> OutboundWebhookConfig:
        """Stored tenant config, falling back to environment defaults"""
        if self.store.client:
            try:
                raw = await self.store.client.get(webhook_config_key(tenant_id, integration.value))
                if raw:
                    return OutboundWebhookConfig.model_validate_json(raw)
            except ValidationError as e:
                logger.error("[WEBHOOK] Invalid %s config for %s: %s", integration.value, tenant_id, e)
            except Exception as e:
                logger.warning("[WEBHOOK] Error fetching %s config for %s: %s", integration.value, tenant_id, e)

        return self._env_config(integration)

    async def get_configs(self, tenant_id: str) -> Dict[WebhookIntegration, OutboundWebhookConfig]:
        return {
            integration: await self.get_config(tenant_id, integration)
            for integration in WebhookIntegration
        }

    async def update_config(
        self,
        tenant_id: str,
        integration: WebhookIntegration,
        config: OutboundWebhookConfig,
    ) -> OutboundWebhookConfig:
        client = self.store.require_client()
        await client.set(webhook_config_key(tenant_id, integration.value), config.model_dump_json())
        return config

    async def deliver(
        self,
        tenant_id: str,
        integration: WebhookIntegration,
        config: OutboundWebhookConfig,
        event_type: HookEventType,
        payload: Dict[str, Any],
    ) -> HookResponse:
        """POST one event to one integration"""
        if not config.deliverable:
            return HookResponse(
                integration=integration,
                success=False,
                message=f"{integration.value} webhook not configured",
                error="Webhook URL not set",
            )

        body = WebhookPayload(event_type=event_type, source=self.SOURCE, payload=payload)
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    config.webhook_url,
                    content=body.model_dump_json(),
                    headers=headers,
                )
                response.raise_for_status()
        except Exception as e:
            logger.error("[WEBHOOK] Error sending %s event to %s: %s", event_type.value, integration.value, e)
            return HookResponse(
                integration=integration,
                success=False,
                message=f"Failed to send event to {integration.value}",
                error=str(e),
            )

        try:
            webhook_id = response.json().get("id")
        except (ValueError, AttributeError):
            webhook_id = None

        if self.usage_recorder:
            # Free, but tracked for monitoring
            await self.usage_recorder.record(
                tenant_id=tenant_id,
                service="Webhook",
                description=f"{integration.value.capitalize()} webhook: {event_type.value}",
                cost=0.0,
                metadata={
                    "event_type": event_type.value,
                    "service": integration.value,
                    "webhook_url": config.webhook_url,
                },
            )

        return HookResponse(
            integration=integration,
            success=True,
            message=f"Event sent to {integration.value} successfully",
            webhook_id=webhook_id or f"{integration.value}-{int(body.timestamp.timestamp() * 1000)}",
        )

    async def send_event(
        self,
        tenant_id: str,
        event_type: HookEventType,
        payload: EventPayload,
    ) -> List[HookResponse]:
        """Deliver to every enabled integration subscribed to `event_type`"""
        data = payload.model_dump(mode="json") if isinstance(payload, BaseModel) else payload
        configs = await self.get_configs(tenant_id)

        targets = [
            (integration, config)
            for integration, config in configs.items()
            if config.deliverable and config.subscribes_to(event_type)
        ]
        if not targets:
            logger.debug("[WEBHOOK] No integrations subscribed to %s for %s", event_type.value, tenant_id)
            return []

        # Targets run side by side so a slow endpoint does not hold up the others
        return list(await asyncio.gather(*[
            self.deliver(tenant_id, integration, config, event_type, data)
            for integration, config in targets
        ]))

    def trigger(
        self,
        tenant_id: str,
        event_type: HookEventType,
        payload: EventPayload,
    ) -> asyncio.Task:
        """Fire-and-forget: schedule delivery and return immediately"""
        logger.info("[WEBHOOK] Triggering %s hooks for %s", event_type.value, tenant_id)
        return self.dispatcher.submit(
            self.send_event(tenant_id, event_type, payload),
            name=f"webhook:{tenant_id}:{event_type.value}",
        )

    def trigger_client_created(self, tenant_id: str, payload: ClientCreatedPayload) -> asyncio.Task:
        return self.trigger(tenant_id, HookEventType.CLIENT_CREATED, payload)

    def trigger_invoice_created(self, tenant_id: str, payload: InvoiceCreatedPayload) -> asyncio.Task:
        return self.trigger(tenant_id, HookEventType.INVOICE_CREATED, payload)

    def trigger_invoice_overdue(self, tenant_id: str, payload: InvoiceOverduePayload) -> asyncio.Task:
        return self.trigger(tenant_id, HookEventType.INVOICE_OVERDUE, payload)

    def trigger_job_created(self, tenant_id: str, payload: JobCreatedPayload) -> asyncio.Task:
        return self.trigger(tenant_id, HookEventType.JOB_CREATED, payload)

    def trigger_job_completed(self, tenant_id: str, payload: JobCompletedPayload) -> asyncio.Task:
        return self.trigger(tenant_id, HookEventType.JOB_COMPLETED, payload)

    def trigger_document_uploaded(self, tenant_id: str, payload: DocumentUploadedPayload) -> asyncio.Task:
        return self.trigger(tenant_id, HookEventType.DOCUMENT_UPLOADED, payload)

    def trigger_media_generated(self, tenant_id: str, payload: MediaGeneratedPayload) -> asyncio.Task:
        return self.trigger(tenant_id, HookEventType.MEDIA_GENERATED, payload)

    async def test_webhook(self, tenant_id: str, integration: WebhookIntegration) -> HookResponse:
        """Send a test event to one integration, bypassing subscriptions"""
        config = await self.get_config(tenant_id, integration)
        payload = {"test": True, "message": "Test webhook from Jarvis HQ"}
        return await self.deliver(tenant_id, integration, config, HookEventType.CLIENT_CREATED, payload)
