"""Invoice storage"""

import logging
from datetime import date
from typing import Optional, List

from redis.exceptions import WatchError

from jarvis_hq.errors import InvoiceExistsError
from jarvis_hq.models.invoice import Invoice, InvoiceStatus, Transaction
from jarvis_hq.models.webhook import InvoiceCreatedPayload, InvoiceOverduePayload
from jarvis_hq.storage.redis_client import (
    RedisStore,
    invoice_key,
    tenant_invoices_key,
    transaction_key,
    to_hash,
)
from jarvis_hq.webhooks.webhook_manager import WebhookManager

logger = logging.getLogger(__name__)


class InvoiceManager:
    """Create and read invoices; notifies integrations on lifecycle events"""

    def __init__(self, store: RedisStore, webhook_manager: Optional[WebhookManager] = None):
        self.store = store
        self.webhook_manager = webhook_manager

    async def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        client = self.store.require_client()
        data = await client.hgetall(invoice_key(invoice_id))
        if not data:
            return None
        return Invoice.model_validate(data)

    async def get_company_invoice(self, invoice_id: str, company_id: str) -> Optional[Invoice]:
        """Invoice only if it belongs to `company_id`"""
        invoice = await self.get_invoice(invoice_id)
        if invoice is None or invoice.company_id != company_id:
            return None
        return invoice

    async def list_invoices(
        self,
        company_id: str,
        status: Optional[InvoiceStatus] = None,
    ) -> List[Invoice]:
        client = self.store.require_client()
        invoice_ids = await client.smembers(tenant_invoices_key(company_id))

        invoices = []
        for invoice_id in invoice_ids:
            invoice = await self.get_invoice(invoice_id)
            if invoice and (status is None or invoice.status == status):
                invoices.append(invoice)

        invoices.sort(key=lambda i: i.created_at)
        return invoices

    async def create_invoice(self, invoice: Invoice) -> Invoice:
        """
        Store a new unpaid invoice

        Payment fields are cleared and a paid status falls back to draft;
        only settlement marks an invoice paid.

        Raises:
            InvoiceExistsError: the id is already taken
        """
        if invoice.is_paid or invoice.paid_date or invoice.transaction_id:
            logger.warning("[INVOICE] Dropping payment fields on new invoice %s", invoice.id)
            invoice = invoice.model_copy(update={
                "status": InvoiceStatus.DRAFT if invoice.is_paid else invoice.status,
                "paid_date": None,
                "transaction_id": None,
            })

        client = self.store.require_client()
        key = invoice_key(invoice.id)
        async with client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    if await pipe.exists(key):
                        await pipe.unwatch()
                        raise InvoiceExistsError(invoice.id)

                    pipe.multi()
                    pipe.hset(key, mapping=to_hash(invoice))
                    pipe.sadd(tenant_invoices_key(invoice.company_id), invoice.id)
                    await pipe.execute()
                    break
                except WatchError:
                    continue

        if self.webhook_manager:
            self.webhook_manager.trigger_invoice_created(
                invoice.company_id,
                InvoiceCreatedPayload(
                    invoice_id=invoice.id,
                    client_id=invoice.client_id,
                    client_name=invoice.client_name,
                    amount=invoice.amount,
                    currency=invoice.currency,
                    due_date=invoice.due_date.isoformat() if invoice.due_date else None,
                    status=invoice.status.value,
                    created_at=invoice.created_at,
                ),
            )
        return invoice

    async def mark_overdue(self, invoice_id: str, today: Optional[date] = None) -> Optional[Invoice]:
        """Flag an unpaid invoice as overdue; paid invoices are left alone"""
        invoice = await self.get_invoice(invoice_id)
        if invoice is None or invoice.is_paid:
            return invoice

        client = self.store.require_client()
        await client.hset(invoice_key(invoice_id), "status", InvoiceStatus.OVERDUE.value)
        invoice.status = InvoiceStatus.OVERDUE

        today = today or date.today()
        days_overdue = (today - invoice.due_date).days if invoice.due_date else 0

        if self.webhook_manager:
            self.webhook_manager.trigger_invoice_overdue(
                invoice.company_id,
                InvoiceOverduePayload(
                    invoice_id=invoice.id,
                    client_id=invoice.client_id,
                    client_name=invoice.client_name,
                    amount=invoice.amount,
                    currency=invoice.currency,
                    due_date=invoice.due_date.isoformat() if invoice.due_date else None,
                    days_overdue=max(days_overdue, 0),
                ),
            )
        return invoice

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        client = self.store.require_client()
        data = await client.hgetall(transaction_key(transaction_id))
        if not data:
            return None
        return Transaction.model_validate(data)
