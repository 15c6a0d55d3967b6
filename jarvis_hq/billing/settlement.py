"""
Invoice Settler - mark invoices paid on a verified checkout event

unpaid -> paid is applied at most once per invoice. The invoice update,
the transaction record and the processed-session marker are written in a
single WATCH/MULTI transaction; a duplicate or concurrent delivery sees
the invoice already paid and returns the existing transaction. A session
id that already settled one invoice is refused for any other.
"""

import json
import logging
from datetime import date, datetime
from typing import Optional

from redis.exceptions import WatchError

from jarvis_hq.errors import InvoiceNotFoundError, SessionConflictError
from jarvis_hq.models.invoice import Invoice, InvoiceStatus, Transaction, SettlementResult
from jarvis_hq.storage.redis_client import (
    RedisStore,
    activity_log_key,
    invoice_key,
    settlement_session_key,
    transaction_key,
    to_hash,
)
from jarvis_hq.tenancy.tenant_manager import TenantManager

logger = logging.getLogger(__name__)


class InvoiceSettler:
    """Apply a settlement event to an invoice exactly once"""

    def __init__(self, store: RedisStore, tenant_manager: Optional[TenantManager] = None):
        self.store = store
        self.tenant_manager = tenant_manager

    async def settle(
        self,
        invoice_id: str,
        company_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        session_id: Optional[str] = None,
        payment_method: str = "stripe",
        paid_on: Optional[date] = None,
    ) -> SettlementResult:
        """
        Mark `invoice_id` paid and record its transaction

        Raises:
            InvoiceNotFoundError: unknown invoice, or it belongs to another company
            SessionConflictError: `session_id` already settled a different invoice
        """
        client = self.store.require_client()
        key = invoice_key(invoice_id)
        watched = [key]
        if session_id:
            watched.append(settlement_session_key(session_id))

        async with client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(*watched)

                    data = await pipe.hgetall(key)
                    if not data:
                        raise InvoiceNotFoundError(invoice_id, company_id)
                    invoice = Invoice.model_validate(data)
                    if company_id and invoice.company_id != company_id:
                        raise InvoiceNotFoundError(invoice_id, company_id)

                    if session_id:
                        settled_for = await pipe.get(settlement_session_key(session_id))
                        if settled_for and settled_for != invoice_id:
                            await pipe.unwatch()
                            logger.warning(
                                "[SETTLEMENT] Session %s already settled invoice %s, rejecting for %s",
                                session_id, settled_for, invoice_id,
                            )
                            raise SessionConflictError(session_id, invoice_id)

                    if invoice.is_paid:
                        await pipe.unwatch()
                        logger.info("[SETTLEMENT] Invoice %s already paid, ignoring duplicate", invoice_id)
                        return SettlementResult(
                            invoice_id=invoice_id,
                            transaction_id=invoice.transaction_id,
                            company_id=invoice.company_id,
                            stripe_customer_id=customer_id,
                            already_paid=True,
                        )

                    transaction = Transaction(
                        invoice_id=invoice_id,
                        company_id=invoice.company_id,
                        amount=invoice.amount,
                        payment_method=payment_method,
                        stripe_session_id=session_id,
                    )
                    paid_date = (paid_on or date.today()).isoformat()

                    pipe.multi()
                    pipe.hset(key, mapping={
                        "status": InvoiceStatus.PAID.value,
                        "paid_date": paid_date,
                        "transaction_id": transaction.id,
                    })
                    pipe.hset(transaction_key(transaction.id), mapping=to_hash(transaction))
                    if session_id:
                        pipe.set(settlement_session_key(session_id), invoice_id)
                    await pipe.execute()
                    break
                except WatchError:
                    logger.info("[SETTLEMENT] Invoice %s changed during settlement, retrying", invoice_id)
                    continue

        logger.info("[SETTLEMENT] Invoice %s marked as paid, transaction %s", invoice_id, transaction.id)

        await self._store_customer_id(invoice.company_id, customer_id)
        await self._log_activity(invoice, transaction, customer_id)

        return SettlementResult(
            invoice_id=invoice_id,
            transaction_id=transaction.id,
            company_id=invoice.company_id,
            stripe_customer_id=customer_id,
        )

    async def _store_customer_id(self, company_id: str, customer_id: Optional[str]):
        if not customer_id or not self.tenant_manager:
            return
        try:
            await self.tenant_manager.set_stripe_customer_id(company_id, customer_id)
        except Exception as e:
            logger.error("[SETTLEMENT] Error updating stripe_customer_id for %s: %s", company_id, e)

    async def _log_activity(self, invoice: Invoice, transaction: Transaction, customer_id: Optional[str]):
        entry = {
            "action": "payment_processed",
            "company_id": invoice.company_id,
            "created_by": None,
            "created_at": datetime.now().isoformat(),
            "details": {
                "invoice_id": invoice.id,
                "transaction_id": transaction.id,
                "amount": invoice.amount,
                "stripe_session_id": transaction.stripe_session_id,
                "customer_id": customer_id,
            },
        }
        try:
            await self.store.require_client().rpush(
                activity_log_key(invoice.company_id), json.dumps(entry)
            )
        except Exception as e:
            logger.error("[SETTLEMENT] Error logging activity for invoice %s: %s", invoice.id, e)
