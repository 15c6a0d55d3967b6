"""Stripe checkout sessions for invoice payment"""

import asyncio
import functools
import hashlib
import logging
import os
from typing import Optional, Dict, Any

import stripe

from jarvis_hq.billing.invoices import InvoiceManager
from jarvis_hq.errors import (
    ConfigurationError,
    InvoiceAlreadyPaidError,
    InvoiceNotFoundError,
    ProviderError,
)

logger = logging.getLogger(__name__)


def checkout_idempotency_key(invoice_id: str, amount_cents: int) -> str:
    """Same invoice and amount produce the same key, so retries reuse the session"""
    digest = hashlib.sha256(f"checkout:{invoice_id}:{amount_cents}".encode()).hexdigest()
    return f"checkout_{digest[:32]}"


class CheckoutService:
    """Validate an invoice and open a Stripe checkout session for it"""

    def __init__(self, invoice_manager: InvoiceManager, secret_key: Optional[str] = None):
        self.invoice_manager = invoice_manager
        self.secret_key = secret_key
        self.currency = os.getenv("STRIPE_CURRENCY", "usd")

    def _secret_key(self) -> str:
        secret_key = self.secret_key or os.getenv("STRIPE_SECRET_KEY")
        if not secret_key:
            logger.error("[CHECKOUT] STRIPE_SECRET_KEY not configured")
            raise ConfigurationError("Stripe secret key not configured", status_code=500)
        return secret_key

    async def create_session(
        self,
        customer_id: str,
        invoice_id: str,
        company_id: str,
        amount: float,
        description: str,
        success_url: str,
        cancel_url: str,
    ) -> Dict[str, Any]:
        """
        Create a checkout session for an unpaid invoice

        Returns:
            {"sessionId": ..., "url": ...}

        Raises:
            InvoiceNotFoundError: invoice missing or owned by another company
            InvoiceAlreadyPaidError: invoice already settled
        """
        secret_key = self._secret_key()

        invoice = await self.invoice_manager.get_company_invoice(invoice_id, company_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id, company_id)
        if invoice.is_paid:
            raise InvoiceAlreadyPaidError(invoice_id)

        amount_cents = int(round(amount * 100))
        params = {
            "api_key": secret_key,
            "customer": customer_id,
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": self.currency,
                        "product_data": {
                            "name": description or f"Invoice {invoice_id}",
                            "description": f"Invoice #{invoice_id}",
                        },
                        "unit_amount": amount_cents,
                    },
                    "quantity": 1,
                }
            ],
            "mode": "payment",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": {
                "invoice_id": invoice_id,
                "company_id": company_id,
            },
            "idempotency_key": checkout_idempotency_key(invoice_id, amount_cents),
        }

        # The Stripe SDK call is blocking, run it off the event loop
        loop = asyncio.get_running_loop()
        try:
            session = await loop.run_in_executor(
                None,
                functools.partial(stripe.checkout.Session.create, **params),
            )
        except stripe.StripeError as e:
            logger.error("[CHECKOUT] Stripe error creating session for invoice %s: %s", invoice_id, e)
            raise ProviderError(f"Payment provider error: {e.user_message or str(e)}") from e

        logger.info("[CHECKOUT] Created session %s for invoice %s", session.id, invoice_id)
        return {"sessionId": session.id, "url": session.url}
