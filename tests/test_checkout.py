"""Tests for Stripe checkout session creation"""

from types import SimpleNamespace

import pytest
import stripe

from jarvis_hq.billing.checkout import CheckoutService, checkout_idempotency_key
from jarvis_hq.billing.invoices import InvoiceManager
from jarvis_hq.billing.settlement import InvoiceSettler
from jarvis_hq.errors import (
    ConfigurationError,
    InvoiceAlreadyPaidError,
    InvoiceNotFoundError,
    ProviderError,
)
from jarvis_hq.models.invoice import Invoice


@pytest.fixture
def stripe_calls(monkeypatch):
    calls = []

    def create(**params):
        calls.append(params)
        return SimpleNamespace(id="cs_test_123", url="https://checkout.stripe.test/cs_test_123")

    monkeypatch.setattr(stripe.checkout.Session, "create", create)
    return calls


async def open_session(service, invoice_id, company_id="acme", amount=120.5):
    return await service.create_session(
        customer_id="cus_1",
        invoice_id=invoice_id,
        company_id=company_id,
        amount=amount,
        description="Fence install",
        success_url="https://app.test/paid",
        cancel_url="https://app.test/cancel",
    )


@pytest.mark.asyncio
async def test_session_created_for_unpaid_invoice(store, stripe_calls):
    manager = InvoiceManager(store)
    invoice = await manager.create_invoice(Invoice(company_id="acme", amount=120.5))
    service = CheckoutService(manager, secret_key="sk_test")

    session = await open_session(service, invoice.id)

    assert session == {"sessionId": "cs_test_123", "url": "https://checkout.stripe.test/cs_test_123"}
    params = stripe_calls[0]
    assert params["api_key"] == "sk_test"
    assert params["mode"] == "payment"
    assert params["line_items"][0]["price_data"]["unit_amount"] == 12050
    assert params["metadata"] == {"invoice_id": invoice.id, "company_id": "acme"}
    assert params["idempotency_key"] == checkout_idempotency_key(invoice.id, 12050)


@pytest.mark.asyncio
async def test_paid_invoice_rejected(store, stripe_calls):
    manager = InvoiceManager(store)
    invoice = await manager.create_invoice(Invoice(company_id="acme", amount=50))
    await InvoiceSettler(store).settle(invoice.id)

    with pytest.raises(InvoiceAlreadyPaidError) as exc_info:
        await open_session(CheckoutService(manager, secret_key="sk_test"), invoice.id)

    assert exc_info.value.status_code == 400
    assert stripe_calls == []


@pytest.mark.asyncio
async def test_other_company_invoice_not_found(store, stripe_calls):
    manager = InvoiceManager(store)
    invoice = await manager.create_invoice(Invoice(company_id="acme", amount=50))

    with pytest.raises(InvoiceNotFoundError) as exc_info:
        await open_session(CheckoutService(manager, secret_key="sk_test"), invoice.id, company_id="globex")

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_missing_secret_key(store, monkeypatch):
    monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)

    with pytest.raises(ConfigurationError) as exc_info:
        await open_session(CheckoutService(InvoiceManager(store)), "inv-1")

    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_stripe_error_wrapped(store, monkeypatch):
    def create(**params):
        raise stripe.StripeError("card network down")

    monkeypatch.setattr(stripe.checkout.Session, "create", create)
    manager = InvoiceManager(store)
    invoice = await manager.create_invoice(Invoice(company_id="acme", amount=50))

    with pytest.raises(ProviderError) as exc_info:
        await open_session(CheckoutService(manager, secret_key="sk_test"), invoice.id)

    assert "card network down" in exc_info.value.message


def test_idempotency_key_stable():
    assert checkout_idempotency_key("inv-1", 100) == checkout_idempotency_key("inv-1", 100)
    assert checkout_idempotency_key("inv-1", 100) != checkout_idempotency_key("inv-1", 200)
