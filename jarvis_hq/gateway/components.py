"""Shared component instances for the gateway and dashboard routes"""

from jarvis_hq.async_processing.dispatcher import TaskDispatcher
from jarvis_hq.billing.budget import BudgetGuard
from jarvis_hq.billing.checkout import CheckoutService
from jarvis_hq.billing.invoices import InvoiceManager
from jarvis_hq.billing.settlement import InvoiceSettler
from jarvis_hq.billing.usage import UsageRecorder
from jarvis_hq.gateway.generation import GenerationService
from jarvis_hq.observability.tracer import LangFuseTracer
from jarvis_hq.providers.invoker import ProviderInvoker
from jarvis_hq.storage.redis_client import RedisStore
from jarvis_hq.tenancy.credentials import CredentialResolver
from jarvis_hq.tenancy.tenant_manager import TenantManager
from jarvis_hq.webhooks.webhook_manager import WebhookManager

store = RedisStore()
dispatcher = TaskDispatcher()
tracer = LangFuseTracer()

tenant_manager = TenantManager(store)
credential_resolver = CredentialResolver(store)
budget_guard = BudgetGuard(tenant_manager)
usage_recorder = UsageRecorder(store, tenant_manager)
webhook_manager = WebhookManager(store, usage_recorder, dispatcher)
invoice_manager = InvoiceManager(store, webhook_manager)
invoice_settler = InvoiceSettler(store, tenant_manager)
checkout_service = CheckoutService(invoice_manager)
invoker = ProviderInvoker()

generation_service = GenerationService(
    credential_resolver,
    budget_guard,
    invoker,
    usage_recorder,
    tracer,
)
