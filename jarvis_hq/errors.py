"""
Error taxonomy for the Jarvis HQ gateway

Every error carries the HTTP status it maps to and a JSON body, so the
gateway can translate it with a single exception handler:

- Configuration errors: missing credentials, URLs or secrets
- Availability errors: self-hosted provider offline, storage unreachable
- Policy errors: budget exceeded, invoice already paid, invoice not found
- Conflict errors: tenant or invoice id already taken, checkout session
  already used for another invoice
- Integrity errors: inbound webhook signature or payload rejected
- Provider errors: unexpected failures from an upstream API
"""

from typing import Any, Dict, Optional


class JarvisHQError(Exception):
    """Base error with an HTTP status and a JSON-serialisable body"""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, status_code: Optional[int] = None, **details: Any):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.message, "code": self.error_code}
        body.update(self.details)
        return body


class ConfigurationError(JarvisHQError):
    status_code = 400
    error_code = "configuration_error"


class MissingCredentialError(ConfigurationError):
    error_code = "missing_credentials"

    def __init__(self, provider: str):
        super().__init__(
            f"No API key found for provider {provider}. "
            "Add a provider key in settings or set the environment default.",
            provider=provider,
        )


class AvailabilityError(JarvisHQError):
    status_code = 503
    error_code = "unavailable"


class StorageUnavailableError(AvailabilityError):
    error_code = "storage_unavailable"


class BudgetUnavailableError(AvailabilityError):
    error_code = "budget_unavailable"


class OllamaUnavailableError(AvailabilityError):
    """Neither the remote nor the local self-hosted endpoint answered"""

    error_code = "OLLAMA_UNAVAILABLE"

    def __init__(self, tried: Optional[list] = None):
        super().__init__(
            "Ollama service is not available. Please start your GPU pod "
            "or ensure Ollama is running locally.",
        )
        self.tried = tried or []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "OLLAMA_UNAVAILABLE",
            "status": "gpu_offline",
            "message": self.message,
        }


class PolicyError(JarvisHQError):
    status_code = 400
    error_code = "policy_violation"


class BudgetExceededError(PolicyError):
    error_code = "budget_exceeded"

    def __init__(self, current_spend: float, budget_limit: float, estimated_cost: float = 0.0):
        super().__init__(
            f"Budget exceeded. Current spend: ${current_spend:.2f}, Limit: ${budget_limit:.2f}",
            current_spend=current_spend,
            budget_limit=budget_limit,
            estimated_cost=estimated_cost,
        )
        self.current_spend = current_spend
        self.budget_limit = budget_limit


class InvoiceNotFoundError(PolicyError):
    status_code = 404
    error_code = "invoice_not_found"

    def __init__(self, invoice_id: str, company_id: Optional[str] = None):
        message = "Invoice not found"
        if company_id:
            message = "Invoice not found or does not belong to company"
        super().__init__(message, invoice_id=invoice_id)


class InvoiceAlreadyPaidError(PolicyError):
    error_code = "invoice_already_paid"

    def __init__(self, invoice_id: str):
        super().__init__("Invoice is already paid", invoice_id=invoice_id)


class ConflictError(PolicyError):
    status_code = 409
    error_code = "conflict"


class TenantExistsError(ConflictError):
    error_code = "tenant_exists"

    def __init__(self, tenant_id: str):
        super().__init__("Tenant already exists", tenant_id=tenant_id)


class InvoiceExistsError(ConflictError):
    error_code = "invoice_exists"

    def __init__(self, invoice_id: str):
        super().__init__("Invoice already exists", invoice_id=invoice_id)


class SessionConflictError(ConflictError):
    """A checkout session id already settled a different invoice"""

    error_code = "session_conflict"

    def __init__(self, session_id: str, invoice_id: str):
        super().__init__(
            "Checkout session already settled another invoice",
            session_id=session_id,
            invoice_id=invoice_id,
        )


class InvalidWebhookError(JarvisHQError):
    status_code = 400
    error_code = "invalid_webhook"


class ProviderError(JarvisHQError):
    status_code = 500
    error_code = "provider_error"
