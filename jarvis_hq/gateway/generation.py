"""
Generation pipeline

credentials -> cost estimate -> budget guard -> provider call -> usage
record, in that order: the budget is checked before anything is spent and
spend is recorded only for calls that actually ran.
"""

import logging
import time
from typing import Optional

from jarvis_hq.billing.budget import BudgetGuard
from jarvis_hq.billing.cost import (
    approximate_tokens,
    estimate_cost,
    preflight_output_tokens,
)
from jarvis_hq.billing.usage import UsageRecorder
from jarvis_hq.errors import BudgetExceededError, MissingCredentialError, OllamaUnavailableError
from jarvis_hq.gateway.models import GenerateRequest, GenerateResponse, UsageInfo, BudgetStatus
from jarvis_hq.models.usage import AgentRun
from jarvis_hq.observability.tracer import LangFuseTracer
from jarvis_hq.providers.invoker import ProviderInvoker
from jarvis_hq.tenancy.credentials import CredentialResolver

logger = logging.getLogger(__name__)

SERVICE_NAMES = {
    "openai": "OPENAI",
    "claude": "CLAUDE",
    "gemini": "GEMINI",
    "ollama": "Ollama",
}


class GenerationService:
    """Budget-checked, usage-recorded generation for one tenant request"""

    def __init__(
        self,
        credential_resolver: CredentialResolver,
        budget_guard: BudgetGuard,
        invoker: ProviderInvoker,
        usage_recorder: UsageRecorder,
        tracer: Optional[LangFuseTracer] = None,
    ):
        self.credential_resolver = credential_resolver
        self.budget_guard = budget_guard
        self.invoker = invoker
        self.usage_recorder = usage_recorder
        self.tracer = tracer or LangFuseTracer()

    async def generate(self, request: GenerateRequest) -> GenerateResponse:
        """
        Raises:
            MissingCredentialError: SaaS provider with no key (400)
            BudgetExceededError: estimate would exceed the monthly limit (400)
            OllamaUnavailableError: self-hosted chain exhausted (503)
            ProviderError: provider call failed (500)
        """
        start_time = time.time()
        provider = request.provider
        tenant_id = request.tenant_id

        credential = await self.credential_resolver.resolve(tenant_id, provider)
        if provider != "ollama" and credential is None:
            raise MissingCredentialError(provider)

        estimated_input = approximate_tokens(request.system_prompt) + approximate_tokens(request.input)
        estimate = estimate_cost(
            provider,
            request.model,
            estimated_input,
            preflight_output_tokens(provider),
        )

        trace = self.tracer.start_trace(tenant_id, provider, {"agent_id": request.agent_id})

        budget = await self.budget_guard.check(tenant_id, estimate.cost)
        if not budget.can_proceed:
            self.tracer.trace_event(trace, "budget_exceeded", {
                "current_spend": budget.current_spend,
                "budget_limit": budget.budget_limit,
                "estimated_cost": estimate.cost,
            })
            raise BudgetExceededError(budget.current_spend, budget.budget_limit, estimate.cost)

        try:
            result = await self.invoker.generate(
                provider,
                credential,
                request.input,
                model=request.model,
                system_prompt=request.system_prompt,
            )
        except OllamaUnavailableError as e:
            self.tracer.trace_event(trace, "ollama_unavailable", {"tried": e.tried})
            raise
        except Exception as e:
            self.tracer.trace_error(trace, str(e), provider, request.model or "default")
            raise

        actual = estimate_cost(provider, result.model, result.input_tokens, result.output_tokens)
        latency_ms = (time.time() - start_time) * 1000

        await self.usage_recorder.record(
            tenant_id=tenant_id,
            service=SERVICE_NAMES.get(provider, provider.upper()),
            description=f"AI generation: {request.model or 'default model'}",
            cost=actual.cost,
            tokens_used=result.total_tokens,
            agent_id=request.agent_id,
            agent_name=request.agent_name,
            metadata={
                "provider": provider,
                "model": result.model,
                "input_tokens": result.input_tokens,
                "output_tokens": result.output_tokens,
                "usage_reported": result.usage_reported,
            },
        )

        if request.agent_id:
            await self.usage_recorder.record_agent_run(AgentRun(
                agent_id=request.agent_id,
                tenant_id=tenant_id,
                input=request.input,
                output=result.content,
                tokens_used=result.total_tokens,
                cost=actual.cost,
                metadata={"provider": provider, "model": result.model},
            ))

        self.tracer.trace_generation(
            trace,
            provider=provider,
            model=result.model,
            user_input=request.input,
            output=result.content,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            cost=actual.cost,
            latency_ms=latency_ms,
        )

        return GenerateResponse(
            content=result.content,
            usage=UsageInfo(
                tokens_used=result.total_tokens,
                cost=actual.cost,
                provider=provider,
            ),
            budget_status=BudgetStatus(
                current_spend=budget.current_spend,
                budget_limit=budget.budget_limit,
                percentage_used=budget.percentage_used,
            ),
        )
