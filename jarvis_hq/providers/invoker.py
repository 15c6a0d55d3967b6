"""
Provider Invoker - metered generation calls

SaaS providers (OpenAI, Claude, Gemini) are called through LiteLLM with
the tenant's resolved key. The self-hosted Ollama provider is tried on the
configured remote URL first and on the local daemon second; each is
health-checked before any generation request is sent to it.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Optional, List

import httpx
import litellm

from jarvis_hq.billing.cost import approximate_tokens
from jarvis_hq.errors import OllamaUnavailableError, ProviderError, MissingCredentialError
from jarvis_hq.models.credentials import ProviderCredential, OllamaCredential

logger = logging.getLogger(__name__)

LOCAL_OLLAMA_URL = "http://127.0.0.1:11434"

DEFAULT_MODELS = {
    "openai": "gpt-4",
    "claude": "claude-3-5-sonnet-20240620",
    "gemini": "gemini-pro",
    "ollama": "llama3.1:8b",
}

# LiteLLM routes on a provider prefix in the model name
LITELLM_PREFIX = {
    "openai": "",
    "claude": "anthropic/",
    "gemini": "gemini/",
}

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."


@dataclass
class GenerationResult:
    """Generated content plus the usage the provider reported"""
    content: str
    provider: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    usage_reported: bool = True
    base_url: Optional[str] = None
    tried_urls: List[str] = field(default_factory=list)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class ProviderInvoker:
    """Perform one generation call against the resolved provider"""

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        local_url: Optional[str] = None,
    ):
        self.transport = transport
        self.local_url = local_url or os.getenv("OLLAMA_LOCAL_URL", LOCAL_OLLAMA_URL)
        self.health_timeout = float(os.getenv("OLLAMA_HEALTH_TIMEOUT_SECONDS", "3"))
        self.generate_timeout = float(os.getenv("OLLAMA_TIMEOUT_SECONDS", "120"))
        self.max_tokens = int(os.getenv("GENERATION_MAX_TOKENS", "2000"))
        self.temperature = float(os.getenv("GENERATION_TEMPERATURE", "0.7"))

    async def check_ollama(self, url: str) -> bool:
        """Liveness probe against /api/tags, bounded by the health timeout"""
        try:
            async with httpx.AsyncClient(timeout=self.health_timeout, transport=self.transport) as client:
                response = await asyncio.wait_for(
                    client.get(f"{url.rstrip('/')}/api/tags"),
                    timeout=self.health_timeout,
                )
            return response.is_success
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            logger.warning("[OLLAMA] Health check failed for %s: %s", url, e)
            return False

    async def resolve_ollama_url(self, remote_url: Optional[str]) -> str:
        """
        First healthy endpoint: remote, then local

        Raises:
            OllamaUnavailableError: neither endpoint passed its health check
        """
        tried = []
        candidates = [url for url in (remote_url, self.local_url) if url]

        for url in candidates:
            tried.append(url)
            if await self.check_ollama(url):
                return url
            if url == remote_url:
                logger.info("[OLLAMA] Remote Ollama (%s) not available, trying local fallback", url)

        raise OllamaUnavailableError(tried=tried)

    async def call_ollama(
        self,
        base_url: str,
        model: str,
        system_prompt: str,
        user_input: str,
    ) -> GenerationResult:
        async with httpx.AsyncClient(timeout=self.generate_timeout, transport=self.transport) as client:
            response = await client.post(
                f"{base_url.rstrip('/')}/api/generate",
                json={
                    "model": model,
                    "prompt": f"{system_prompt}\n\n{user_input}",
                    "stream": False,
                },
            )
            response.raise_for_status()
            data = response.json()

        content = data.get("response") or ""
        input_tokens = data.get("prompt_eval_count")
        output_tokens = data.get("eval_count")
        reported = input_tokens is not None and output_tokens is not None

        if not reported:
            input_tokens = approximate_tokens(system_prompt) + approximate_tokens(user_input)
            output_tokens = approximate_tokens(content)

        return GenerationResult(
            content=content,
            provider="ollama",
            model=model,
            input_tokens=int(input_tokens),
            output_tokens=int(output_tokens),
            usage_reported=reported,
            base_url=base_url,
        )

    async def call_saas(
        self,
        provider: str,
        api_key: str,
        model: str,
        system_prompt: str,
        user_input: str,
    ) -> GenerationResult:
        response = await litellm.acompletion(
            model=f"{LITELLM_PREFIX.get(provider, '')}{model}",
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_input},
            ],
            api_key=api_key,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

        choices = getattr(response, "choices", None) or []
        content = ""
        if choices:
            message = getattr(choices[0], "message", None)
            content = getattr(message, "content", None) or ""

        usage = getattr(response, "usage", None)
        input_tokens = getattr(usage, "prompt_tokens", None) if usage else None
        output_tokens = getattr(usage, "completion_tokens", None) if usage else None
        reported = bool(input_tokens or output_tokens)

        if not reported:
            input_tokens = approximate_tokens(system_prompt) + approximate_tokens(user_input)
            output_tokens = approximate_tokens(content)

        return GenerationResult(
            content=content,
            provider=provider,
            model=model,
            input_tokens=int(input_tokens or 0),
            output_tokens=int(output_tokens or 0),
            usage_reported=reported,
        )

    async def generate(
        self,
        provider: str,
        credential: Optional[ProviderCredential],
        user_input: str,
        model: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> GenerationResult:
        """
        Run one generation call

        Raises:
            OllamaUnavailableError: self-hosted chain exhausted
            MissingCredentialError: SaaS provider without a key
            ProviderError: the provider call failed
        """
        model = model or DEFAULT_MODELS.get(provider, "")
        system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT

        if provider == "ollama":
            remote_url = credential.base_url if isinstance(credential, OllamaCredential) else None
            base_url = await self.resolve_ollama_url(remote_url)
            try:
                return await self.call_ollama(base_url, model, system_prompt, user_input)
            except httpx.HTTPError as e:
                raise ProviderError(f"API call failed: Ollama API error: {e}") from e

        api_key = getattr(credential, "api_key", None)
        if not api_key:
            raise MissingCredentialError(provider)

        try:
            return await self.call_saas(provider, api_key, model, system_prompt, user_input)
        except Exception as e:
            logger.error("[PROVIDER] %s call failed: %s", provider, e)
            raise ProviderError(f"API call failed: {e}", provider=provider) from e
