"""
LangFuse Tracer - observability for metered generations

Records each generation with its provider, token usage and cost, plus
budget denials and provider errors. Disabled when keys are not set.
"""

import logging
import os
from typing import Optional, Dict, Any
from langfuse import Langfuse

logger = logging.getLogger(__name__)


class LangFuseTracer:
    """
    LangFuse tracer for observability

    Every method is a no-op when LangFuse is not configured, and tracing
    failures are logged without affecting the request.
    """

    def __init__(self):
        self.secret_key = os.getenv("LANGFUSE_SECRET_KEY")
        self.public_key = os.getenv("LANGFUSE_PUBLIC_KEY")
        self.host = os.getenv("LANGFUSE_HOST", "http://localhost:3000")
        self.client: Optional[Langfuse] = None
        self.enabled = bool(self.secret_key and self.public_key)

    async def initialize(self):
        """Initialize LangFuse client"""
        if not self.enabled:
            logger.info("LangFuse not configured. Observability disabled.")
            return

        try:
            self.client = Langfuse(
                secret_key=self.secret_key,
                public_key=self.public_key,
                host=self.host,
            )
        except Exception as e:
            logger.warning("LangFuse initialization failed: %s", e)
            self.enabled = False

    def start_trace(
        self,
        tenant_id: str,
        provider: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[Any]:
        """
        Start a new trace

        Returns:
            Trace object or None if LangFuse is disabled
        """
        if not self.enabled or not self.client:
            return None

        try:
            return self.client.trace(
                name="ai_generate",
                user_id=tenant_id,
                metadata={"provider": provider, **(metadata or {})},
            )
        except Exception as e:
            logger.warning("Failed to start trace: %s", e)
            return None

    def trace_generation(
        self,
        trace: Optional[Any],
        provider: str,
        model: str,
        user_input: str,
        output: str,
        input_tokens: int,
        output_tokens: int,
        cost: float,
        latency_ms: float,
    ):
        """Record a completed generation on the trace"""
        if trace is None:
            return

        try:
            trace.generation(
                name="llm_generation",
                model=model,
                input=user_input,
                output=output,
                usage={
                    "input": input_tokens,
                    "output": output_tokens,
                    "total": input_tokens + output_tokens,
                    "unit": "TOKENS",
                    "total_cost": cost,
                },
                metadata={"provider": provider, "latency_ms": latency_ms},
            )
            self.client.flush()
        except Exception as e:
            logger.warning("Failed to trace generation: %s", e)

    def trace_event(self, trace: Optional[Any], name: str, metadata: Dict[str, Any]):
        """Budget denials, fallbacks and other non-generation events"""
        if trace is None:
            return

        try:
            trace.event(name=name, metadata=metadata)
            self.client.flush()
        except Exception as e:
            logger.warning("Failed to trace %s: %s", name, e)

    def trace_error(self, trace: Optional[Any], error: str, provider: str, model: str):
        if trace is None:
            return

        try:
            trace.event(
                name="llm_error",
                level="ERROR",
                status_message=error,
                metadata={"provider": provider, "model": model},
            )
            self.client.flush()
        except Exception as e:
            logger.warning("Failed to trace error: %s", e)
