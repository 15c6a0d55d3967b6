"""
Cost Estimator - provider pricing tables

Maps (provider, model, input tokens, output tokens) to a USD cost using a
linear per-1000-token rate for each pricing family. The self-hosted
provider is always free.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class ModelPricing:
    """Per-1000-token rates for a family of models"""
    family: str
    provider: str
    input_per_1k: float
    output_per_1k: float
    match: Tuple[str, ...] = ()


@dataclass
class CostEstimate:
    """Cost calculation result"""
    cost: float
    tokens_used: int = 0
    details: str = ""
    requests_count: int = 1
    images_generated: int = 0


PRICING: Dict[str, List[ModelPricing]] = {
    "openai": [
        # Most specific first: "gpt-4-turbo" must not fall into "gpt-4"
        ModelPricing("gpt4_turbo", "openai", 0.01, 0.03, ("gpt-4-turbo", "gpt4_turbo")),
        ModelPricing("gpt3_5_turbo", "openai", 0.0015, 0.002, ("gpt-3.5", "gpt3_5")),
        ModelPricing("gpt4", "openai", 0.03, 0.06, ("gpt-4", "gpt4")),
    ],
    "claude": [
        ModelPricing("haiku", "claude", 0.00025, 0.00125, ("haiku",)),
        ModelPricing("sonnet", "claude", 0.003, 0.015, ("sonnet",)),
    ],
    "gemini": [
        ModelPricing("pro", "gemini", 0.00025, 0.0005, ("pro", "gemini")),
    ],
    "ollama": [
        ModelPricing("llama3_8b", "ollama", 0.0, 0.0, ()),
    ],
}

# Family used when the model name matches nothing in the provider's table
DEFAULT_FAMILY = {
    "openai": "gpt4",
    "claude": "sonnet",
    "gemini": "pro",
    "ollama": "llama3_8b",
}

UNKNOWN_PROVIDER_COST = 0.01

# Output allowance assumed before the real completion length is known
PREFLIGHT_OUTPUT_TOKENS = {"ollama": 1000}
DEFAULT_PREFLIGHT_OUTPUT_TOKENS = 2000

# Stored spend and budget comparisons use integer millionths of a dollar
MICROS_PER_USD = 1_000_000


def to_micros(amount: float) -> int:
    return int(round(amount * MICROS_PER_USD))


def from_micros(micros: int) -> float:
    return micros / MICROS_PER_USD


def approximate_tokens(text: Optional[str]) -> int:
    """Rough token count (4 characters per token), for pre-flight checks only"""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def preflight_output_tokens(provider: str) -> int:
    return PREFLIGHT_OUTPUT_TOKENS.get(provider, DEFAULT_PREFLIGHT_OUTPUT_TOKENS)


def resolve_pricing(provider: str, model: Optional[str] = None) -> Optional[ModelPricing]:
    """Find the pricing family for a model, or None for unknown providers"""
    table = PRICING.get(provider)
    if not table:
        return None

    if model:
        name = model.lower()
        for pricing in table:
            if any(token in name for token in pricing.match):
                return pricing

    default = DEFAULT_FAMILY[provider]
    return next(p for p in table if p.family == default)


def estimate_cost(
    provider: str,
    model: Optional[str],
    input_tokens: int,
    output_tokens: int,
) -> CostEstimate:
    """Linear cost for a token-metered call"""
    total_tokens = input_tokens + output_tokens
    pricing = resolve_pricing(provider, model)

    if pricing is None:
        return CostEstimate(
            cost=UNKNOWN_PROVIDER_COST,
            tokens_used=total_tokens,
            details=f"{provider}: flat estimate",
        )

    cost = (input_tokens * pricing.input_per_1k + output_tokens * pricing.output_per_1k) / 1000
    return CostEstimate(
        cost=cost,
        tokens_used=total_tokens,
        details=f"{pricing.family}: {input_tokens} input + {output_tokens} output tokens",
    )


# Media calculators

def image_generation_cost(image_count: int = 1, resolution: str = "standard") -> CostEstimate:
    """Stability credits: 1 per standard image, 2 per high resolution, $0.01 each"""
    credits_per_image = 2 if resolution == "high" else 1
    cost = credits_per_image * image_count * 0.01
    return CostEstimate(
        cost=cost,
        images_generated=image_count,
        details=f"Image generation: {image_count} images ({resolution} resolution)",
    )


def text_to_speech_cost(characters: int) -> CostEstimate:
    cost = (characters / 1000) * 0.1667
    return CostEstimate(cost=cost, details=f"Text to speech: {characters} characters")


def transcription_cost(audio_minutes: float) -> CostEstimate:
    cost = audio_minutes * 0.006
    return CostEstimate(cost=cost, details=f"Transcription: {audio_minutes} minutes")


def video_generation_cost(video_minutes: float) -> CostEstimate:
    cost = video_minutes * 0.5
    return CostEstimate(cost=cost, details=f"Video generation: {video_minutes} minutes")
