"""
Provider credential models

Stored credential blobs are validated into one typed schema per provider,
selected by the `provider` tag.
"""

from typing import Annotated, Literal, Optional, Union
from pydantic import AliasChoices, BaseModel, Field, TypeAdapter

ProviderName = Literal["openai", "claude", "gemini", "ollama"]

SAAS_PROVIDERS = ("openai", "claude", "gemini")
SELF_HOSTED_PROVIDER = "ollama"


class _ApiKeyCredential(BaseModel):
    # Older settings screens saved the key as `apiKey` or `key`
    api_key: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("api_key", "apiKey", "key"),
    )
    organization: Optional[str] = None


class OpenAICredential(_ApiKeyCredential):
    provider: Literal["openai"] = "openai"


class ClaudeCredential(_ApiKeyCredential):
    provider: Literal["claude"] = "claude"


class GeminiCredential(_ApiKeyCredential):
    provider: Literal["gemini"] = "gemini"


class OllamaCredential(BaseModel):
    provider: Literal["ollama"] = "ollama"
    base_url: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("base_url", "baseUrl", "url"),
    )


ProviderCredential = Annotated[
    Union[OpenAICredential, ClaudeCredential, GeminiCredential, OllamaCredential],
    Field(discriminator="provider"),
]

credential_adapter: TypeAdapter = TypeAdapter(ProviderCredential)
