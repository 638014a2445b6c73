"""Model gateway contract and provider selection."""
from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from colloquy.config import Config


class GatewayError(RuntimeError):
    """Any non-success outcome from a model provider."""


class ModelGateway(Protocol):
    async def generate(self, prompt: str) -> str:
        ...


def build_gateway(config: "Config") -> ModelGateway:
    provider = config.gateway_provider
    if provider == "gemini":
        from colloquy.models.gemini import GeminiGateway

        return GeminiGateway(
            model=config.gateway_model,
            base_url=config.gateway_base_url or GeminiGateway.DEFAULT_BASE_URL,
            temperature=config.gateway_temperature,
            timeout=config.gateway_timeout_seconds,
        )
    if provider == "ollama":
        from colloquy.models.ollama import OllamaGateway

        return OllamaGateway(
            model=config.gateway_model,
            base_url=config.gateway_base_url or OllamaGateway.DEFAULT_BASE_URL,
            temperature=config.gateway_temperature,
            timeout=config.gateway_timeout_seconds,
        )
    raise ValueError(f"Unknown gateway provider: {provider}")
