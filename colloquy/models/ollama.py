"""Minimal Ollama gateway for local inference."""
from __future__ import annotations

from typing import Any, Dict, Optional
import logging
import time

import httpx

from colloquy.models.gateway import GatewayError

logger = logging.getLogger(__name__)


class OllamaGateway:
    DEFAULT_BASE_URL = "http://localhost:11434"

    def __init__(
        self,
        model: str,
        base_url: str = DEFAULT_BASE_URL,
        temperature: float = 0.2,
        timeout: float = 120.0,
        max_tokens: Optional[int] = None,
    ) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.timeout = timeout
        self.max_tokens = max_tokens

    async def generate(self, prompt: str) -> str:
        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self.temperature,
            },
        }
        if self.max_tokens is not None:
            payload["options"]["num_predict"] = self.max_tokens

        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(f"{self.base_url}/api/generate", json=payload)
                resp.raise_for_status()
                data = resp.json()
        except httpx.TimeoutException as exc:
            logger.warning("ollama %s timed out after %ss", self.model, self.timeout)
            raise GatewayError(f"Ollama timeout after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            logger.warning("ollama %s request failed: %s", self.model, exc)
            raise GatewayError(str(exc)) from exc
        logger.debug("ollama %s ok in %.0fms", self.model, (time.perf_counter() - start) * 1000)
        return data.get("response", "")
