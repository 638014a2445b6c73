"""Native Gemini API gateway."""
from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict

import httpx

from colloquy.models.gateway import GatewayError

logger = logging.getLogger(__name__)


class GeminiGateway:
    """Async Gemini ``generateContent`` client using httpx."""

    DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

    MODEL_MAP = {
        "2.5-flash": "gemini-2.5-flash",
        "2.5-pro": "gemini-2.5-pro",
        "2.0-flash": "gemini-2.0-flash",
        "1.5-flash": "gemini-1.5-flash",
        "1.5-pro": "gemini-1.5-pro",
    }

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "2.5-flash",
        base_url: str = DEFAULT_BASE_URL,
        temperature: float = 0.2,
        timeout: float = 120,
    ) -> None:
        self.api_key = (
            api_key
            or os.environ.get("GEMINI_API_KEY", "")
            or os.environ.get("GOOGLE_GENERATIVE_AI_API_KEY", "")
        )
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.timeout = timeout

    @property
    def model_id(self) -> str:
        return self.MODEL_MAP.get(self.model, self.model)

    async def generate(self, prompt: str) -> str:
        if not self.api_key:
            logger.warning("gemini %s: GEMINI_API_KEY not set", self.model_id)
            raise GatewayError("GEMINI_API_KEY not set")

        url = f"{self.base_url}/models/{self.model_id}:generateContent?key={self.api_key}"
        body: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
            },
        }

        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=body)
        except httpx.TimeoutException as exc:
            logger.warning("gemini %s timed out after %ss", self.model_id, self.timeout)
            raise GatewayError(f"Gemini API timeout after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            logger.warning("gemini %s request failed: %s", self.model_id, exc)
            raise GatewayError(str(exc)) from exc
        duration_ms = (time.perf_counter() - start) * 1000

        if response.status_code != 200:
            logger.warning("gemini %s returned HTTP %s", self.model_id, response.status_code)
            raise GatewayError(f"HTTP {response.status_code}: {response.text[:500]}")

        data = response.json()
        candidates = data.get("candidates", [])
        if not candidates:
            logger.warning("gemini %s returned no candidates", self.model_id)
            raise GatewayError("No candidates in response")

        parts = candidates[0].get("content", {}).get("parts", [])
        text = "".join(p.get("text", "") for p in parts)
        usage = data.get("usageMetadata", {})
        logger.debug(
            "gemini %s ok in %.0fms (%s tokens)",
            self.model_id,
            duration_ms,
            usage.get("totalTokenCount", 0),
        )
        return text
