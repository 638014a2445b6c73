"""Configuration loader for Colloquy."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional
import os
import yaml

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "default.yaml"
USER_CONFIG_PATH = Path.home() / ".config" / "colloquy" / "config.yaml"


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(user_path: Optional[Path] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if DEFAULT_CONFIG_PATH.exists():
        data = yaml.safe_load(DEFAULT_CONFIG_PATH.read_text()) or {}
    user_path = user_path or USER_CONFIG_PATH
    if user_path.exists():
        override = yaml.safe_load(user_path.read_text()) or {}
        data = _deep_merge(data, override)

    # Environment overrides - Server
    host = os.getenv("COLLOQUY_HOST")
    port = os.getenv("COLLOQUY_PORT")
    if host:
        data.setdefault("server", {})["host"] = host
    if port:
        try:
            data.setdefault("server", {})["port"] = int(port)
        except ValueError:
            pass

    # Environment overrides - Gateway
    provider = os.getenv("COLLOQUY_PROVIDER")
    if provider:
        data.setdefault("gateway", {})["provider"] = provider.lower()
    model = os.getenv("COLLOQUY_MODEL")
    if model:
        data.setdefault("gateway", {})["model"] = model

    # Environment overrides - Engine
    max_cycles = os.getenv("COLLOQUY_MAX_CYCLES")
    if max_cycles:
        try:
            data.setdefault("engine", {})["max_cycles"] = int(max_cycles)
        except ValueError:
            pass

    invocation_timeout = os.getenv("COLLOQUY_INVOCATION_TIMEOUT")
    if invocation_timeout:
        try:
            data.setdefault("engine", {})["invocation_timeout_seconds"] = float(invocation_timeout)
        except ValueError:
            pass

    log_level = os.getenv("COLLOQUY_LOG_LEVEL")
    if log_level:
        data.setdefault("logging", {})["level"] = log_level.upper()

    return data


@dataclass
class Config:
    raw: Dict[str, Any]

    @property
    def server(self) -> Dict[str, Any]:
        return self.raw.get("server", {})

    @property
    def host(self) -> str:
        return str(self.server.get("host", "127.0.0.1"))

    @property
    def port(self) -> int:
        return int(self.server.get("port", 8000))

    @property
    def gateway(self) -> Dict[str, Any]:
        return self.raw.get("gateway", {})

    @property
    def gateway_provider(self) -> str:
        return str(self.gateway.get("provider", "gemini")).lower()

    @property
    def gateway_model(self) -> str:
        return str(self.gateway.get("model", "2.5-flash"))

    @property
    def gateway_temperature(self) -> float:
        return float(self.gateway.get("temperature", 0.2))

    @property
    def gateway_timeout_seconds(self) -> float:
        return float(self.gateway.get("timeout_seconds", 120))

    @property
    def gateway_base_url(self) -> str | None:
        return self.gateway.get("base_url") or None

    @property
    def engine(self) -> Dict[str, Any]:
        return self.raw.get("engine", {})

    @property
    def max_cycles(self) -> int:
        """Cap on caller-driven follow-up cycles. Default 3."""
        return int(self.engine.get("max_cycles", 3))

    @property
    def invocation_timeout_seconds(self) -> float | None:
        """Per-persona deadline; unset means no deadline."""
        value = self.engine.get("invocation_timeout_seconds")
        return float(value) if value else None

    @property
    def stream_synthesis(self) -> bool:
        return bool(self.engine.get("stream_synthesis", True))

    @property
    def clarify(self) -> bool:
        return bool(self.engine.get("clarify", True))

    @property
    def personas(self) -> List[Dict[str, Any]]:
        return self.raw.get("personas") or []

    @property
    def log_level(self) -> str:
        return str(self.raw.get("logging", {}).get("level", "INFO")).upper()


def get_config() -> Config:
    return Config(load_config())
