"""Shared configuration helpers for the completion and context services."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_MODEL = "claude-sonnet-4-5"
DEFAULT_MAX_TOKENS = 1024
DEFAULT_CONTEXT_BASE_URL = "https://api.acontext.com/api/v1"
DEFAULT_CONTEXT_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class AnthropicConfig:
    """Simple container for Anthropic model configuration."""

    model: str
    max_tokens: int


@dataclass(frozen=True)
class ContextServiceConfig:
    """Credentials and endpoint for the hosted context service."""

    api_key: str
    base_url: str = DEFAULT_CONTEXT_BASE_URL
    timeout_seconds: float = DEFAULT_CONTEXT_TIMEOUT_SECONDS

    def redacted(self) -> dict[str, object]:
        return {
            "api_key_present": bool(self.api_key),
            "api_key_length": len(self.api_key),
            "base_url": self.base_url,
            "timeout_seconds": self.timeout_seconds,
        }


def _parse_positive_int(raw: Optional[str], fallback: int) -> int:
    """Return a positive integer parsed from *raw*, or *fallback* on failure."""

    if raw is None:
        return fallback
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return fallback
    return value if value > 0 else fallback


def _parse_positive_float(raw: Optional[str], fallback: float) -> float:
    if raw is None:
        return fallback
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return fallback
    return value if value > 0 else fallback


def load_anthropic_config(
    default_model: str = DEFAULT_MODEL,
    default_max_tokens: int = DEFAULT_MAX_TOKENS,
) -> AnthropicConfig:
    """Load Anthropic settings from environment variables with safe fallbacks."""

    model = (os.getenv("ANTHROPIC_MODEL") or "").strip() or default_model
    max_tokens = _parse_positive_int(os.getenv("ANTHROPIC_MAX_TOKENS"), default_max_tokens)
    return AnthropicConfig(model=model, max_tokens=max_tokens)


def load_context_service_config() -> Optional[ContextServiceConfig]:
    """Load context service settings; ``None`` when no API key is configured."""

    api_key = (os.getenv("ACONTEXT_API_KEY") or "").strip()
    if not api_key:
        return None
    base_url = (os.getenv("ACONTEXT_BASE_URL") or "").strip() or DEFAULT_CONTEXT_BASE_URL
    timeout = _parse_positive_float(os.getenv("ACONTEXT_TIMEOUT_SECONDS"), DEFAULT_CONTEXT_TIMEOUT_SECONDS)
    return ContextServiceConfig(api_key=api_key, base_url=base_url.rstrip("/"), timeout_seconds=timeout)


__all__ = [
    "AnthropicConfig",
    "ContextServiceConfig",
    "DEFAULT_CONTEXT_BASE_URL",
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_MODEL",
    "load_anthropic_config",
    "load_context_service_config",
]
