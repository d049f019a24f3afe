"""Structured error types for the chat backend."""
from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Classification of user-visible chat failures."""

    CONFIG_MISSING = "CONFIG_MISSING"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    INVALID_REQUEST = "INVALID_REQUEST"
    LLM_ERROR = "LLM_ERROR"
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ChatError(Exception):
    """Base class for chat backend errors."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details

    def __str__(self) -> str:  # pragma: no cover - convenience
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ConfigError(ChatError):
    """Required configuration is missing or malformed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCode.CONFIG_MISSING)


class ContextServiceError(ChatError):
    """Failure talking to the remote context service."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        code: Optional[ErrorCode] = None,
        details: Any = None,
    ) -> None:
        diagnosis = classify_network_error(message)
        if code is None:
            if diagnosis is not None:
                code = ErrorCode.NETWORK_ERROR
            elif status in (401, 403):
                code = ErrorCode.AUTH_REQUIRED
            elif status == 429:
                code = ErrorCode.RATE_LIMIT
            elif status is not None and 400 <= status < 500:
                code = ErrorCode.INVALID_REQUEST
            else:
                code = ErrorCode.UNKNOWN_ERROR
        super().__init__(message, code, details)
        self.status = status
        self.network_diagnosis = diagnosis

    @property
    def is_network_error(self) -> bool:
        return self.network_diagnosis is not None


class SessionStoreError(ChatError):
    """Session metadata could not be read or written."""

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCode.INVALID_REQUEST)


class ToolError(ChatError):
    """A chat tool rejected its input or could not produce a result."""

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCode.INVALID_REQUEST)


_NETWORK_MARKERS = (
    "fetch failed",
    "econnrefused",
    "connection refused",
    "enotfound",
    "name or service not known",
    "nodename nor servname",
    "etimedout",
    "timed out",
    "econnreset",
    "connection reset",
    "certificate",
    "ssl",
    "tls",
)


def classify_network_error(message: str) -> Optional[str]:
    """Return a human diagnosis when *message* looks like a transport failure."""

    lowered = (message or "").lower()
    if not any(marker in lowered for marker in _NETWORK_MARKERS):
        return None
    if "enotfound" in lowered or "name or service not known" in lowered or "nodename nor servname" in lowered:
        return "DNS resolution failed - cannot resolve hostname"
    if "econnrefused" in lowered or "connection refused" in lowered:
        return "Connection refused - server may be down or firewall blocking"
    if "etimedout" in lowered or "timed out" in lowered:
        return "Connection timeout - network may be slow or unreachable"
    if "certificate" in lowered or "ssl" in lowered or "tls" in lowered:
        return "SSL/TLS certificate error - check certificate validity"
    return "Network request failed - check connectivity, firewall, and proxy settings"


_API_KEY_RE = re.compile(r"sk-[a-zA-Z0-9]{32,}")
_OPAQUE_TOKEN_RE = re.compile(r"[a-zA-Z0-9]{32,}")


def mask_sensitive_info(message: str) -> str:
    """Mask API keys and other long opaque tokens in *message*."""

    masked = _API_KEY_RE.sub("sk-***", message)

    def _mask(match: "re.Match[str]") -> str:
        token = match.group(0)
        if len(token) > 32:
            return token[:8] + "***"
        return token

    return _OPAQUE_TOKEN_RE.sub(_mask, masked)


def format_error_response(error: BaseException | Any, include_details: bool = False) -> Dict[str, Any]:
    """Convert *error* into the ``{code, message, details?}`` response shape."""

    if isinstance(error, ChatError):
        payload = error.to_dict()
        payload["message"] = mask_sensitive_info(error.message)
        if not include_details:
            payload.pop("details", None)
        return payload

    if isinstance(error, BaseException):
        payload = {"code": "CHAT_ERROR", "message": mask_sensitive_info(str(error))}
        if include_details:
            payload["details"] = repr(error)
        return payload

    if isinstance(error, dict) and "code" in error:
        return dict(error)

    payload = {"code": ErrorCode.UNKNOWN_ERROR.value, "message": "An unexpected error occurred"}
    if include_details:
        payload["details"] = str(error)
    return payload


__all__ = [
    "ChatError",
    "ConfigError",
    "ContextServiceError",
    "ErrorCode",
    "SessionStoreError",
    "ToolError",
    "classify_network_error",
    "format_error_response",
    "mask_sensitive_info",
]
