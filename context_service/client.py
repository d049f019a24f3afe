"""Context service client built on the Acontext SDK."""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import httpx
from acontext import AcontextClient, FileUpload
from acontext.errors import APIError, TransportError
from pydantic import BaseModel, ValidationError

from config import ContextServiceConfig
from errors import ContextServiceError, ErrorCode

USER_AGENT = "compactchat/0.1"


class ContextServiceClient:
    """Adapter that exposes the SDK's resources as plain dictionaries.

    Every SDK failure is re-raised as ``ContextServiceError`` so the
    integration layer handles a single exception type. Tests may pass a
    stand-in ``sdk`` object with the same resource attributes.
    """

    def __init__(self, config: ContextServiceConfig, *, sdk: Any = None) -> None:
        self.config = config
        self._sdk = sdk or AcontextClient(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            user_agent=USER_AGENT,
        )

    def ping(self) -> bool:
        self._call("ping", self._sdk.ping)
        return True

    def create_session(
        self,
        configs: Optional[Mapping[str, Any]] = None,
        *,
        space_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        session = self._call(
            "create session",
            self._sdk.sessions.create,
            space_id=space_id,
            configs=dict(configs or {}),
        )
        return _expect_id(session, "session")

    def delete_session(self, session_id: str) -> None:
        self._call("delete session", self._sdk.sessions.delete, session_id)

    def store_message(
        self,
        session_id: str,
        blob: Mapping[str, Any],
        *,
        format: str = "openai",
    ) -> Dict[str, Any]:
        stored = self._call(
            "store message", self._sdk.sessions.store_message, session_id, blob=dict(blob), format=format
        )
        return stored if isinstance(stored, dict) else {}

    def get_messages(
        self,
        session_id: str,
        *,
        format: str = "openai",
        limit: Optional[int] = None,
        edit_strategies: Optional[Sequence[Mapping[str, Any]]] = None,
    ) -> List[Dict[str, Any]]:
        output = self._call(
            "get messages",
            self._sdk.sessions.get_messages,
            session_id,
            format=format,
            limit=limit,
            edit_strategies=[dict(item) for item in edit_strategies] if edit_strategies else None,
        )
        items = output.get("items") if isinstance(output, dict) else None
        return list(items) if isinstance(items, list) else []

    def get_token_counts(self, session_id: str) -> Optional[Dict[str, Any]]:
        counts = self._call("get token counts", self._sdk.sessions.get_token_counts, session_id)
        return counts if isinstance(counts, dict) else None

    def create_space(self, *, name: str, description: str = "") -> Dict[str, Any]:
        space = self._call(
            "create space",
            self._sdk.spaces.create,
            configs={"name": name, "description": description},
        )
        return space if isinstance(space, dict) else {}

    def experience_search(self, space_id: str, *, query: str, mode: str = "fast") -> Dict[str, Any]:
        result = self._call(
            "search experiences", self._sdk.spaces.experience_search, space_id, query=query, mode=mode
        )
        return result if isinstance(result, dict) else {}

    def create_disk(self) -> Dict[str, Any]:
        return _expect_id(self._call("create disk", self._sdk.disks.create), "disk")

    def list_disks(self) -> List[Dict[str, Any]]:
        output = self._call("list disks", self._sdk.disks.list)
        items = output.get("items") if isinstance(output, dict) else None
        return list(items) if isinstance(items, list) else []

    def upsert_artifact(
        self,
        disk_id: str,
        *,
        filename: str,
        data: bytes,
        mime_type: str,
        path: str = "/",
    ) -> Dict[str, Any]:
        artifact = self._call(
            "upload artifact",
            self._sdk.disks.artifacts.upsert,
            disk_id,
            file=FileUpload(filename=filename, content=data, content_type=mime_type),
            file_path=path,
        )
        return artifact if isinstance(artifact, dict) else {}

    def list_artifacts(self, disk_id: str, *, path: str = "/") -> Dict[str, Any]:
        listing = self._call("list artifacts", self._sdk.disks.artifacts.list, disk_id, path=path)
        return listing if isinstance(listing, dict) else {}

    def _call(self, action: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            result = fn(*args, **kwargs)
        except APIError as exc:
            detail = exc.message or exc.error or "request failed"
            raise ContextServiceError(
                f"{action} failed with HTTP {exc.status_code}: {detail}",
                status=exc.status_code,
                details={"action": action, "app_code": exc.code},
            ) from exc
        except TransportError as exc:
            timed_out = isinstance(exc.__cause__, httpx.TimeoutException)
            raise ContextServiceError(
                f"{action} timed out after {self.config.timeout_seconds}s" if timed_out else f"{action} failed: {exc}",
                code=ErrorCode.TIMEOUT if timed_out else ErrorCode.NETWORK_ERROR,
                details={"action": action},
            ) from exc
        except ValidationError as exc:
            raise ContextServiceError(
                f"{action} returned an unexpected response: {exc.error_count()} validation error(s)",
                details={"action": action},
            ) from exc
        return _plain(result)


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def _expect_id(payload: Any, what: str) -> Dict[str, Any]:
    if not isinstance(payload, dict) or not payload.get("id"):
        raise ContextServiceError(f"Created {what} but response did not include id")
    return payload


__all__ = ["ContextServiceClient", "USER_AGENT"]
