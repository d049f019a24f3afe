"""Best-effort integration with the context service.

Every function here degrades instead of raising: when the service is not
configured (``client is None``) or a call fails, the failure is logged with
diagnostic context and a neutral value is returned so chat keeps working.
"""
from __future__ import annotations

import base64
import binascii
import logging
import os
import platform
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union
from urllib.parse import urlparse

from errors import ChatError, ContextServiceError, mask_sensitive_info
from session.compaction import CompactionDirective, TokenUsage, directives_to_payload
from session.history import MESSAGE_FORMAT, ChatMessage, normalize_items
from session.store import SessionStore

from .client import ContextServiceClient
from .skills import Skill, skills_from_search

logger = logging.getLogger(__name__)

SESSION_SOURCE = "compactchat"
_MAX_ARTIFACT_DEPTH = 32


@dataclass(frozen=True)
class CreatedSession:
    session_id: str
    context_session_id: str


@dataclass(frozen=True)
class Artifact:
    id: str
    path: str
    filename: str
    mime_type: str = "application/octet-stream"
    size: int = 0
    created_at: Optional[str] = None


def log_context_error(
    operation: str,
    error: BaseException,
    client: Optional[ContextServiceClient] = None,
    **context: Any,
) -> Dict[str, Any]:
    """Log *error* with diagnostic context and return the logged record."""

    record: Dict[str, Any] = {"operation": operation, **context}
    record.update(_describe_error(error))

    if isinstance(error, ContextServiceError) and error.is_network_error:
        record["type"] = "network_error"
        record["diagnosis"] = error.network_diagnosis

    if client is not None:
        record["config"] = client.config.redacted()
        record["url_validation"] = _validate_url(client.config.base_url)
    record["runtime"] = {"python": sys.version.split()[0], "platform": platform.system().lower()}
    record["network_env"] = {
        "https_proxy": os.getenv("HTTPS_PROXY") or os.getenv("https_proxy"),
        "http_proxy": os.getenv("HTTP_PROXY") or os.getenv("http_proxy"),
        "no_proxy": os.getenv("NO_PROXY") or os.getenv("no_proxy"),
    }

    if record.get("type") == "network_error" and client is not None:
        try:
            client.ping()
        except ChatError as ping_error:
            record["connection_test"] = {"success": False, "method": "ping", "error": str(ping_error)}
        else:
            record["connection_test"] = {"success": True, "method": "ping"}

    logger.error("[context] %s: %s", operation, record)
    return record


def get_or_create_user_space_id(
    client: Optional[ContextServiceClient],
    store: SessionStore,
    user_id: str,
) -> Optional[str]:
    """Return the user's long-lived space, creating it on first use."""

    if client is None:
        return None

    existing = store.get_user_space(user_id)
    if existing:
        return existing

    try:
        logger.debug("[context] Creating default space for user %s", user_id)
        space = client.create_space(
            name=f"user-{user_id}",
            description="Default personal Space for self-learned skills and SOPs for this user.",
        )
    except ChatError as exc:
        log_context_error("Failed to get or create default user space", exc, client, user_id=user_id)
        return None

    space_id = space.get("id")
    if not space_id:
        logger.warning("[context] Created space but response did not include id; skipping mapping")
        return None

    try:
        store.set_user_space(user_id, str(space_id))
    except ChatError as exc:
        logger.warning("[context] Failed to persist user space mapping: %s", exc)
    return str(space_id)


def create_session_directly(
    client: Optional[ContextServiceClient],
    store: SessionStore,
    user_id: str,
    title: Optional[str] = None,
) -> Optional[CreatedSession]:
    """Create a remote session bound to the user's space and record it locally."""

    if client is None:
        return None

    space_id = get_or_create_user_space_id(client, store, user_id)
    configs = {"userId": user_id, "source": SESSION_SOURCE}

    try:
        logger.debug("[context] Creating session for user %s (space=%s)", user_id, space_id)
        remote = client.create_session(configs, space_id=space_id)
    except ChatError as exc:
        log_context_error("Failed to create session", exc, client, user_id=user_id, title=title)
        return None

    context_session_id = str(remote["id"])

    disk_id: Optional[str] = None
    try:
        disk_id = str(client.create_disk()["id"])
        logger.debug("[context] Created dedicated disk %s for session %s", disk_id, context_session_id)
    except ChatError as exc:
        log_context_error(
            "Failed to create disk for session",
            exc,
            client,
            context_session_id=context_session_id,
            user_id=user_id,
        )

    try:
        store.create(
            user_id=user_id,
            context_session_id=context_session_id,
            space_id=space_id,
            disk_id=disk_id,
            title=title,
        )
    except ChatError as exc:
        logger.warning("[context] Failed to store session mapping: %s", exc)

    return CreatedSession(session_id=context_session_id, context_session_id=context_session_id)


def delete_session(store: SessionStore, context_session_id: str) -> bool:
    """Forget the local mapping; remote history is left in place."""

    try:
        removed = store.delete_by_context_session(context_session_id)
    except ChatError as exc:
        log_context_error("Failed to delete session", exc, context_session_id=context_session_id)
        return False
    if not removed:
        logger.warning("[context] No session mapping found for %s", context_session_id)
    return removed


def store_message(
    client: Optional[ContextServiceClient],
    session_id: str,
    role: str,
    content: str,
    *,
    tool_calls: Optional[Sequence[Dict[str, Any]]] = None,
    tool_call_id: Optional[str] = None,
) -> bool:
    if client is None or not session_id:
        return False

    message = ChatMessage(
        role=role,
        content=content,
        tool_calls=[dict(call) for call in tool_calls or ()],
        tool_call_id=tool_call_id,
    )
    try:
        logger.debug(
            "[context] Storing %s message in %s (%d chars)", role, session_id, len(content)
        )
        client.store_message(session_id, message.to_blob(), format=MESSAGE_FORMAT)
    except ChatError as exc:
        log_context_error(
            "Failed to store message",
            exc,
            client,
            session_id=session_id,
            role=role,
            content_length=len(content),
        )
        return False
    return True


def get_token_counts(client: Optional[ContextServiceClient], session_id: str) -> Optional[TokenUsage]:
    """Return the stored token count, or ``None`` when unavailable."""

    if client is None or not session_id:
        return None
    try:
        counts = client.get_token_counts(session_id)
    except ChatError as exc:
        log_context_error("Failed to get token counts", exc, client, session_id=session_id)
        return None
    if not counts:
        logger.debug("[context] No token counts available for %s", session_id)
        return None
    try:
        total = int(counts.get("total_tokens") or 0)
    except (TypeError, ValueError):
        total = 0
    return TokenUsage(total_tokens=max(total, 0))


def load_messages(
    client: Optional[ContextServiceClient],
    session_id: str,
    directives: Sequence[CompactionDirective] = (),
) -> List[ChatMessage]:
    """Load history, letting the service apply *directives* for this read only."""

    if client is None or not session_id:
        return []
    strategies = directives_to_payload(directives) if directives else None
    try:
        if strategies:
            logger.debug(
                "[context] Applying edit strategies %s", [item["type"] for item in strategies]
            )
        items = client.get_messages(session_id, format=MESSAGE_FORMAT, edit_strategies=strategies)
    except ChatError as exc:
        log_context_error(
            "Failed to load messages",
            exc,
            client,
            session_id=session_id,
            edit_strategies=[directive.kind for directive in directives],
        )
        return []
    messages = normalize_items(items, session_id=session_id)
    logger.debug(
        "[context] Loaded %d messages (%d strategies applied)", len(messages), len(directives)
    )
    return messages


def search_relevant_context(
    client: Optional[ContextServiceClient],
    session_id: Optional[str],
    query: str,
    limit: int = 5,
) -> List[Dict[str, str]]:
    """Return the most recent messages of the session as lightweight context."""

    if client is None or not session_id:
        return []
    try:
        items = client.get_messages(session_id, format=MESSAGE_FORMAT, limit=limit * 2)
    except ChatError as exc:
        log_context_error(
            "Failed to search relevant context", exc, client, session_id=session_id, query=query, limit=limit
        )
        return []
    messages = normalize_items(items, session_id=session_id)
    recent = messages[-limit:] if limit > 0 else []
    return [{"role": message.role, "content": message.content} for message in recent]


def search_relevant_skills(
    client: Optional[ContextServiceClient],
    space_id: Optional[str],
    query: str,
) -> List[Skill]:
    if client is None or not space_id:
        return []
    try:
        logger.debug("[context] Searching skills in space %s", space_id)
        result = client.experience_search(space_id, query=query, mode="fast")
    except ChatError as exc:
        log_context_error("Failed to search relevant skills", exc, client, space_id=space_id, query=query)
        return []
    skills = skills_from_search(result)
    logger.debug("[context] Found %d relevant skills", len(skills))
    return skills


def upload_file(
    client: Optional[ContextServiceClient],
    filename: str,
    content: Union[bytes, str],
    mime_type: str,
    disk_id: Optional[str] = None,
) -> Optional[str]:
    """Upload *content* (bytes, or base64 text) and return the artifact path."""

    if client is None:
        return None

    try:
        data = content if isinstance(content, bytes) else base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as exc:
        log_context_error("Failed to decode upload", exc, client, filename=filename)
        return None

    try:
        target_disk = disk_id or _resolve_disk(client, create=True)
        logger.debug(
            "[context] Uploading %s (%s, %d bytes) to disk %s", filename, mime_type, len(data), target_disk
        )
        artifact = client.upsert_artifact(target_disk, filename=filename, data=data, mime_type=mime_type)
    except ChatError as exc:
        log_context_error(
            "Failed to upload file",
            exc,
            client,
            filename=filename,
            mime_type=mime_type,
            disk_id=disk_id,
            content_size=len(data),
        )
        return None
    stored = artifact.get("artifact") if isinstance(artifact.get("artifact"), dict) else artifact
    if not (stored.get("path") or stored.get("filename")):
        return filename
    return _artifact_from_item(stored).path


def list_artifacts(
    client: Optional[ContextServiceClient],
    disk_id: Optional[str] = None,
) -> Optional[List[Artifact]]:
    """Recursively list artifacts on *disk_id* (or the first disk)."""

    if client is None:
        return None
    try:
        target_disk = disk_id or _resolve_disk(client, create=False)
    except ChatError as exc:
        log_context_error("Failed to list artifacts", exc, client, disk_id=disk_id)
        return None
    if target_disk is None:
        logger.debug("[context] No disks found")
        return []
    artifacts: List[Artifact] = []
    _collect_artifacts(client, target_disk, "/", artifacts, depth=0)
    logger.debug("[context] Found %d artifacts", len(artifacts))
    return artifacts


def _collect_artifacts(
    client: ContextServiceClient,
    disk_id: str,
    path: str,
    into: List[Artifact],
    *,
    depth: int,
) -> None:
    if depth > _MAX_ARTIFACT_DEPTH:
        logger.warning("[context] Artifact tree deeper than %d levels; stopping at %s", _MAX_ARTIFACT_DEPTH, path)
        return
    try:
        listing = client.list_artifacts(disk_id, path=path)
    except ChatError as exc:
        logger.warning("[context] Failed to list artifacts from path %s: %s", path, exc)
        return

    items = listing.get("artifacts")
    for item in items if isinstance(items, list) else []:
        if isinstance(item, dict):
            into.append(_artifact_from_item(item))

    directories = listing.get("directories")
    for directory in directories if isinstance(directories, list) else []:
        directory = str(directory)
        if directory.startswith("/"):
            dir_path = directory
        else:
            dir_path = f"{path}{'' if path.endswith('/') else '/'}{directory}"
        if not dir_path.endswith("/"):
            dir_path = f"{dir_path}/"
        _collect_artifacts(client, disk_id, dir_path, into, depth=depth + 1)


def _artifact_from_item(item: Dict[str, Any]) -> Artifact:
    path = item.get("path") or item.get("filename") or ""
    filename = item.get("filename") or (str(path).rstrip("/").split("/")[-1] if path else "") or "unknown"
    # The SDK reports the containing directory in ``path`` and system metadata under ``meta``.
    if str(path).endswith("/") and item.get("filename"):
        path = f"{path}{item['filename']}"
    meta = item.get("meta") if isinstance(item.get("meta"), dict) else {}
    info = meta.get("__artifact_info__") if isinstance(meta.get("__artifact_info__"), dict) else {}
    return Artifact(
        id=str(item.get("id") or path or filename),
        path=str(path or filename),
        filename=str(filename),
        mime_type=str(
            item.get("mime_type")
            or item.get("mimeType")
            or item.get("content_type")
            or info.get("mime")
            or info.get("mime_type")
            or "application/octet-stream"
        ),
        size=int(item.get("size") or item.get("length") or info.get("size") or 0),
        created_at=item.get("created_at") or item.get("createdAt") or item.get("timestamp"),
    )


def _resolve_disk(client: ContextServiceClient, *, create: bool) -> Optional[str]:
    disks = client.list_disks()
    if disks and disks[0].get("id"):
        return str(disks[0]["id"])
    if not create:
        return None
    return str(client.create_disk()["id"])


def _describe_error(error: BaseException, depth: int = 0) -> Dict[str, Any]:
    if depth > 5:
        return {"message": "Error chain too deep"}
    info: Dict[str, Any] = {
        "name": type(error).__name__,
        "message": mask_sensitive_info(str(error)),
    }
    if isinstance(error, ChatError):
        info["code"] = error.code.value
    if isinstance(error, ContextServiceError) and error.status is not None:
        info["status"] = error.status
    for attr in ("errno", "strerror", "filename"):
        value = getattr(error, attr, None)
        if value is not None:
            info[attr] = value
    cause = error.__cause__
    if cause is not None:
        info["cause"] = _describe_error(cause, depth + 1)
    return info


def _validate_url(base_url: str) -> Dict[str, Any]:
    parsed = urlparse(base_url)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        return {"valid": False, "error": f"invalid base URL {base_url!r}"}
    return {
        "valid": True,
        "protocol": parsed.scheme,
        "hostname": parsed.hostname,
        "port": parsed.port or (443 if parsed.scheme == "https" else 80),
    }


__all__ = [
    "Artifact",
    "CreatedSession",
    "create_session_directly",
    "delete_session",
    "get_or_create_user_space_id",
    "get_token_counts",
    "list_artifacts",
    "load_messages",
    "log_context_error",
    "search_relevant_context",
    "search_relevant_skills",
    "store_message",
    "upload_file",
]
