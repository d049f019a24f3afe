"""Session metadata store mapping chat sessions to context-service resources."""
from __future__ import annotations

import json
import os
import tempfile
import threading
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from errors import SessionStoreError

DEFAULT_STORE_PATH = Path.home() / ".compactchat" / "sessions.json"


@dataclass
class ChatSessionRecord:
    id: str
    user_id: str
    context_session_id: str
    space_id: Optional[str] = None
    disk_id: Optional[str] = None
    title: str = "New Chat"
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SessionStore:
    """Persist session records and per-user space mappings.

    With ``path=None`` records live only in memory. Otherwise the whole store
    is one JSON document rewritten atomically on each change.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._sessions: Dict[str, ChatSessionRecord] = {}
        self._user_spaces: Dict[str, str] = {}
        if path is not None and path.exists():
            self._load()

    def create(
        self,
        *,
        user_id: str,
        context_session_id: str,
        space_id: Optional[str] = None,
        disk_id: Optional[str] = None,
        title: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> ChatSessionRecord:
        record = ChatSessionRecord(
            id=session_id or context_session_id,
            user_id=user_id,
            context_session_id=context_session_id,
            space_id=space_id,
            disk_id=disk_id,
            title=(title or "").strip() or "New Chat",
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        with self._lock:
            if record.id in self._sessions:
                raise SessionStoreError(f"Session {record.id} already exists")
            sessions = {**self._sessions, record.id: record}
            self._flush(sessions, self._user_spaces)
            self._sessions = sessions
        return record

    def get(self, session_id: str) -> Optional[ChatSessionRecord]:
        with self._lock:
            return self._sessions.get(session_id)

    def get_by_context_session(self, context_session_id: str) -> Optional[ChatSessionRecord]:
        with self._lock:
            for record in self._sessions.values():
                if record.context_session_id == context_session_id:
                    return record
        return None

    def list_for_user(self, user_id: str) -> List[ChatSessionRecord]:
        with self._lock:
            records = [record for record in self._sessions.values() if record.user_id == user_id]
        return sorted(records, key=lambda record: record.created_at, reverse=True)

    def update_title(self, session_id: str, title: str) -> ChatSessionRecord:
        cleaned = title.strip()
        if not cleaned:
            raise ValueError("title must not be empty")
        with self._lock:
            record = self._sessions.get(session_id)
            if record is None:
                raise SessionStoreError(f"Session {session_id} not found")
            renamed = replace(record, title=cleaned)
            sessions = {**self._sessions, session_id: renamed}
            self._flush(sessions, self._user_spaces)
            self._sessions = sessions
            return renamed

    def delete_by_context_session(self, context_session_id: str) -> bool:
        with self._lock:
            kept = {
                key: record
                for key, record in self._sessions.items()
                if record.context_session_id != context_session_id
            }
            removed = len(kept) != len(self._sessions)
            if removed:
                self._flush(kept, self._user_spaces)
                self._sessions = kept
        return removed

    def get_user_space(self, user_id: str) -> Optional[str]:
        with self._lock:
            return self._user_spaces.get(user_id)

    def set_user_space(self, user_id: str, space_id: str) -> None:
        with self._lock:
            spaces = {**self._user_spaces, user_id: space_id}
            self._flush(self._sessions, spaces)
            self._user_spaces = spaces

    def _load(self) -> None:
        if self.path is None:
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise SessionStoreError(f"Failed to read session store {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise SessionStoreError(f"Session store {self.path} must contain a JSON object")
        for raw in data.get("sessions", []):
            try:
                record = ChatSessionRecord(**raw)
            except TypeError as exc:
                raise SessionStoreError(f"Malformed session record in {self.path}: {exc}") from exc
            self._sessions[record.id] = record
        spaces = data.get("user_spaces", {})
        if isinstance(spaces, dict):
            self._user_spaces = {str(k): str(v) for k, v in spaces.items()}

    def _flush(self, sessions: Dict[str, ChatSessionRecord], user_spaces: Dict[str, str]) -> None:
        """Write *sessions* and *user_spaces* to disk; callers commit them in memory afterwards."""

        if self.path is None:
            return
        payload = {
            "sessions": [record.to_dict() for record in sessions.values()],
            "user_spaces": dict(user_spaces),
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".sessions-", suffix=".json", dir=str(self.path.parent))
        except OSError as exc:
            raise SessionStoreError(f"Failed to write session store {self.path}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise SessionStoreError(f"Failed to write session store {self.path}: {exc}") from exc


__all__ = ["ChatSessionRecord", "DEFAULT_STORE_PATH", "SessionStore"]
