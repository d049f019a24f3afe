"""Session-level configuration for chat turns and context compaction."""
from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Iterable, Mapping, MutableMapping, Optional

from .compaction import (
    DEFAULT_TOKEN_LIMIT_TARGET,
    DEFAULT_TOKEN_LIMIT_THRESHOLD,
    DEFAULT_TOOL_CALL_THRESHOLD,
    DEFAULT_TOOL_RESULT_THRESHOLD,
    CompactionThresholds,
)

DEFAULT_CONFIG_PATHS: tuple[Path, ...] = (
    Path.home() / ".compactchat" / "config.toml",
    Path.home() / ".config" / "compactchat" / "config.toml",
)


@dataclass(frozen=True)
class ModelSettings:
    name: str = "claude-sonnet-4-5"
    max_tokens: int = 1024
    system_prompt: str = "You are a helpful assistant."


@dataclass(frozen=True)
class CompactionSettings:
    auto: bool = True
    token_limit_threshold: int = DEFAULT_TOKEN_LIMIT_THRESHOLD
    token_limit_target: int = DEFAULT_TOKEN_LIMIT_TARGET
    tool_result_threshold: int = DEFAULT_TOOL_RESULT_THRESHOLD
    tool_call_threshold: int = DEFAULT_TOOL_CALL_THRESHOLD

    def thresholds(self) -> CompactionThresholds:
        return CompactionThresholds(
            token_limit_threshold=self.token_limit_threshold,
            token_limit_target=self.token_limit_target,
            tool_result_threshold=self.tool_result_threshold,
            tool_call_threshold=self.tool_call_threshold,
        )


@dataclass(frozen=True)
class ChatSettings:
    max_turns: int = 4
    skills_enabled: bool = True


@dataclass(frozen=True)
class StoreSettings:
    path: Optional[Path] = None


@dataclass(frozen=True)
class SessionSettings:
    model: ModelSettings = ModelSettings()
    compaction: CompactionSettings = CompactionSettings()
    chat: ChatSettings = ChatSettings()
    store: StoreSettings = StoreSettings()

    def update_with(self, **overrides: Any) -> "SessionSettings":
        """Return new settings with dotted overrides like 'compaction.tool_call_threshold'."""

        current: MutableMapping[str, Any] = {
            "model": self.model,
            "compaction": self.compaction,
            "chat": self.chat,
            "store": self.store,
        }
        updated = dict(current)
        for dotted, raw_value in overrides.items():
            parts = dotted.split(".")
            if len(parts) != 2:
                raise KeyError(f"Override must be of the form group.field (got '{dotted}')")
            group, leaf = parts
            if group not in current:
                raise KeyError(f"Unknown settings group '{group}'")
            target = updated[group]
            if not hasattr(target, leaf):
                raise KeyError(f"Unknown field '{leaf}' for settings group '{group}'")
            current_value = getattr(target, leaf)
            cast_value = _cast_value(current_value, raw_value)
            updated[group] = _replace_dataclass(target, {leaf: cast_value})
        return SessionSettings(**updated)


def load_session_settings(path: Optional[Path] = None) -> SessionSettings:
    """Load session settings from *path* or default search locations."""

    config_data: Mapping[str, Any]
    chosen_path: Optional[Path] = None

    if path is not None:
        chosen_path = path.expanduser().resolve()
        config_data = _loads(chosen_path)
    else:
        env_path = os.getenv("COMPACTCHAT_SESSION_CONFIG")
        if env_path:
            candidate = Path(env_path).expanduser().resolve()
            if candidate.exists():
                chosen_path = candidate
                config_data = _loads(candidate)
            else:
                config_data = {}
        else:
            for candidate in DEFAULT_CONFIG_PATHS:
                if candidate.exists():
                    chosen_path = candidate
                    config_data = _loads(candidate)
                    break
            else:
                config_data = {}

    return _settings_from_mapping(config_data, base_dir=chosen_path.parent if chosen_path else None)


def _loads(path: Path) -> Mapping[str, Any]:
    with path.open("rb") as fh:
        return tomllib.load(fh)


def _settings_from_mapping(mapping: Mapping[str, Any], *, base_dir: Optional[Path]) -> SessionSettings:
    model = ModelSettings()
    model_section = _coerce_mapping(mapping.get("model"))
    if model_section:
        model = _replace_dataclass(
            model,
            {
                "name": str(model_section.get("name", model.name)),
                "max_tokens": int(model_section.get("max_tokens", model.max_tokens)),
                "system_prompt": str(model_section.get("system_prompt", model.system_prompt)),
            },
        )

    compaction = CompactionSettings()
    compaction_section = _coerce_mapping(mapping.get("compaction"))
    if compaction_section:
        compaction = _replace_dataclass(
            compaction,
            {
                "auto": bool(compaction_section.get("auto", compaction.auto)),
                "token_limit_threshold": int(
                    compaction_section.get("token_limit_threshold", compaction.token_limit_threshold)
                ),
                "token_limit_target": int(
                    compaction_section.get("token_limit_target", compaction.token_limit_target)
                ),
                "tool_result_threshold": int(
                    compaction_section.get("tool_result_threshold", compaction.tool_result_threshold)
                ),
                "tool_call_threshold": int(
                    compaction_section.get("tool_call_threshold", compaction.tool_call_threshold)
                ),
            },
        )

    chat = ChatSettings()
    chat_section = _coerce_mapping(mapping.get("chat"))
    if chat_section:
        chat = _replace_dataclass(
            chat,
            {
                "max_turns": int(chat_section.get("max_turns", chat.max_turns)),
                "skills_enabled": bool(chat_section.get("skills_enabled", chat.skills_enabled)),
            },
        )
        if chat.max_turns < 1:
            raise ValueError("chat.max_turns must be at least 1")

    store = StoreSettings()
    store_section = _coerce_mapping(mapping.get("store"))
    if store_section:
        store = StoreSettings(path=_coerce_path(store_section.get("path"), base_dir=base_dir))

    return SessionSettings(model=model, compaction=compaction, chat=chat, store=store)


def _coerce_path(value: Any, *, base_dir: Optional[Path]) -> Optional[Path]:
    if value is None or str(value).strip() == "":
        return None
    candidate = Path(str(value)).expanduser()
    if not candidate.is_absolute() and base_dir is not None:
        candidate = base_dir / candidate
    return candidate.resolve()


def _replace_dataclass(obj: Any, fields: Mapping[str, Any]) -> Any:
    filtered = {k: v for k, v in fields.items() if hasattr(obj, k)}
    return replace(obj, **filtered)


def _coerce_mapping(value: Any) -> Optional[Mapping[str, Any]]:
    return value if isinstance(value, Mapping) else None


def _cast_value(example: Any, raw: Any) -> Any:
    if isinstance(example, bool):
        if isinstance(raw, str):
            lowered = raw.strip().lower()
            if lowered in {"true", "1", "yes", "on"}:
                return True
            if lowered in {"false", "0", "no", "off"}:
                return False
        return bool(raw)
    if isinstance(example, int):
        return int(raw)
    if isinstance(example, float):
        return float(raw)
    if isinstance(example, Path) or (example is None and isinstance(raw, (str, Path))):
        text = str(raw).strip()
        return Path(text).expanduser().resolve() if text else None
    if isinstance(example, tuple):
        if isinstance(raw, str):
            return tuple(part.strip() for part in raw.split(",") if part.strip())
        if isinstance(raw, Iterable):
            return tuple(str(item) for item in raw)
        return example
    if isinstance(example, str):
        return str(raw).strip()
    return raw


__all__ = [
    "ChatSettings",
    "CompactionSettings",
    "ModelSettings",
    "SessionSettings",
    "StoreSettings",
    "load_session_settings",
]
