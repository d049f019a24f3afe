"""Prompt input for the interactive chat, with persistent history via prompt_toolkit."""

import os
import re
import sys
from pathlib import Path
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import ANSI
from prompt_toolkit.history import FileHistory
from prompt_toolkit.input import Input


DEFAULT_HISTORY_FILE = Path.home() / ".compactchat" / "history.txt"
MAX_HISTORY_ENTRIES = 200

ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m")


def default_history_file() -> Path:
    override = os.getenv("COMPACTCHAT_HISTORY_FILE")
    if override:
        return Path(override).expanduser()
    return DEFAULT_HISTORY_FILE


def _format_prompt(prompt: str):
    if ANSI_ESCAPE_PATTERN.search(prompt):
        return ANSI(prompt)
    return prompt


class HistoryManager:
    """Keeps the chat prompt history file bounded to *max_entries* lines."""

    def __init__(self, history_file: Optional[Path] = None, max_entries: int = MAX_HISTORY_ENTRIES):
        self.history_file = history_file or default_history_file()
        self.max_entries = max_entries
        try:
            self.history_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            # Unwritable home; prompts still work without persisted history.
            pass

    def rotate_history(self) -> None:
        if not self.history_file.exists():
            return
        try:
            lines = self.history_file.read_text(encoding="utf-8").splitlines(keepends=True)
            if len(lines) > self.max_entries:
                self.history_file.write_text("".join(lines[-self.max_entries:]), encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            pass

    def get_file_history(self) -> Optional[FileHistory]:
        try:
            return FileHistory(str(self.history_file))
        except OSError:
            return None


class InputHandler:
    """Reads chat prompts, falling back to plain stdin when no terminal is attached."""

    def __init__(self, history_manager: Optional[HistoryManager] = None, custom_input: Optional[Input] = None):
        self.history_manager = history_manager or HistoryManager()
        self._session: Optional[PromptSession] = None
        self._custom_input = custom_input
        self._fallback_mode = False

    def _get_session(self) -> Optional[PromptSession]:
        if self._fallback_mode:
            return None
        if self._session is None:
            kwargs = {
                "history": self.history_manager.get_file_history(),
                "enable_history_search": True,
                "multiline": False,
            }
            if self._custom_input is not None:
                kwargs["input"] = self._custom_input
            try:
                self._session = PromptSession(**kwargs)
            except Exception:
                # Non-TTY stdin (pipes, CI) cannot host a PromptSession.
                self._fallback_mode = True
                return None
        return self._session

    def get_input(self, prompt: str = "") -> str:
        """Return one line of input; raises EOFError on ctrl-d."""

        session = self._get_session()
        try:
            if session is None:
                if prompt:
                    print(prompt, end="", flush=True)
                line = sys.stdin.readline()
                if not line:
                    raise EOFError
                return line.rstrip("\n")
            return session.prompt(_format_prompt(prompt))
        finally:
            self.history_manager.rotate_history()

    def cleanup(self) -> None:
        self.history_manager.rotate_history()
