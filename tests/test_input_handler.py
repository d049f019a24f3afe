"""Tests for the chat prompt input handler."""

from pathlib import Path
from unittest.mock import MagicMock, Mock, patch

import pytest
from prompt_toolkit.history import FileHistory

from input_handler import DEFAULT_HISTORY_FILE, HistoryManager, InputHandler, default_history_file


def _write_history(path: Path, count: int) -> None:
    path.write_text("".join(f"message {i}\n" for i in range(count)), encoding="utf-8")


class TestHistoryManager:
    def test_history_file_honours_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("COMPACTCHAT_HISTORY_FILE", str(tmp_path / "h.txt"))
        assert HistoryManager().history_file == tmp_path / "h.txt"

        monkeypatch.delenv("COMPACTCHAT_HISTORY_FILE")
        assert default_history_file() == DEFAULT_HISTORY_FILE

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        history_file = tmp_path / "subdir" / "history.txt"
        HistoryManager(history_file=history_file)
        assert history_file.parent.exists()

    def test_unwritable_directory_is_tolerated(self) -> None:
        with patch("pathlib.Path.mkdir", side_effect=PermissionError):
            manager = HistoryManager(history_file=Path("/nonexistent/history.txt"))
        assert manager.history_file == Path("/nonexistent/history.txt")

    def test_rotate_history_keeps_last_entries(self, tmp_path: Path) -> None:
        history_file = tmp_path / "history.txt"
        _write_history(history_file, 10)

        HistoryManager(history_file=history_file, max_entries=5).rotate_history()

        lines = history_file.read_text(encoding="utf-8").splitlines()
        assert lines == [f"message {i}" for i in range(5, 10)]

    def test_rotate_history_without_file_or_with_bad_bytes(self, tmp_path: Path) -> None:
        history_file = tmp_path / "history.txt"
        manager = HistoryManager(history_file=history_file)
        manager.rotate_history()

        history_file.write_bytes(b"\xff\xfe invalid utf-8")
        manager.rotate_history()
        assert history_file.read_bytes() == b"\xff\xfe invalid utf-8"

    def test_get_file_history(self, tmp_path: Path) -> None:
        manager = HistoryManager(history_file=tmp_path / "history.txt")
        assert isinstance(manager.get_file_history(), FileHistory)
        with patch("input_handler.FileHistory", side_effect=PermissionError):
            assert manager.get_file_history() is None


class TestInputHandler:
    @patch("input_handler.PromptSession")
    def test_get_input_uses_prompt_session(self, mock_session_class: Mock, tmp_path: Path) -> None:
        mock_session = MagicMock()
        mock_session.prompt.return_value = "hello"
        mock_session_class.return_value = mock_session
        handler = InputHandler(history_manager=HistoryManager(history_file=tmp_path / "history.txt"))

        assert handler.get_input("You > ") == "hello"
        assert handler.get_input("You > ") == "hello"
        mock_session_class.assert_called_once()
        mock_session.prompt.assert_called_with("You > ")

    @patch("input_handler.PromptSession")
    def test_get_input_rotates_history_even_on_eof(self, mock_session_class: Mock, tmp_path: Path) -> None:
        mock_session = MagicMock()
        mock_session.prompt.side_effect = EOFError
        mock_session_class.return_value = mock_session
        history_file = tmp_path / "history.txt"
        _write_history(history_file, 10)
        handler = InputHandler(history_manager=HistoryManager(history_file=history_file, max_entries=5))

        with pytest.raises(EOFError):
            handler.get_input("You > ")

        assert len(history_file.read_text(encoding="utf-8").splitlines()) == 5

    @patch("input_handler.PromptSession", side_effect=RuntimeError("no terminal"))
    def test_falls_back_to_stdin(self, _mock_session_class: Mock, tmp_path: Path, stdin_stub, capsys) -> None:
        stdin_stub("typed line\n")
        handler = InputHandler(history_manager=HistoryManager(history_file=tmp_path / "history.txt"))

        assert handler.get_input("You > ") == "typed line"
        assert capsys.readouterr().out == "You > "
        with pytest.raises(EOFError):
            handler.get_input()
