import io

from rich.console import Console

from run import run_chat
from tests.mocking import text_block


class ScriptedInput:
    def __init__(self, *lines):
        self._lines = list(lines)
        self.cleaned_up = False

    def get_input(self, prompt=""):
        if not self._lines:
            raise EOFError
        line = self._lines.pop(0)
        if isinstance(line, BaseException):
            raise line
        return line

    def cleanup(self):
        self.cleaned_up = True


def _console():
    buffer = io.StringIO()
    return Console(file=buffer, no_color=True, highlight=False, width=120), buffer


def test_run_chat_sends_messages_and_handles_commands(make_service, anthropic_mock, fake_context):
    service = make_service()
    record = service.create_session("u1")
    fake_context.token_counts[record.context_session_id] = 90_000
    anthropic_mock.add_response_from_blocks([text_block("**compacted** reply")])
    console, buffer = _console()
    scripted = ScriptedInput("", "/help", "hello", KeyboardInterrupt())

    run_chat(service, record.id, console=console, input_handler=scripted)

    output = buffer.getvalue()
    assert "/plan" in output
    assert "context compacted: token_limit" in output
    assert "compacted reply" in output
    assert scripted.cleaned_up is True
    assert len(anthropic_mock.requests) == 1


def test_run_chat_reports_errors_and_continues(make_service, anthropic_mock):
    service = make_service()
    record = service.create_session("u1")
    console, buffer = _console()

    run_chat(service, "missing", console=console, input_handler=ScriptedInput("hello"))
    assert "INVALID_REQUEST: Unknown session missing" in buffer.getvalue()

    anthropic_mock.add_response_from_blocks([text_block("fine")])
    run_chat(service, record.id, console=console, input_handler=ScriptedInput("again"))
    assert "fine" in buffer.getvalue()
