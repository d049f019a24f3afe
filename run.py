"""Interactive chat entry point and default tool registry."""
from __future__ import annotations

import logging
from typing import Optional

from pyfiglet import Figlet
from rich.console import Console
from rich.markdown import Markdown

from chat_service import ChatService, ChatTurnResult
from commands import handle_slash_command
from errors import ChatError, format_error_response
from input_handler import InputHandler
from tools import ChatTool
from tools_list_files import list_files_impl, list_files_tool_def
from tools_recall_context import recall_context_impl, recall_context_tool_def
from tools_search_skills import search_skills_impl, search_skills_tool_def

logger = logging.getLogger(__name__)


def build_default_tools() -> list[ChatTool]:
    return [
        ChatTool(**search_skills_tool_def(), fn=search_skills_impl, capabilities={"context_read"}),
        ChatTool(**list_files_tool_def(), fn=list_files_impl, capabilities={"context_read"}),
        ChatTool(**recall_context_tool_def(), fn=recall_context_impl, capabilities={"context_read"}),
    ]


def run_chat(
    service: ChatService,
    session_id: str,
    *,
    use_color: bool = True,
    console: Optional[Console] = None,
    input_handler: Optional[InputHandler] = None,
) -> None:
    """Read prompts until EOF, sending each through *service*."""

    console = console or Console(no_color=not use_color, highlight=False, soft_wrap=False)
    input_handler = input_handler or InputHandler()
    banner = Figlet(font="standard").renderText("COMPACTCHAT").rstrip("\n")
    console.print(banner, style="cyan", markup=False, highlight=False)
    console.print(f"session [bold]{session_id}[/] (ctrl-d to quit, /help for commands)")

    try:
        while True:
            try:
                line = input_handler.get_input("You > ").strip()
            except EOFError:
                break
            except KeyboardInterrupt:
                console.print()
                continue
            if not line:
                continue

            handled, message = handle_slash_command(line, service, session_id)
            if handled:
                if message:
                    console.print(message, style="yellow", markup=False)
                continue

            try:
                result = service.send(session_id, line)
            except ChatError as exc:
                logger.debug("Chat turn failed", exc_info=True)
                error = format_error_response(exc)
                console.print(f"[red]{error['code']}[/]: {error['message']}")
                continue
            _render_turn(console, result)
    finally:
        input_handler.cleanup()


def _render_turn(console: Console, result: ChatTurnResult) -> None:
    if result.directives:
        kinds = ", ".join(directive.kind for directive in result.directives)
        console.print(f"[dim]context compacted: {kinds}[/]")
    for event in result.tool_events:
        status = "[red]error[/]" if event.is_error else "[green]ok[/]"
        console.print(f"[dim]tool {event.tool_name}[/] {status}")
    console.print(Markdown(result.reply or "_<no reply>_"))
    if result.degraded:
        console.print("[yellow]context service unavailable; this turn used local history only[/]")
    if result.stopped_reason != "completed":
        console.print(f"[yellow]stopped: {result.stopped_reason}[/]")


def main() -> None:
    from argparse import ArgumentParser

    parser = ArgumentParser(description="Chat with automatic context compaction")
    parser.add_argument("--user", default="local", help="User id owning the session")
    parser.add_argument("--session", help="Resume an existing session id")
    parser.add_argument("--title", help="Title for a newly created session")
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI color output")
    args = parser.parse_args()

    service = ChatService.from_env(tools=build_default_tools())
    session_id = args.session or service.create_session(args.user, args.title).id
    run_chat(service, session_id, use_color=not args.no_color)


if __name__ == "__main__":
    main()
