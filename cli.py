"""Command-line interface for the compacting chat backend."""
from __future__ import annotations

import argparse
import json
import logging
import mimetypes
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Optional

from chat_service import ChatService, ChatTurnResult
from context_service import delete_session, list_artifacts, log_context_error, upload_file
from errors import ChatError, format_error_response
from run import build_default_tools, run_chat
from session import load_session_settings

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="compactchat", description="Chat with automatic context compaction")
    parser.add_argument("--config", type=Path, help="Path to TOML session settings")
    parser.add_argument("--user", default="local", help="User id owning the sessions (default: local)")
    parser.add_argument("--verbose", action="store_true", help="Log debug information to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    chat = subparsers.add_parser("chat", help="Start an interactive chat")
    chat.add_argument("--session", help="Resume an existing session id")
    chat.add_argument("--title", help="Title for a newly created session")
    chat.add_argument("--no-color", action="store_true", help="Disable ANSI color output")

    send = subparsers.add_parser("send", help="Send one message headlessly")
    send.add_argument("session_id")
    prompt_group = send.add_mutually_exclusive_group(required=False)
    prompt_group.add_argument("--prompt", help="Message text")
    prompt_group.add_argument("--prompt-file", type=Path, help="File containing the message")
    send.add_argument("--json", action="store_true", help="Emit machine-readable JSON summary")

    sessions = subparsers.add_parser("sessions", help="Manage chat sessions")
    session_cmds = sessions.add_subparsers(dest="sessions_command", required=True)
    session_cmds.add_parser("list", help="List the user's sessions")
    create = session_cmds.add_parser("create", help="Create a session")
    create.add_argument("--title", help="Session title")
    delete = session_cmds.add_parser("delete", help="Forget a session")
    delete.add_argument("session_id")
    delete.add_argument("--remote", action="store_true", help="Also delete the remote context session")

    plan = subparsers.add_parser("plan", help="Show the compaction directives for a session")
    plan.add_argument("session_id")
    plan.add_argument("--json", action="store_true", help="Emit the edit strategies as JSON")

    upload = subparsers.add_parser("upload", help="Upload a file to the session's disk")
    upload.add_argument("path", type=Path)
    upload.add_argument("--session", help="Session whose disk receives the file")
    upload.add_argument("--mime-type", help="Override the detected MIME type")

    files = subparsers.add_parser("files", help="List uploaded files")
    files.add_argument("--session", help="Session whose disk to list")
    files.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    return parser.parse_args(argv)


def build_service(args: argparse.Namespace) -> ChatService:
    try:
        settings = load_session_settings(args.config)
    except (OSError, ValueError) as exc:
        raise SystemExit(f"Failed to load config {args.config}: {exc}")
    return ChatService.from_env(settings=settings, tools=build_default_tools())


def load_prompt(args: argparse.Namespace) -> str:
    if args.prompt_file:
        return args.prompt_file.read_text(encoding="utf-8")
    if args.prompt:
        return args.prompt
    if not sys.stdin.isatty():
        return sys.stdin.read()
    raise SystemExit("No prompt provided. Use --prompt, --prompt-file, or pipe input via stdin.")


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    service = build_service(args)
    try:
        return _dispatch(args, service)
    except ChatError as exc:
        error = format_error_response(exc, include_details=args.verbose)
        print(f"{error['code']}: {error['message']}", file=sys.stderr)
        return 1


def _dispatch(args: argparse.Namespace, service: ChatService) -> int:
    if args.command == "chat":
        session_id = args.session or service.create_session(args.user, args.title).id
        run_chat(service, session_id, use_color=not args.no_color)
        return 0

    if args.command == "send":
        result = service.send(args.session_id, load_prompt(args))
        if args.json:
            print(_result_to_json(result))
        else:
            _print_human_summary(result)
        return 0

    if args.command == "sessions":
        return _sessions(args, service)

    if args.command == "plan":
        report = service.plan(args.session_id)
        if args.json:
            print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
        else:
            tokens = report.usage.total_tokens if report.usage else "unknown"
            print(f"Messages: {report.message_count}  tokens: {tokens}")
            print(f"Tool results: {report.activity.tool_results}  tool calls: {report.activity.tool_calls}")
            if not report.directives:
                print("No compaction needed.")
            for directive in report.directives:
                print(f"{directive.kind}: {json.dumps(directive.to_payload()['params'])}")
        return 0

    if args.command == "upload":
        disk_id = _disk_for(service, args.session)
        mime_type = args.mime_type or mimetypes.guess_type(args.path.name)[0] or "application/octet-stream"
        try:
            data = args.path.read_bytes()
        except OSError as exc:
            print(f"Cannot read {args.path}: {exc}", file=sys.stderr)
            return 1
        stored_path = upload_file(service.context_client, args.path.name, data, mime_type, disk_id)
        if stored_path is None:
            print("Upload failed; is the context service configured?", file=sys.stderr)
            return 1
        print(stored_path)
        return 0

    if args.command == "files":
        artifacts = list_artifacts(service.context_client, _disk_for(service, args.session))
        if artifacts is None:
            print("File storage is not available.", file=sys.stderr)
            return 1
        if args.json:
            print(json.dumps([asdict(artifact) for artifact in artifacts], ensure_ascii=False, indent=2))
        else:
            for artifact in artifacts:
                print(f"{artifact.path}\t{artifact.mime_type}\t{artifact.size}")
        return 0

    raise SystemExit(f"Unknown command {args.command}")


def _sessions(args: argparse.Namespace, service: ChatService) -> int:
    if args.sessions_command == "list":
        for record in service.store.list_for_user(args.user):
            print(f"{record.id}\t{record.title}\t{record.created_at}")
        return 0

    if args.sessions_command == "create":
        record = service.create_session(args.user, args.title)
        print(record.id)
        return 0

    record = service.store.get(args.session_id)
    if record is None:
        print(f"Session {args.session_id} not found", file=sys.stderr)
        return 1
    if args.remote and service.context_client is not None and not record.context_session_id.startswith("local-"):
        try:
            service.context_client.delete_session(record.context_session_id)
        except ChatError as exc:
            log_context_error(
                "Failed to delete remote session",
                exc,
                service.context_client,
                context_session_id=record.context_session_id,
            )
            return 1
    if not delete_session(service.store, record.context_session_id):
        return 1
    print(f"Deleted {record.id}")
    return 0


def _disk_for(service: ChatService, session_id: Optional[str]) -> Optional[str]:
    if not session_id:
        return None
    record = service.store.get(session_id)
    if record is None:
        raise ChatError(f"Unknown session {session_id}")
    return record.disk_id


def _result_to_json(result: ChatTurnResult) -> str:
    payload: Dict[str, Any] = {
        "session_id": result.session_id,
        "reply": result.reply,
        "stopped_reason": result.stopped_reason,
        "turns_used": result.turns_used,
        "degraded": result.degraded,
        "edit_strategies": [directive.to_payload() for directive in result.directives],
        "tools": [event.to_dict() for event in result.tool_events],
    }
    return json.dumps(payload, ensure_ascii=False, indent=2)


def _print_human_summary(result: ChatTurnResult) -> None:
    print(result.reply or "<no reply>")
    print("\n---")
    print(f"Stopped reason: {result.stopped_reason} (turns: {result.turns_used})")
    if result.directives:
        print("Compaction: " + ", ".join(directive.kind for directive in result.directives))
    else:
        print("Compaction: none")
    if result.tool_events:
        print("Tools executed:")
        for event in result.tool_events:
            status = "error" if event.is_error else "ok"
            print(f"  - turn {event.turn}: {event.tool_name} [{status}]")
    if result.degraded:
        print("Context service unavailable; local history only.")


if __name__ == "__main__":
    raise SystemExit(main())
