"""Slash command handling for interactive sessions."""
from __future__ import annotations

from typing import TYPE_CHECKING

from context_service import list_artifacts, search_relevant_skills
from errors import ChatError

if TYPE_CHECKING:
    from chat_service import ChatService

HELP_TEXT = "\n".join(
    [
        "/status                     session, thresholds and counters",
        "/plan                       compaction directives the next turn would send",
        "/skills <query>             search learned skills",
        "/files                      list uploaded files",
        "/config set group.field=v   change a setting for this process",
    ]
)


def handle_slash_command(line: str, service: "ChatService", session_id: str) -> tuple[bool, str]:
    """Handle slash commands; return (handled, response_message)."""

    line = line.strip()
    if not line.startswith("/"):
        return False, ""
    parts = line[1:].split()
    if not parts:
        return False, ""
    command = parts[0].lower()
    args = parts[1:]

    if command == "help":
        return True, HELP_TEXT

    if command == "status":
        record = service.store.get(session_id)
        if record is None:
            return True, f"Session {session_id} not found"
        compaction = service.settings.compaction
        lines = [
            f"Session: {record.id} ({record.title})",
            f"Context session: {record.context_session_id}",
            f"Space: {record.space_id or '<none>'}  Disk: {record.disk_id or '<none>'}",
            f"Model: {service.config.model} (max_tokens={service.config.max_tokens})",
            f"Auto-compaction: {'on' if compaction.auto else 'off'}",
            (
                f"Thresholds: tokens>{compaction.token_limit_threshold} -> {compaction.token_limit_target}, "
                f"tool results>{compaction.tool_result_threshold}, tool calls>{compaction.tool_call_threshold}"
            ),
            f"Telemetry: {service.telemetry.snapshot()}",
        ]
        return True, "\n".join(lines)

    if command == "plan":
        try:
            report = service.plan(session_id)
        except ChatError as exc:
            return True, f"Plan failed: {exc.message}"
        tokens = report.usage.total_tokens if report.usage else "unknown"
        lines = [
            f"Messages: {report.message_count}  tokens: {tokens}",
            f"Tool results: {report.activity.tool_results}  tool calls: {report.activity.tool_calls}",
        ]
        if not report.directives:
            lines.append("No compaction needed.")
        for directive in report.directives:
            lines.append(f"Would send: {directive.to_payload()}")
        return True, "\n".join(lines)

    if command == "skills":
        if not args:
            return True, "Usage: /skills <query>"
        record = service.store.get(session_id)
        skills = search_relevant_skills(service.context_client, record.space_id if record else None, " ".join(args))
        if not skills:
            return True, "No relevant skills found."
        return True, "\n".join(f"{idx}. {skill.title}: {skill.summary}" for idx, skill in enumerate(skills, 1))

    if command == "files":
        record = service.store.get(session_id)
        artifacts = list_artifacts(service.context_client, record.disk_id if record else None)
        if artifacts is None:
            return True, "File storage is not available."
        if not artifacts:
            return True, "No files uploaded."
        return True, "\n".join(f"  - {item.path} ({item.mime_type}, {item.size} bytes)" for item in artifacts)

    if command == "config" and args:
        sub = args[0].lower()
        if sub == "set" and len(args) >= 2:
            assignment = " ".join(args[1:])
            if "=" not in assignment:
                return True, "Usage: /config set group.field=value"
            key, value = assignment.split("=", 1)
            try:
                service.settings = service.settings.update_with(**{key.strip(): value.strip()})
            except (KeyError, ValueError) as exc:
                return True, f"Failed to update setting: {exc}"
            return True, f"Updated setting {key.strip()} to {value.strip()}"
        return True, "Usage: /config set group.field=value"

    return True, "Unknown command"


__all__ = ["HELP_TEXT", "handle_slash_command"]
