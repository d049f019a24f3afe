"""Tool that lists files uploaded to the session's disk."""
from __future__ import annotations

from context_service import list_artifacts
from tools.handler import ToolContext, ToolOutput, dumps
from tools.schemas import ListFilesInput


def list_files_tool_def() -> dict:
    return {
        "name": "list_files",
        "description": (
            "List files the user uploaded to this conversation's storage area. Optionally pass `path_prefix` "
            "(for example `/reports/`) to narrow the listing and `limit` to cap the number of entries (default 50). "
            "Each entry reports path, filename, MIME type and size in bytes."
        ),
        "input_schema": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "path_prefix": {"type": "string", "description": "Only include artifacts whose path starts with this prefix."},
                "limit": {"type": "integer", "minimum": 1, "maximum": 500},
            },
        },
    }


def list_files_impl(payload: ListFilesInput, context: ToolContext) -> ToolOutput:
    artifacts = list_artifacts(context.client, context.disk_id)
    if artifacts is None:
        return ToolOutput(content="File storage is not available for this session.", success=False)

    if payload.path_prefix:
        artifacts = [artifact for artifact in artifacts if artifact.path.startswith(payload.path_prefix)]
    total = len(artifacts)
    shown = artifacts[: payload.limit]
    entries = [
        {
            "path": artifact.path,
            "filename": artifact.filename,
            "mime_type": artifact.mime_type,
            "size": artifact.size,
        }
        for artifact in shown
    ]
    result = {"files": entries, "total": total}
    if total > len(shown):
        result["truncated"] = True
    return ToolOutput(content=dumps(result), success=True, metadata={"count": total})


__all__ = ["list_files_impl", "list_files_tool_def"]
