"""Pydantic schemas for validated chat tool inputs."""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Type

from pydantic import BaseModel, Field, ValidationError, field_validator


class ToolSchema(BaseModel):
    """Base class for all tool schemas with strict validation."""

    model_config = {
        "extra": "forbid",
        "validate_assignment": True,
    }

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class SearchSkillsInput(ToolSchema):
    query: str = Field(..., min_length=1, description="What the user is trying to accomplish")

    @field_validator("query")
    @classmethod
    def strip_query(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("query must contain text")
        return cleaned


class ListFilesInput(ToolSchema):
    path_prefix: Optional[str] = Field(None, description="Only list artifacts under this path")
    limit: int = Field(50, ge=1, le=500, description="Maximum number of artifacts to return")


class RecallContextInput(ToolSchema):
    query: str = Field(..., min_length=1)
    limit: int = Field(5, ge=1, le=50)


_SCHEMA_MAP: Dict[str, Type[ToolSchema]] = {
    "search_skills": SearchSkillsInput,
    "list_files": ListFilesInput,
    "recall_context": RecallContextInput,
}


def parse_tool_input(tool_name: str, raw_input: Mapping[str, Any]) -> ToolSchema | Dict[str, Any]:
    """Return a validated schema instance, or the raw mapping for unknown tools."""

    schema_cls = _SCHEMA_MAP.get(tool_name)
    if schema_cls is None:
        return dict(raw_input)
    return schema_cls.model_validate(dict(raw_input))


def validate_tool_input(tool_name: str, raw_input: Mapping[str, Any]) -> Dict[str, Any]:
    parsed = parse_tool_input(tool_name, raw_input)
    if isinstance(parsed, ToolSchema):
        return parsed.dump()
    return parsed


__all__ = [
    "ListFilesInput",
    "RecallContextInput",
    "SearchSkillsInput",
    "ToolSchema",
    "ValidationError",
    "parse_tool_input",
    "validate_tool_input",
]
