"""Tool that looks up learned skills in the user's space."""
from __future__ import annotations

from context_service import search_relevant_skills
from tools.handler import ToolContext, ToolOutput, dumps
from tools.schemas import SearchSkillsInput


def search_skills_tool_def() -> dict:
    return {
        "name": "search_skills",
        "description": (
            "Search the user's long-term skill memory for reusable procedures (SOPs) learned in earlier conversations. "
            "Pass a short `query` describing the task at hand. Each result has a title and summary and may include "
            "`use_when`, `preferences`, and full `content`. Call this before starting a multi-step task the user may have "
            "done before; do not call it for small talk or for facts about the current conversation."
        ),
        "input_schema": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "query": {"type": "string", "description": "Natural language description of the task."},
            },
            "required": ["query"],
        },
    }


def search_skills_impl(payload: SearchSkillsInput, context: ToolContext) -> ToolOutput:
    if context.client is None or not context.space_id:
        return ToolOutput(content="Skill memory is not available for this session.", success=False)
    skills = search_relevant_skills(context.client, context.space_id, payload.query)
    if not skills:
        return ToolOutput(content="No relevant skills found.", success=True, metadata={"count": 0})
    return ToolOutput(
        content=dumps({"skills": [skill.to_dict() for skill in skills]}),
        success=True,
        metadata={"count": len(skills)},
    )


__all__ = ["search_skills_impl", "search_skills_tool_def"]
