"""Client and best-effort helpers for the hosted context service."""
from .client import ContextServiceClient
from .integration import (
    Artifact,
    CreatedSession,
    create_session_directly,
    delete_session,
    get_or_create_user_space_id,
    get_token_counts,
    list_artifacts,
    load_messages,
    log_context_error,
    search_relevant_context,
    search_relevant_skills,
    store_message,
    upload_file,
)
from .skills import Skill, render_skills_prompt, skill_from_block, skills_from_search

__all__ = [
    "Artifact",
    "ContextServiceClient",
    "CreatedSession",
    "Skill",
    "create_session_directly",
    "delete_session",
    "get_or_create_user_space_id",
    "get_token_counts",
    "list_artifacts",
    "load_messages",
    "log_context_error",
    "render_skills_prompt",
    "search_relevant_context",
    "search_relevant_skills",
    "skill_from_block",
    "skills_from_search",
    "store_message",
    "upload_file",
]
