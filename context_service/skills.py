"""Normalization of skill (SOP) blocks returned by space experience search."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional

UNTITLED_SKILL = "Untitled skill"
NO_SUMMARY = "No summary available."


@dataclass(frozen=True)
class Skill:
    title: str
    summary: str
    content: Optional[str] = None
    use_when: Optional[str] = None
    preferences: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"title": self.title, "summary": self.summary}
        for key in ("content", "use_when", "preferences"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload


def skill_from_block(block: Mapping[str, Any]) -> Skill:
    props = _section(block, "props")
    properties = _section(block, "properties")
    metadata = _section(block, "metadata")

    title = _first(
        block.get("title"),
        block.get("name"),
        props.get("title"),
        properties.get("title"),
        metadata.get("title"),
    ) or UNTITLED_SKILL

    use_when = _first(props.get("use_when"), properties.get("use_when"), block.get("use_when"))
    preferences = _first(props.get("preferences"), properties.get("preferences"), block.get("preferences"))

    summary = _first(
        block.get("summary"),
        block.get("description"),
        props.get("summary"),
        props.get("description"),
        properties.get("summary"),
        properties.get("description"),
        metadata.get("summary"),
        metadata.get("description"),
    )
    if not summary:
        parts = []
        if use_when:
            parts.append(f"Use when: {use_when}")
        if preferences:
            parts.append(f"Preferences: {preferences}")
        summary = ". ".join(parts) if parts else NO_SUMMARY

    content = _first(block.get("content"), block.get("text"), props.get("content"), properties.get("content"))

    return Skill(
        title=str(title),
        summary=str(summary),
        content=content if isinstance(content, str) else None,
        use_when=str(use_when) if use_when else None,
        preferences=str(preferences) if preferences else None,
    )


def skills_from_search(result: Mapping[str, Any]) -> List[Skill]:
    blocks = result.get("cited_blocks") or []
    if not isinstance(blocks, list):
        return []
    return [skill_from_block(block) for block in blocks if isinstance(block, Mapping)]


def render_skills_prompt(skills: Iterable[Skill]) -> str:
    """Render *skills* as a system prompt section, empty when there are none."""

    lines: List[str] = []
    for idx, skill in enumerate(skills, start=1):
        lines.append(f"{idx}. {skill.title}: {skill.summary}")
        if skill.use_when:
            lines.append(f"   Use when: {skill.use_when}")
        if skill.preferences:
            lines.append(f"   Preferences: {skill.preferences}")
        if skill.content:
            lines.extend(f"   {line}" for line in skill.content.strip().splitlines())
    if not lines:
        return ""
    header = "Relevant skills learned from previous sessions (follow them when they apply):"
    return "\n".join([header, *lines])


def _section(block: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = block.get(key)
    return value if isinstance(value, Mapping) else {}


def _first(*values: Any) -> Any:
    for value in values:
        if value:
            return value
    return None


__all__ = ["Skill", "render_skills_prompt", "skill_from_block", "skills_from_search"]
