"""Predefined team compositions.

A template fixes the role composition, default collaboration mode and
config of a team. Collaboration requests may name a template instead of
an existing team; the engine then creates an ephemeral team from it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from .errors import ValidationError
from .models import CollaborationMode, MemberRole, MemberSpec, TeamConfig


@dataclass(frozen=True)
class TeamTemplate:
    """Blueprint for creating a team.

    Attributes:
        name: Template name used for lookup.
        description: What the team is for.
        members: Members created for every instance.
        mode: Default collaboration mode.
        config: Default team configuration.
    """

    name: str
    description: str
    members: Tuple[MemberSpec, ...]
    mode: CollaborationMode
    config: TeamConfig = field(default_factory=TeamConfig)


def _member(name: str, role: MemberRole, *capabilities: str) -> MemberSpec:
    return MemberSpec(name=name, role=role, capabilities=frozenset(capabilities))


TEAM_TEMPLATES: Dict[str, TeamTemplate] = {
    "code-review": TeamTemplate(
        name="code-review",
        description="Team for comprehensive code review",
        members=(
            _member("lead", MemberRole.LEADER, "review", "approve"),
            _member("syntax-checker", MemberRole.SPECIALIST, "lint", "typecheck"),
            _member("security-checker", MemberRole.SPECIALIST, "security-scan"),
            _member("style-checker", MemberRole.SPECIALIST, "format-check"),
        ),
        mode=CollaborationMode.PARALLEL,
        config=TeamConfig(max_concurrency=4, task_timeout=300.0),
    ),
    "development": TeamTemplate(
        name="development",
        description="Team for feature development",
        members=(
            _member("architect", MemberRole.COORDINATOR, "design", "review"),
            _member("developer", MemberRole.WORKER, "implement", "test"),
            _member("tester", MemberRole.REVIEWER, "test", "verify"),
        ),
        mode=CollaborationMode.SEQUENTIAL,
        config=TeamConfig(max_concurrency=3, task_timeout=600.0),
    ),
    "brainstorming": TeamTemplate(
        name="brainstorming",
        description="Team for creative brainstorming",
        members=(
            _member("facilitator", MemberRole.LEADER, "moderate", "synthesize"),
            _member("idea-generator-1", MemberRole.WORKER, "creative", "ideate"),
            _member("idea-generator-2", MemberRole.WORKER, "creative", "ideate"),
            _member("critic", MemberRole.REVIEWER, "analyze", "evaluate"),
        ),
        mode=CollaborationMode.DEBATE,
        config=TeamConfig(max_concurrency=4, task_timeout=300.0),
    ),
}


def get_template(name: str) -> TeamTemplate:
    """Look up a template by name.

    Raises:
        ValidationError: If no template has that name.
    """
    template = TEAM_TEMPLATES.get(name)
    if template is None:
        known = ", ".join(sorted(TEAM_TEMPLATES))
        raise ValidationError(f"Unknown team template '{name}' (known: {known})")
    return template


def list_templates() -> List[TeamTemplate]:
    return list(TEAM_TEMPLATES.values())
