"""Async control surface over the team manager and collaboration engine.

One coroutine per team command (list, create, dissolve, add, remove,
assign, status, collaborate), suitable for wiring into a CLI or an RPC
layer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, List, Mapping, Optional, Union

from agent_teams.observability.logging import get_logger

from .errors import ValidationError
from .manager import MemberInput, TeamManager
from .models import Team, TeamConfig, TeamMember, TeamStatus, TeamTask
from .templates import get_template

if TYPE_CHECKING:
    from agent_teams.collaboration.engine import CollaborationEngine
    from agent_teams.collaboration.models import CollaborationRequest, CollaborationSession

logger = get_logger("agent_teams.control")


class TeamControl:
    """Command facade for team management.

    Example:
        control = TeamControl(manager, engine)

        team = await control.create("reviewers", template="code-review")
        status = await control.status(team.id)
        await control.dissolve(team.id)
    """

    def __init__(self, manager: TeamManager, engine: Optional["CollaborationEngine"] = None):
        self.manager = manager
        self.engine = engine

    async def list(self) -> List[Team]:
        return self.manager.list_teams()

    async def create(
        self,
        name: str,
        template: Optional[str] = None,
        members: Optional[Iterable[MemberInput]] = None,
        config: Union[TeamConfig, Mapping[str, Any], None] = None,
    ) -> Team:
        """Create a team from a template, explicit members, or both.

        Template members come first; explicit members are appended. An
        explicit config overrides the template's.
        """
        all_members: List[MemberInput] = []
        mode = None
        description = None
        if template is not None:
            blueprint = get_template(template)
            all_members.extend(blueprint.members)
            mode = blueprint.mode
            description = blueprint.description
            if config is None:
                config = blueprint.config
        if members is not None:
            all_members.extend(members)
        if not all_members:
            raise ValidationError("A team needs a template or at least one member")
        logger.debug("Creating team", team_name=name, template=template, members=len(all_members))
        return self.manager.create_team(
            name, all_members, config=config, description=description, mode=mode
        )

    async def dissolve(self, team_id: str) -> List[TeamTask]:
        return self.manager.dissolve_team(team_id)

    async def add(self, team_id: str, member: MemberInput) -> TeamMember:
        return self.manager.add_member(team_id, member)

    async def remove(self, team_id: str, member_id: str, force: bool = False) -> TeamMember:
        return self.manager.remove_member(team_id, member_id, force=force)

    async def assign(self, team_id: str, task_id: str, member_id: str) -> TeamTask:
        return self.manager.assign_task_to(team_id, task_id, member_id)

    async def status(self, team_id: str) -> TeamStatus:
        """Team workload including the team's active collaboration sessions."""
        status = self.manager.get_team_status(team_id)
        if self.engine is not None:
            status.active_sessions = self.engine.list_sessions(team_id, active_only=True)
        return status

    async def collaborate(
        self,
        request: Union["CollaborationRequest", Mapping[str, Any]],
    ) -> "CollaborationSession":
        if self.engine is None:
            raise ValidationError("No collaboration engine configured")
        return await self.engine.collaborate(request)
