"""Unit tests for team templates."""

from __future__ import annotations

import pytest

from agent_teams.teams.errors import ValidationError
from agent_teams.teams.models import CollaborationMode
from agent_teams.teams.templates import TEAM_TEMPLATES, get_template, list_templates


class TestTemplates:
    """Tests for the predefined team compositions."""

    def test_known_templates(self):
        assert set(TEAM_TEMPLATES) == {"code-review", "development", "brainstorming"}
        assert len(list_templates()) == 3

    def test_code_review_composition(self):
        template = get_template("code-review")

        assert template.mode == CollaborationMode.PARALLEL
        assert [m.role for m in template.members] == [
            "leader",
            "specialist",
            "specialist",
            "specialist",
        ]
        assert "security-scan" in template.members[2].capabilities

    def test_brainstorming_has_leader_and_reviewer(self):
        """Test debate teams carry a facilitator and a critic."""
        roles = [m.role for m in get_template("brainstorming").members]

        assert roles.count("leader") == 1
        assert roles.count("reviewer") == 1
        assert get_template("brainstorming").mode == CollaborationMode.DEBATE

    def test_member_names_are_unique(self):
        for template in list_templates():
            names = [m.name for m in template.members]
            assert len(names) == len(set(names)), template.name

    def test_unknown_template(self):
        with pytest.raises(ValidationError, match="known: brainstorming"):
            get_template("missing")
