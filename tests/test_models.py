import time

import pytest

from sprintdesk.core.exceptions import MalformedRowError
from sprintdesk.core.models import (
    ChangeEvent,
    ChangeType,
    Issue,
    Project,
    Session,
    Sprint,
    SprintStatus,
    Team,
    User,
    UserRole,
    Workspace,
)


@pytest.mark.parametrize(
    "raw, role",
    [
        ("Founder", UserRole.FOUNDER),
        ("cto", UserRole.CTO),
        ("team lead", UserRole.TEAM_LEAD),
        ("PRODUCT_MANAGER", UserRole.PRODUCT_MANAGER),
        ("Intern", UserRole.MEMBER),
        (None, UserRole.MEMBER),
    ],
)
def test_role_parsing(raw, role):
    assert UserRole.parse(raw) == role


def test_rows_use_camel_case_columns():
    issue = Issue.from_row({"id": "WEB-1", "projectId": "p-1", "title": "x", "sprintId": "", "storyPoints": 3})
    assert issue.sprint_id is None and issue.story_points == 3
    row = issue.to_row()
    assert row["projectId"] == "p-1" and "project_id" not in row
    assert User.from_row({"id": "u-1", "workspaceIds": None}).workspace_ids == []


def test_malformed_rows_raise():
    with pytest.raises(MalformedRowError) as exc:
        Issue.from_row({"id": "WEB-1", "projectId": "p-1"})
    assert exc.value.details["row"] == {"id": "WEB-1", "projectId": "p-1"}


def test_owner_and_lead_are_always_members():
    assert Workspace(id="ws-1", name="Acme", owner_id="u-1", members=["u-2"]).members == ["u-1", "u-2"]
    assert Team(id="t-1", workspace_id="ws-1", name="Core", lead_id="u-1").members == ["u-1"]


def test_project_keys():
    assert Project(id="p-1", workspace_id="ws-1", name="Web", key=" web ").key == "WEB"
    assert Project.is_valid_key("API1")
    assert not Project.is_valid_key("")
    assert not Project.is_valid_key("TOOLONG")
    assert not Project.is_valid_key("A-B")


def test_sprint_lifecycle_only_moves_forward():
    planned = Sprint(id="sp-1", project_id="p-1", name="S1")
    assert planned.can_transition(SprintStatus.ACTIVE)
    active = planned.model_copy(update={"status": SprintStatus.ACTIVE})
    assert not active.can_transition(SprintStatus.PLANNED)
    done = active.model_copy(update={"status": SprintStatus.COMPLETED})
    assert not done.can_transition(SprintStatus.ACTIVE)


def test_session_from_auth_response():
    session = Session.from_auth_response({
        "access_token": "a",
        "refresh_token": "r",
        "expires_in": 3600,
        "user": {"id": "u-1", "email": "ada@example.com", "user_metadata": {"full_name": "Ada"}},
    })
    assert session.user_id == "u-1" and session.full_name == "Ada"
    assert not session.is_expired()
    assert session.is_expired(now=time.time() + 7200)


def test_change_event_row_uses_old_record_for_deletes():
    event = ChangeEvent.model_validate({
        "type": "DELETE", "table": "issues", "schema": "public", "old_record": {"id": "WEB-1"},
    })
    assert event.type == ChangeType.DELETE
    assert event.row_id == "WEB-1"
