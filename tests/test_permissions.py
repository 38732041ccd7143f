import pytest

from sprintdesk.core.models import Permission, UserRole
from sprintdesk.services.permissions import ROLE_PERMISSIONS, has_permission, permissions_for


def test_every_role_has_an_entry():
    assert set(ROLE_PERMISSIONS) == set(UserRole)


def test_founder_is_granted_everything():
    assert all(has_permission(UserRole.FOUNDER, p) for p in Permission)


@pytest.mark.parametrize("role", list(UserRole))
def test_every_role_can_move_issues(role):
    assert has_permission(role, Permission.UPDATE_TASK_STATUS)


def test_developer_is_most_restrictive():
    assert permissions_for(UserRole.MEMBER) == {Permission.UPDATE_TASK_STATUS}
    for role in UserRole:
        assert permissions_for(UserRole.MEMBER) <= permissions_for(role)


def test_cto_cannot_create_projects_or_manage_access():
    assert not has_permission(UserRole.CTO, Permission.CREATE_PROJECT)
    assert not has_permission(UserRole.CTO, Permission.DELETE_PROJECT)
    assert not has_permission(UserRole.CTO, Permission.MANAGE_ACCESS)
    assert has_permission(UserRole.CTO, Permission.MANAGE_SPRINT)


def test_mid_level_roles():
    assert has_permission(UserRole.TEAM_LEAD, Permission.ASSIGN_TASK)
    assert not has_permission(UserRole.TEAM_LEAD, Permission.CREATE_SPRINT)
    assert has_permission(UserRole.CAO, Permission.MANAGE_SPRINT)
    assert not has_permission(UserRole.CAO, Permission.DELETE_TASK)
    assert has_permission(UserRole.QA, Permission.CREATE_TASK)
    assert not has_permission(UserRole.DESIGNER, Permission.CREATE_TASK)
    assert has_permission(UserRole.ADMIN, Permission.MANAGE_ACCESS)


def test_unknown_role_behaves_like_developer():
    assert permissions_for("Intern") == permissions_for(UserRole.MEMBER)
    assert permissions_for(None) == permissions_for(UserRole.MEMBER)
    assert not has_permission("Intern", Permission.CREATE_TASK)


def test_role_strings_are_matched_case_insensitively():
    assert has_permission("admin", Permission.MANAGE_ACCESS)
    assert has_permission("Team Lead", "ASSIGN_TASK")
    assert has_permission("qa engineer", Permission.CREATE_TASK)


def test_unknown_permission_is_never_granted():
    assert has_permission(UserRole.FOUNDER, "LAUNCH_ROCKETS") is False
    assert has_permission(UserRole.FOUNDER, None) is False
