"""Role based permission matrix.

A static table maps each role to the capabilities it grants. Lookups are total:
unknown roles behave exactly like ``Developer`` (the most restrictive role) and
unknown capability names are simply not granted.
"""

from typing import Any, Dict, FrozenSet

from ..core.models import Permission, UserRole

_ALL_TASK_WORK = frozenset({
    Permission.CREATE_SPRINT,
    Permission.MANAGE_SPRINT,
    Permission.CREATE_EPIC,
    Permission.CREATE_TASK,
    Permission.DELETE_TASK,
    Permission.ASSIGN_TASK,
    Permission.UPDATE_TASK_STATUS,
    Permission.MANAGE_TEAMS,
})

ROLE_PERMISSIONS: Dict[UserRole, FrozenSet[Permission]] = {
    UserRole.FOUNDER: frozenset(Permission),
    # No project creation/deletion or global access management
    UserRole.CTO: _ALL_TASK_WORK | {Permission.CREATE_WORKSPACE},
    UserRole.CAO: frozenset({
        Permission.CREATE_SPRINT,
        Permission.MANAGE_SPRINT,
        Permission.CREATE_TASK,
        Permission.UPDATE_TASK_STATUS,
    }),
    UserRole.PRODUCT_MANAGER: _ALL_TASK_WORK,
    UserRole.ADMIN: _ALL_TASK_WORK | {Permission.MANAGE_ACCESS, Permission.CREATE_WORKSPACE},
    UserRole.TEAM_LEAD: frozenset({
        Permission.CREATE_TASK,
        Permission.ASSIGN_TASK,
        Permission.UPDATE_TASK_STATUS,
    }),
    UserRole.MEMBER: frozenset({Permission.UPDATE_TASK_STATUS}),
    UserRole.DESIGNER: frozenset({Permission.UPDATE_TASK_STATUS}),
    # QA reports bugs
    UserRole.QA: frozenset({Permission.UPDATE_TASK_STATUS, Permission.CREATE_TASK}),
    UserRole.OPS: frozenset({Permission.UPDATE_TASK_STATUS}),
}

DEFAULT_ROLE = UserRole.MEMBER


def normalize_role(role: Any) -> UserRole:
    return UserRole.parse(role)


def permissions_for(role: Any) -> FrozenSet[Permission]:
    return ROLE_PERMISSIONS.get(normalize_role(role), ROLE_PERMISSIONS[DEFAULT_ROLE])


def has_permission(role: Any, permission: Any) -> bool:
    """Whether ``role`` grants ``permission``; never raises."""
    try:
        wanted = permission if isinstance(permission, Permission) else Permission(permission)
    except ValueError:
        return False
    return wanted in permissions_for(role)
