"""Domain model shared by the data access layer and the application store.

Rows in the remote tables use camelCase column names (``workspaceId``,
``sprintId``...). Models accept both spellings and serialize back to the row
shape with :meth:`Entity.to_row`.
"""

from __future__ import annotations

import enum
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..utils.logger import get_logger
from .exceptions import MalformedRowError

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, enum.Enum):
    FOUNDER = "Founder"
    CTO = "CTO"
    CAO = "CAO"
    ADMIN = "Admin"
    TEAM_LEAD = "Team Lead"
    PRODUCT_MANAGER = "Product Manager"
    MEMBER = "Developer"
    DESIGNER = "Designer"
    QA = "QA Engineer"
    OPS = "Operations"

    @classmethod
    def parse(cls, value: Any) -> "UserRole":
        """Map a free-text role onto the closed role set.

        Exact values win, then case-insensitive value or member-name matches.
        Anything else is the most restrictive role (``Developer``).
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            text = value.strip()
            for role in cls:
                if role.value == text:
                    return role
            folded = text.casefold()
            for role in cls:
                if role.value.casefold() == folded or role.name.casefold() == folded.replace(" ", "_"):
                    return role
        return cls.MEMBER


class Permission(str, enum.Enum):
    CREATE_PROJECT = "CREATE_PROJECT"
    DELETE_PROJECT = "DELETE_PROJECT"
    MANAGE_ACCESS = "MANAGE_ACCESS"
    CREATE_SPRINT = "CREATE_SPRINT"
    MANAGE_SPRINT = "MANAGE_SPRINT"  # start/complete
    CREATE_EPIC = "CREATE_EPIC"
    CREATE_TASK = "CREATE_TASK"
    DELETE_TASK = "DELETE_TASK"
    ASSIGN_TASK = "ASSIGN_TASK"
    UPDATE_TASK_STATUS = "UPDATE_TASK_STATUS"
    MANAGE_TEAMS = "MANAGE_TEAMS"
    CREATE_WORKSPACE = "CREATE_WORKSPACE"


class IssueStatus(str, enum.Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    DONE = "DONE"


class Priority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class IssueType(str, enum.Enum):
    STORY = "STORY"
    TASK = "TASK"
    BUG = "BUG"


class SprintStatus(str, enum.Enum):
    PLANNED = "PLANNED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class EpicStatus(str, enum.Enum):
    TODO = "TODO"
    PROGRESS = "PROGRESS"
    DONE = "DONE"


class ProjectType(str, enum.Enum):
    SOFTWARE = "software"
    MARKETING = "marketing"
    BUSINESS = "business"


class NotificationType(str, enum.Enum):
    ASSIGNMENT = "ASSIGNMENT"
    COMMENT = "COMMENT"
    SYSTEM = "SYSTEM"


class SpilloverPolicy(str, enum.Enum):
    BACKLOG = "BACKLOG"
    NEXT_SPRINT = "NEXT_SPRINT"


class ToastType(str, enum.Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


class ChangeType(str, enum.Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class SessionPhase(str, enum.Enum):
    UNAUTHENTICATED = "UNAUTHENTICATED"
    LOADING = "LOADING"
    READY = "READY"


# Forward-only sprint lifecycle
SPRINT_TRANSITIONS: Dict[SprintStatus, frozenset] = {
    SprintStatus.PLANNED: frozenset({SprintStatus.ACTIVE, SprintStatus.COMPLETED}),
    SprintStatus.ACTIVE: frozenset({SprintStatus.COMPLETED}),
    SprintStatus.COMPLETED: frozenset(),
}


class Entity(BaseModel):
    """Base for rows of the remote tables."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str

    @classmethod
    def from_row(cls, row: Dict[str, Any]):
        try:
            return cls.model_validate(row)
        except ValidationError as e:
            raise MalformedRowError(
                f"Malformed {cls.__name__} row: {e.error_count()} validation error(s)",
                details={"row": row},
            ) from e

    def to_row(self, **kwargs: Any) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", **kwargs)


class User(Entity):
    name: str = "User"
    email: str = ""
    avatar: str = ""
    role: UserRole = UserRole.MEMBER
    workspace_ids: List[str] = Field(default_factory=list)

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: Any) -> UserRole:
        role = UserRole.parse(value)
        if value is not None and not isinstance(value, UserRole) and role.value != value:
            logger.warning(f"Unknown role {value!r} normalized to {role.value!r}")
        return role

    @field_validator("workspace_ids", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return value or []


class Workspace(Entity):
    name: str
    owner_id: str
    members: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _owner_is_member(self) -> "Workspace":
        if self.owner_id and self.owner_id not in self.members:
            self.members.insert(0, self.owner_id)
        return self


class Project(Entity):
    workspace_id: str
    name: str
    key: str
    description: str = ""
    lead_id: str = ""
    type: ProjectType = ProjectType.SOFTWARE

    @field_validator("key", mode="before")
    @classmethod
    def _upper_key(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @staticmethod
    def is_valid_key(key: str) -> bool:
        key = (key or "").strip()
        return 0 < len(key) <= 5 and key.isalnum()


class Team(Entity):
    workspace_id: str
    name: str
    lead_id: str
    members: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _lead_is_member(self) -> "Team":
        if self.lead_id and self.lead_id not in self.members:
            self.members.insert(0, self.lead_id)
        return self


class Sprint(Entity):
    project_id: str
    name: str
    goal: str = ""
    status: SprintStatus = SprintStatus.PLANNED
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    capacity: Optional[int] = None

    def can_transition(self, target: SprintStatus) -> bool:
        return target in SPRINT_TRANSITIONS[self.status]


class Epic(Entity):
    project_id: str
    title: str
    description: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    color: str = "bg-blue-500"
    status: EpicStatus = EpicStatus.TODO


class Comment(Entity):
    user_id: str
    text: str
    created_at: datetime = Field(default_factory=utcnow)


class Subtask(Entity):
    title: str
    completed: bool = False


class Attachment(Entity):
    name: str
    type: str = "file"
    url: str


class Issue(Entity):
    project_id: str
    title: str
    description: str = ""
    status: IssueStatus = IssueStatus.TODO
    priority: Priority = Priority.MEDIUM
    type: IssueType = IssueType.TASK
    assignee_id: Optional[str] = None
    reporter_id: str = ""
    sprint_id: Optional[str] = None
    epic_id: Optional[str] = None
    story_points: Optional[int] = None
    comments: List[Comment] = Field(default_factory=list)
    subtasks: List[Subtask] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    summary: Optional[str] = None

    @field_validator("comments", "subtasks", "attachments", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return value or []

    @field_validator("sprint_id", "epic_id", "assignee_id", mode="before")
    @classmethod
    def _blank_as_none(cls, value: Any) -> Any:
        return value or None


class Notification(Entity):
    user_id: Optional[str] = None
    title: str
    message: str = ""
    read: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    type: NotificationType = NotificationType.SYSTEM


class Toast(BaseModel):
    id: str
    message: str
    type: ToastType = ToastType.INFO


class Session(BaseModel):
    """Authenticated session as issued by the auth service."""

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_at: Optional[int] = None
    user: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_auth_response(cls, payload: Dict[str, Any]) -> "Session":
        expires_at = payload.get("expires_at")
        if expires_at is None and payload.get("expires_in"):
            expires_at = int(time.time()) + int(payload["expires_in"])
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            token_type=payload.get("token_type") or "bearer",
            expires_at=expires_at,
            user=payload.get("user") or {},
        )

    @property
    def user_id(self) -> Optional[str]:
        return self.user.get("id")

    @property
    def email(self) -> str:
        return self.user.get("email") or ""

    @property
    def full_name(self) -> Optional[str]:
        return (self.user.get("user_metadata") or {}).get("full_name")

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now if now is not None else time.time()) >= self.expires_at


class ChangeEvent(BaseModel):
    """One row change delivered by the realtime feed."""

    type: ChangeType
    table: str
    schema_name: str = Field(default="public", alias="schema")
    record: Optional[Dict[str, Any]] = None
    old_record: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(populate_by_name=True)

    @property
    def row(self) -> Dict[str, Any]:
        if self.type == ChangeType.DELETE:
            return self.old_record or self.record or {}
        return self.record or {}

    @property
    def row_id(self) -> Optional[str]:
        return self.row.get("id")
