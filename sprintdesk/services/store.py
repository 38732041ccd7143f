"""
Application store: the in-memory source of truth for one signed-in session.

The store owns every entity collection, the session state and the toast queue.
Mutations are applied optimistically through :func:`run_mutation`; realtime
changes and server reconciliation go through the same collection primitives.
Service failures never escape a store operation: they roll state back and
surface as error toasts.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from ..api import auth as auth_api
from ..api import epics as epics_api
from ..api import issues as issues_api
from ..api import notifications as notifications_api
from ..api import projects as projects_api
from ..api import sprints as sprints_api
from ..api import storage as storage_api
from ..api import teams as teams_api
from ..api import users as users_api
from ..api import workspaces as workspaces_api
from ..config import settings
from ..core.auth import SIGNED_OUT
from ..core.client import BackendClient
from ..core.exceptions import NOT_CONFIGURED_MESSAGE, DataAccessError, GenerationError
from ..core.models import (
    Attachment,
    ChangeEvent,
    ChangeType,
    Comment,
    Epic,
    Issue,
    IssueStatus,
    IssueType,
    Notification,
    NotificationType,
    Permission,
    Priority,
    Project,
    ProjectType,
    Session,
    SessionPhase,
    SpilloverPolicy,
    Sprint,
    SprintStatus,
    Subtask,
    Team,
    Toast,
    User,
    UserRole,
    Workspace,
    utcnow,
)
from ..utils.logger import get_logger
from . import genai
from .collections import EntityCollection
from .ids import IdGenerator
from .optimistic import Mutation, MutationResult, run_mutation
from .permissions import has_permission
from .realtime import RealtimeHub, Subscription
from .session_cache import SessionCache
from .stats import matches_search
from .toasts import ToastCenter

logger = get_logger(__name__)

_IMMUTABLE_ISSUE_FIELDS = frozenset({"id", "project_id", "created_at"})
_IMMUTABLE_USER_FIELDS = frozenset({"id"})


def avatar_url(name: str) -> str:
    return f"https://ui-avatars.com/api/?name={quote(name or 'U')}&background=random"


@dataclass
class SprintCompletion:
    """Outcome of completing a sprint."""

    sprint_id: str
    policy: SpilloverPolicy
    destination_sprint_id: Optional[str] = None
    moved_issue_ids: List[str] = field(default_factory=list)
    failed_issue_ids: List[str] = field(default_factory=list)
    already_completed: bool = False

    @property
    def partial(self) -> bool:
        return bool(self.failed_issue_ids)


class AppStore:
    """Session-scoped state container and mutation orchestrator."""

    def __init__(
        self,
        client: BackendClient,
        *,
        generator: Optional[genai.TextGenerator] = None,
        hub: Optional[RealtimeHub] = None,
        cache: Optional[SessionCache] = None,
        toasts: Optional[ToastCenter] = None,
        ids: Optional[IdGenerator] = None,
    ):
        self.client = client
        self.generator = generator or genai.TextGenerator()
        self.hub = hub or RealtimeHub()
        self.cache = cache
        self.toast_center = toasts or ToastCenter()
        self.ids = ids or IdGenerator()

        self.current_user: Optional[User] = None
        self.users: EntityCollection[User] = EntityCollection(User)
        self.workspaces: EntityCollection[Workspace] = EntityCollection(Workspace)
        self.projects: EntityCollection[Project] = EntityCollection(Project)
        self.teams: EntityCollection[Team] = EntityCollection(Team)
        self.issues: EntityCollection[Issue] = EntityCollection(Issue)
        self.sprints: EntityCollection[Sprint] = EntityCollection(Sprint)
        self.epics: EntityCollection[Epic] = EntityCollection(Epic)
        self.notifications: EntityCollection[Notification] = EntityCollection(Notification)

        self.active_workspace_id: Optional[str] = None
        self.active_project_id: Optional[str] = None
        self.search_query = ""
        self.phase = SessionPhase.UNAUTHENTICATED
        self.is_loading = False

        self._project_subscriptions: List[Subscription] = []
        self._user_subscriptions: List[Subscription] = []
        self._consumers: Dict[Subscription, asyncio.Task] = {}
        self._unsubscribe_auth: Optional[Callable[[], None]] = client.auth_manager.on_session_change(
            self._on_session_change
        )

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None

    @property
    def toasts(self) -> List[Toast]:
        return self.toast_center.toasts

    @property
    def active_workspace(self) -> Optional[Workspace]:
        return self.workspaces.get(self.active_workspace_id)

    @property
    def active_project(self) -> Optional[Project]:
        return self.projects.get(self.active_project_id)

    @property
    def active_sprint(self) -> Optional[Sprint]:
        """First ACTIVE sprint of the current project, in collection order."""
        return self.sprints.find(
            lambda sprint: sprint.status == SprintStatus.ACTIVE and sprint.project_id == self.active_project_id
        )

    @property
    def visible_issues(self) -> List[Issue]:
        return self.issues.filter(lambda issue: matches_search(issue, self.search_query))

    @property
    def backlog(self) -> List[Issue]:
        return [issue for issue in self.visible_issues if issue.sprint_id is None]

    def set_search_query(self, query: str) -> None:
        self.search_query = query or ""

    def check_permission(self, permission: Permission) -> bool:
        if self.current_user is None:
            return False
        return has_permission(self.current_user.role, permission)

    def dismiss_toast(self, toast_id: str) -> None:
        self.toast_center.dismiss(toast_id)

    def _require(self, permission: Permission, message: str) -> bool:
        if self.check_permission(permission):
            return True
        role = self.current_user.role.value if self.current_user else None
        logger.warning(f"Permission {permission.value} denied for role {role}")
        self.toast_center.error(message)
        return False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Restore the previous session, if any.

        The cached user snapshot is shown while the remote session check runs
        and is replaced (or dropped) by its outcome.
        """
        self.is_loading = True
        if self.cache is not None:
            cached_user = await self._cache_call(self.cache.load_user)
            if cached_user is not None:
                self.current_user = cached_user
                self.phase = SessionPhase.LOADING

        if not self.client.configured:
            logger.info("Remote data service not configured; starting in local-only mode")
            self._reset_state()
            return

        stored = self.client.auth_manager.session
        if self.cache is not None:
            stored = await self._cache_call(self.cache.load_session) or stored
        try:
            session = await auth_api.current_session(self.client, stored)
        except DataAccessError as e:
            logger.error(f"Session restore failed: {e.message}")
            self.toast_center.error("Could not restore your session.")
            session = None

        if session is None:
            await self._clear_session_state()
            return
        await self._handle_session(session)

    async def close(self) -> None:
        """Tear down subscriptions, timers and the auth listener."""
        if self._unsubscribe_auth is not None:
            self._unsubscribe_auth()
            self._unsubscribe_auth = None
        self._teardown_project_scope()
        self._teardown_user_scope()
        tasks = list(self._consumers.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._consumers.clear()
        self.toast_center.close()

    def _on_session_change(self, event: str, session: Optional[Session]) -> None:
        if event == SIGNED_OUT and self.phase != SessionPhase.UNAUTHENTICATED:
            logger.info("Signed out by the auth service; resetting session state")
            self._reset_state()

    def _reset_state(self) -> None:
        self._teardown_project_scope()
        self._teardown_user_scope()
        self.current_user = None
        for collection in (
            self.users, self.workspaces, self.projects, self.teams,
            self.issues, self.sprints, self.epics, self.notifications,
        ):
            collection.clear()
        self.active_workspace_id = None
        self.active_project_id = None
        self.phase = SessionPhase.UNAUTHENTICATED
        self.is_loading = False

    async def _clear_session_state(self) -> None:
        self._reset_state()
        if self.cache is not None:
            await self._cache_call(self.cache.clear)

    async def _cache_call(self, func: Callable, *args: Any) -> Any:
        try:
            return await func(*args)
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Local storage unavailable ({func.__name__}): {e}")
            return None

    async def _remember(self, session: Optional[Session] = None) -> None:
        if self.cache is None:
            return
        if self.current_user is not None:
            await self._cache_call(self.cache.save_user, self.current_user)
        if session is not None:
            await self._cache_call(self.cache.save_session, session)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def _handle_session(self, session: Session) -> bool:
        """Load profile, workspaces and users for ``session`` and go READY."""
        self.phase = SessionPhase.LOADING
        self.is_loading = True
        try:
            profile = await users_api.get_profile(self.client, session.user_id)
            if profile is None:
                profile = await self._heal_profile(session)
            workspaces, users = await asyncio.gather(
                workspaces_api.list_workspaces(self.client),
                users_api.list_users(self.client),
            )
        except DataAccessError as e:
            logger.error(f"Error loading session data: {e.message}")
            self.toast_center.error(f"Failed to load your workspace data: {e.message}")
            self._reset_state()
            return False

        self.current_user = profile
        self.users.reset(users)
        self.users.upsert(profile)
        self.workspaces.reset(workspaces)
        self.phase = SessionPhase.READY
        await self._remember(session)
        self._subscribe_user_scope(profile.id)
        await self._load_notifications(profile.id)

        preferred = next((wid for wid in profile.workspace_ids if wid in self.workspaces), None)
        if preferred is None and len(self.workspaces):
            preferred = self.workspaces.ids()[0]
        if preferred is not None:
            await self.select_workspace(preferred)
        self.is_loading = False
        return True

    async def _heal_profile(self, session: Session) -> User:
        """Insert the missing profile row for an authenticated user."""
        logger.warning("User profile missing in DB. Attempting self-healing insert.")
        name = session.full_name or "User"
        profile = User(
            id=session.user_id,
            email=session.email,
            name=name,
            role=UserRole.MEMBER,
            avatar=avatar_url(name),
            workspace_ids=[],
        )
        try:
            return await users_api.insert_profile(self.client, profile)
        except DataAccessError as e:
            # Continue locally; writes relying on the row may fail later
            logger.error(f"Self-healing profile insert failed: {e.message}")
            return profile

    async def _load_notifications(self, user_id: str) -> None:
        try:
            items = await notifications_api.list_notifications(self.client, user_id)
        except DataAccessError as e:
            logger.error(f"Failed to load notifications: {e.message}")
            return
        if self.current_user is not None and self.current_user.id == user_id:
            self.notifications.reset(items)

    async def login(self, email: str, password: Optional[str]) -> bool:
        if not self.client.configured:
            self.toast_center.error(NOT_CONFIGURED_MESSAGE)
            return False
        if not password:
            self.toast_center.error("Password is required.")
            return False
        self.is_loading = True
        try:
            session = await auth_api.sign_in(self.client, email, password)
        except DataAccessError as e:
            logger.warning(f"Login failed for {email}: {e.message}")
            self.toast_center.error(e.message)
            self.is_loading = False
            return False
        self.toast_center.success("Welcome back!")
        return await self._handle_session(session)

    async def signup(
        self,
        name: str,
        email: str,
        workspace_name: str,
        role: str,
        password: Optional[str],
    ) -> bool:
        """Create the account, its profile, a workspace and a first project."""
        if not self.client.configured:
            self.toast_center.error(NOT_CONFIGURED_MESSAGE)
            return False
        if not password:
            self.toast_center.error("Password is required.")
            return False
        self.is_loading = True
        try:
            auth_user, session = await auth_api.sign_up(self.client, email, password, {"full_name": name})
            user_id = auth_user.get("id")
            if not user_id:
                raise DataAccessError("Authentication failed during signup")
            if session is None:
                self.toast_center.info("Check your email to confirm your account, then log in.")
                return False

            workspace = Workspace(
                id=self.ids.new_id("ws"), name=workspace_name, owner_id=user_id, members=[user_id]
            )
            project = Project(
                id=self.ids.new_id("p"),
                workspace_id=workspace.id,
                name="My First Project",
                key="PROJ",
                description="Your first project",
                lead_id=user_id,
                type=ProjectType.SOFTWARE,
            )
            profile = User(
                id=user_id,
                name=name,
                email=email,
                avatar=avatar_url(name),
                role=UserRole.parse(role),
                workspace_ids=[workspace.id],
            )
            await self._store_signup_profile(profile)
            workspace = await workspaces_api.create_workspace(self.client, workspace)
            project = await projects_api.create_project(self.client, project)
        except DataAccessError as e:
            logger.error(f"Signup failed: {e.message}")
            lowered = e.message.lower()
            if "already registered" in lowered or "user already exists" in lowered:
                self.toast_center.info("This email is already registered. Please log in.")
            else:
                self.toast_center.error(f"Signup failed: {e.message}")
            return False
        finally:
            self.is_loading = False

        self.current_user = profile
        self.users.upsert(profile)
        self.workspaces.reset([workspace])
        self.projects.reset([project])
        self.teams.clear()
        self.active_workspace_id = workspace.id
        self.phase = SessionPhase.READY
        await self._remember(session)
        self._subscribe_user_scope(profile.id)
        await self.select_project(project.id)
        self.toast_center.success("Account created successfully!")
        return True

    async def _store_signup_profile(self, profile: User) -> None:
        try:
            await users_api.upsert_profile(self.client, profile)
        except DataAccessError as e:
            logger.warning(f"Profile upsert returned error: {e.message}")
            if await users_api.get_profile(self.client, profile.id) is None:
                try:
                    await users_api.insert_profile(self.client, profile)
                except DataAccessError as insert_error:
                    raise DataAccessError(f"Failed to create user profile: {insert_error.message}")

    async def reset_password(self, email: str, redirect_to: Optional[str] = None) -> bool:
        if not self.client.configured:
            self.toast_center.error(NOT_CONFIGURED_MESSAGE)
            return False
        self.is_loading = True
        try:
            await auth_api.reset_password(self.client, email, redirect_to)
        except DataAccessError as e:
            logger.error(f"Reset password error: {e.message}")
            self.toast_center.error(e.message or "Failed to send reset email")
            return False
        finally:
            self.is_loading = False
        self.toast_center.success("Password reset link sent to your email.")
        return True

    async def logout(self) -> None:
        try:
            await auth_api.sign_out(self.client)
        except DataAccessError as e:
            logger.warning(f"Remote sign-out failed, clearing local session anyway: {e.message}")
        await self._clear_session_state()
        self.toast_center.info("Logged out successfully")

    # ------------------------------------------------------------------
    # Selection and scoped loading
    # ------------------------------------------------------------------

    async def select_workspace(self, workspace_id: str) -> bool:
        """Make ``workspace_id`` active and load its projects and teams.

        Results arriving after the selection moved elsewhere are discarded.
        """
        if workspace_id not in self.workspaces:
            logger.warning(f"select_workspace: unknown workspace {workspace_id}")
            return False
        if workspace_id != self.active_workspace_id:
            self.active_workspace_id = workspace_id
            self.projects.clear()
            self.teams.clear()
        try:
            projects, teams = await asyncio.gather(
                projects_api.list_projects(self.client, workspace_id),
                teams_api.list_teams(self.client, workspace_id),
            )
        except DataAccessError as e:
            logger.error(f"Error loading workspace data: {e.message}")
            if self.active_workspace_id == workspace_id:
                self.toast_center.error("Failed to load workspace data")
            return False
        if self.active_workspace_id != workspace_id:
            logger.debug(f"Discarding stale workspace data for {workspace_id}")
            return False

        self.projects.reset(projects)
        self.teams.reset(teams)
        if self.active_project_id not in self.projects:
            if projects:
                await self.select_project(projects[0].id)
            else:
                self._clear_project_selection()
        return True

    def _clear_project_selection(self) -> None:
        self._teardown_project_scope()
        self.active_project_id = None
        self.issues.clear()
        self.sprints.clear()
        self.epics.clear()

    async def select_project(self, project_id: str) -> bool:
        """Make ``project_id`` active, re-subscribe realtime and load its data."""
        if project_id not in self.projects:
            logger.warning(f"select_project: unknown project {project_id}")
            return False
        if project_id != self.active_project_id:
            self._clear_project_selection()
            self.active_project_id = project_id
            self._subscribe_project_scope(project_id)
        try:
            issues, sprints, epics = await asyncio.gather(
                issues_api.list_issues(self.client, project_id),
                sprints_api.list_sprints(self.client, project_id),
                epics_api.list_epics(self.client, project_id),
            )
        except DataAccessError as e:
            logger.error(f"Failed to fetch project details: {e.message}")
            if self.active_project_id == project_id:
                self.toast_center.error("Failed to load project data")
            return False
        if self.active_project_id != project_id:
            logger.debug(f"Discarding stale project data for {project_id}")
            return False

        self.issues.reset(issues)
        self.sprints.reset(sprints)
        self.epics.reset(epics)
        return True

    # ------------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------------

    def _watch(self, table: str, column: str, value: str) -> Subscription:
        subscription = self.hub.subscribe(table, column, value)
        self._consumers[subscription] = asyncio.create_task(
            self._consume(subscription), name=f"realtime:{table}:{value}"
        )
        return subscription

    async def _consume(self, subscription: Subscription) -> None:
        try:
            async for event in subscription:
                try:
                    if not subscription.closed:
                        self.apply_change(event)
                except DataAccessError as e:
                    logger.warning(f"Ignoring malformed change on {event.table}: {e.message}")
                finally:
                    subscription.task_done()
        finally:
            self._consumers.pop(subscription, None)

    def _subscribe_project_scope(self, project_id: str) -> None:
        self._teardown_project_scope()
        self._project_subscriptions = [
            self._watch("issues", "projectId", project_id),
            self._watch("sprints", "projectId", project_id),
        ]

    def _subscribe_user_scope(self, user_id: str) -> None:
        self._teardown_user_scope()
        self._user_subscriptions = [self._watch("notifications", "userId", user_id)]

    def _teardown_project_scope(self) -> None:
        for subscription in self._project_subscriptions:
            subscription.close()
        self._project_subscriptions = []

    def _teardown_user_scope(self) -> None:
        for subscription in self._user_subscriptions:
            subscription.close()
        self._user_subscriptions = []

    async def realtime_idle(self) -> None:
        """Wait until every delivered realtime event has been applied."""
        await asyncio.gather(*(subscription.join() for subscription in list(self._consumers)))

    def apply_change(self, event: ChangeEvent) -> bool:
        """Apply one realtime row change to the matching collection."""
        row = event.row
        if event.table in ("issues", "sprints"):
            if row.get("projectId") != self.active_project_id:
                return False
            collection = self.issues if event.table == "issues" else self.sprints
            return collection.apply_change(event)
        if event.table == "notifications":
            if self.current_user is None or row.get("userId") != self.current_user.id:
                return False
            if event.type == ChangeType.INSERT:
                notification = Notification.from_row(row)
                if notification.id in self.notifications:
                    return False
                self.notifications.insert_at(0, notification)
                self.toast_center.info(f"New Notification: {notification.title}")
                return True
            return self.notifications.apply_change(event)
        logger.debug(f"Ignoring change on unwatched table {event.table}")
        return False

    # ------------------------------------------------------------------
    # Workspaces
    # ------------------------------------------------------------------

    async def _create_workspace(self, name: str) -> Optional[Workspace]:
        user = self.current_user
        workspace = Workspace(id=self.ids.new_id("ws"), name=name, owner_id=user.id, members=[user.id])
        result = await run_mutation(
            Mutation(
                name="create_workspace",
                collection=self.workspaces,
                ids=[workspace.id],
                apply=lambda c: c.insert(workspace),
                commit=lambda: workspaces_api.create_workspace(self.client, workspace),
                failure_message="Failed to create workspace",
                success_message="Workspace created",
                reconcile_id=workspace.id,
            ),
            self.toast_center,
        )
        if not result.ok:
            return None
        created = self.workspaces.get(result.value.id) or result.value
        await self._update_user(
            user.id, {"workspace_ids": [*user.workspace_ids, created.id]}, notify=False
        )
        return created

    async def create_workspace(self, name: str) -> Optional[Workspace]:
        if self.current_user is None or not name.strip():
            return None
        if len(self.workspaces) and not self._require(
            Permission.CREATE_WORKSPACE, "You do not have permission to create workspaces."
        ):
            return None
        workspace = await self._create_workspace(name.strip())
        if workspace is not None:
            await self.select_workspace(workspace.id)
        return workspace

    async def invite_user(self, email: str) -> bool:
        """Add an existing user, found by e-mail, to the active workspace."""
        workspace = self.active_workspace
        if workspace is None:
            return False
        if not self._require(Permission.MANAGE_ACCESS, "You do not have permission to manage workspace access."):
            return False
        wanted = email.strip().casefold()
        user = self.users.find(lambda u: u.email.casefold() == wanted)
        if user is None:
            self.toast_center.info(f"User {email} not found in system. They must sign up first.")
            return False
        if user.id in workspace.members:
            self.toast_center.info(f"{email} is already in the workspace.")
            return False
        updated = workspace.model_copy(update={"members": [*workspace.members, user.id]})
        return await self._save_workspace_members(
            workspace, updated, f"{email} added to workspace.", f"Failed to add {email} to workspace"
        )

    async def remove_workspace_member(self, user_id: str) -> bool:
        workspace = self.active_workspace
        if workspace is None or user_id not in workspace.members:
            return False
        if not self._require(Permission.MANAGE_ACCESS, "You do not have permission to manage workspace access."):
            return False
        if user_id == workspace.owner_id:
            self.toast_center.error("The workspace owner cannot be removed.")
            return False
        updated = workspace.model_copy(update={"members": [m for m in workspace.members if m != user_id]})
        return await self._save_workspace_members(workspace, updated, "Member removed", "Failed to remove member")

    async def _save_workspace_members(
        self, before: Workspace, after: Workspace, success: str, failure: str
    ) -> bool:
        result = await run_mutation(
            Mutation(
                name="update_workspace_members",
                collection=self.workspaces,
                ids=[before.id],
                apply=lambda c: c.replace(after),
                commit=lambda: workspaces_api.update_workspace_members(self.client, after),
                failure_message=failure,
                success_message=success,
            ),
            self.toast_center,
        )
        return result.ok

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def _ensure_profile(self) -> bool:
        """Re-insert the current user's profile row when it went missing."""
        user = self.current_user
        try:
            exists = await users_api.get_profile(self.client, user.id)
        except DataAccessError as e:
            logger.error(f"Profile verification error: {e.message}")
            return True
        if exists is not None:
            return True
        logger.warning("Profile check failed. Attempting self-healing insert.")
        try:
            await users_api.insert_profile(self.client, user)
        except DataAccessError as e:
            logger.error(f"Profile recovery failed: {e.message}")
            self.toast_center.error("Account Error: We couldn't verify your profile. Please try refreshing.")
            return False
        return True

    async def create_project(
        self,
        name: str,
        key: str,
        description: str = "",
        type: ProjectType = ProjectType.SOFTWARE,
    ) -> Optional[Project]:
        if self.current_user is None:
            return None
        key = (key or "").strip().upper()
        if not Project.is_valid_key(key):
            self.toast_center.error("Project key must be 1-5 letters or digits.")
            return None
        if len(self.projects) and not self._require(
            Permission.CREATE_PROJECT, "You do not have permission to create projects."
        ):
            return None
        if self.projects.find(lambda p: p.key == key) is not None:
            self.toast_center.error(f"Project key {key} is already in use.")
            return None
        if not await self._ensure_profile():
            return None

        workspace_id = self.active_workspace_id
        if workspace_id is None:
            workspace = await self._create_workspace(f"{self.current_user.name}'s Workspace")
            if workspace is None:
                return None
            workspace_id = workspace.id
            self.active_workspace_id = workspace_id

        project = Project(
            id=self.ids.new_id("p"),
            workspace_id=workspace_id,
            name=name,
            key=key,
            description=description,
            lead_id=self.current_user.id,
            type=ProjectType(type),
        )
        result = await run_mutation(
            Mutation(
                name="create_project",
                collection=self.projects,
                ids=[project.id],
                apply=lambda c: c.insert(project),
                commit=lambda: projects_api.create_project(self.client, project),
                failure_message="Failed to create project",
                success_message="Project created successfully",
                reconcile_id=project.id,
            ),
            self.toast_center,
        )
        if not result.ok:
            return None
        await self.select_project(result.value.id)
        return self.projects.get(result.value.id) or result.value

    async def update_project(self, project: Project) -> bool:
        before = self.projects.get(project.id)
        if before is None:
            return False
        if not self._require(Permission.CREATE_PROJECT, "You do not have permission to edit project settings."):
            return False
        if not Project.is_valid_key(project.key):
            self.toast_center.error("Project key must be 1-5 letters or digits.")
            return False
        result = await run_mutation(
            Mutation(
                name="update_project",
                collection=self.projects,
                ids=[project.id],
                apply=lambda c: c.replace(project),
                commit=lambda: projects_api.update_project(self.client, project),
                failure_message="Failed to update project",
                success_message="Project updated",
            ),
            self.toast_center,
        )
        return result.ok

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    async def create_team(self, name: str, member_ids: List[str]) -> Optional[Team]:
        workspace = self.active_workspace
        if workspace is None or self.current_user is None:
            return None
        if not self._require(Permission.MANAGE_TEAMS, "You do not have permission to manage teams."):
            return None
        team = Team(
            id=self.ids.new_id("t"),
            workspace_id=workspace.id,
            name=name,
            lead_id=self.current_user.id,
            members=list(dict.fromkeys(member_ids)),
        )
        result = await run_mutation(
            Mutation(
                name="create_team",
                collection=self.teams,
                ids=[team.id],
                apply=lambda c: c.insert(team),
                commit=lambda: teams_api.create_team(self.client, team),
                failure_message="Failed to create team",
                success_message="Team created",
                reconcile_id=team.id,
            ),
            self.toast_center,
        )
        if not result.ok:
            return None
        return self.teams.get(result.value.id) or result.value

    async def add_team_member(self, team_id: str, user_id: str) -> bool:
        team = self.teams.get(team_id)
        if team is None or user_id in team.members:
            return False
        if not self._require(Permission.MANAGE_TEAMS, "You do not have permission to manage teams."):
            return False
        updated = team.model_copy(update={"members": [*team.members, user_id]})
        return await self._save_team_members(team, updated, "Member added", "Failed to add member")

    async def remove_team_member(self, team_id: str, user_id: str) -> bool:
        team = self.teams.get(team_id)
        if team is None or user_id not in team.members:
            return False
        if not self._require(Permission.MANAGE_TEAMS, "You do not have permission to manage teams."):
            return False
        if user_id == team.lead_id:
            self.toast_center.error("The team lead cannot be removed.")
            return False
        updated = team.model_copy(update={"members": [m for m in team.members if m != user_id]})
        return await self._save_team_members(team, updated, "Member removed", "Failed to remove member")

    async def _save_team_members(self, before: Team, after: Team, success: str, failure: str) -> bool:
        result = await run_mutation(
            Mutation(
                name="update_team_members",
                collection=self.teams,
                ids=[before.id],
                apply=lambda c: c.replace(after),
                commit=lambda: teams_api.update_team_members(self.client, after),
                failure_message=failure,
                success_message=success,
            ),
            self.toast_center,
        )
        return result.ok

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    def _sprint_in_project(self, sprint_id: Optional[str], project_id: str) -> bool:
        if sprint_id is None:
            return True
        sprint = self.sprints.get(sprint_id)
        return sprint is not None and sprint.project_id == project_id

    async def add_issue(
        self,
        title: str,
        type: IssueType = IssueType.TASK,
        *,
        description: str = "",
        priority: Priority = Priority.MEDIUM,
        status: IssueStatus = IssueStatus.TODO,
        assignee_id: Optional[str] = None,
        reporter_id: Optional[str] = None,
        sprint_id: Optional[str] = None,
        epic_id: Optional[str] = None,
        story_points: Optional[int] = None,
    ) -> Optional[Issue]:
        """Create an issue in the active project (backlog unless ``sprint_id``)."""
        project = self.active_project
        if project is None or self.current_user is None:
            self.toast_center.info("Select a project before creating issues.")
            return None
        if not self._require(Permission.CREATE_TASK, "You do not have permission to create issues."):
            return None
        if not self._sprint_in_project(sprint_id, project.id):
            self.toast_center.error("The selected sprint does not belong to this project.")
            return None

        now = utcnow()
        try:
            issue = Issue(
                id=self.ids.issue_id(project.key),
                project_id=project.id,
                title=title.strip(),
                description=description,
                status=status,
                priority=priority,
                type=type,
                assignee_id=assignee_id,
                reporter_id=reporter_id or self.current_user.id,
                sprint_id=sprint_id,
                epic_id=epic_id,
                story_points=story_points,
                created_at=now,
                updated_at=now,
            )
        except ValidationError as e:
            logger.error(f"Invalid issue: {e}")
            self.toast_center.error("Invalid issue details")
            return None

        result = await run_mutation(
            Mutation(
                name="create_issue",
                collection=self.issues,
                ids=[issue.id],
                apply=lambda c: c.insert(issue),
                commit=lambda: issues_api.create_issue(self.client, issue),
                failure_message="Failed to create issue on server",
                success_message="Issue created",
                reconcile_id=issue.id,
            ),
            self.toast_center,
        )
        if not result.ok:
            return None
        created = self.issues.get(result.value.id) or result.value
        await self._notify_assignment(None, created)
        return created

    async def update_issue(self, issue_id: str, **changes: Any) -> bool:
        """Apply field changes to an issue (last write wins)."""
        result = await self._update_issue(issue_id, changes)
        return bool(result and result.ok)

    async def _update_issue(
        self,
        issue_id: str,
        changes: Dict[str, Any],
        *,
        notify: bool = True,
        failure_message: str = "Failed to update issue",
        success_message: Optional[str] = None,
    ) -> Optional[MutationResult]:
        before = self.issues.get(issue_id)
        if before is None:
            logger.warning(f"update_issue: unknown issue {issue_id}")
            return None
        invalid = (set(changes) - set(Issue.model_fields)) | (set(changes) & _IMMUTABLE_ISSUE_FIELDS)
        if invalid:
            logger.error(f"Invalid update for {issue_id}: cannot update fields {sorted(invalid)}")
            self.toast_center.error("Invalid issue update")
            return None
        try:
            after = Issue.model_validate({**before.model_dump(), **changes, "updated_at": utcnow()})
        except ValidationError as e:
            logger.error(f"Invalid update for {issue_id}: {e}")
            self.toast_center.error("Invalid issue update")
            return None

        if after.assignee_id != before.assignee_id and not self._require(
            Permission.ASSIGN_TASK, "You do not have permission to assign issues."
        ):
            return None
        if after.status != before.status and not self._require(
            Permission.UPDATE_TASK_STATUS, "You do not have permission to change issue status."
        ):
            return None
        if after.sprint_id != before.sprint_id and not self._sprint_in_project(after.sprint_id, before.project_id):
            self.toast_center.error("The selected sprint does not belong to this project.")
            return None

        result = await run_mutation(
            Mutation(
                name="update_issue",
                collection=self.issues,
                ids=[issue_id],
                apply=lambda c: c.replace(after),
                commit=lambda: issues_api.update_issue(self.client, after),
                failure_message=failure_message,
                success_message=success_message,
            ),
            self.toast_center,
            notify=notify,
        )
        if result.ok:
            await self._notify_assignment(before, after)
        return result

    async def delete_issue(self, issue_id: str) -> bool:
        if issue_id not in self.issues:
            return False
        if not self._require(Permission.DELETE_TASK, "You do not have permission to delete issues."):
            return False
        result = await run_mutation(
            Mutation(
                name="delete_issue",
                collection=self.issues,
                ids=[issue_id],
                apply=lambda c: c.remove(issue_id),
                commit=lambda: issues_api.delete_issue(self.client, issue_id),
                failure_message="Failed to delete issue",
                success_message="Issue deleted",
            ),
            self.toast_center,
        )
        return result.ok

    async def add_comment(self, issue_id: str, text: str, user_id: Optional[str] = None) -> bool:
        issue = self.issues.get(issue_id)
        author = user_id or (self.current_user.id if self.current_user else None)
        if issue is None or author is None or not text.strip():
            return False
        comment = Comment(id=self.ids.new_id("c"), user_id=author, text=text.strip(), created_at=utcnow())
        result = await self._update_issue(issue_id, {"comments": [*issue.comments, comment]})
        if not result or not result.ok:
            return False
        if issue.assignee_id and issue.assignee_id != author:
            await self._notify(
                issue.assignee_id,
                "New comment",
                f"New comment on {issue.id}: {issue.title}",
                NotificationType.COMMENT,
            )
        return True

    async def add_subtask(self, issue_id: str, title: str) -> Optional[Subtask]:
        issue = self.issues.get(issue_id)
        if issue is None or not title.strip():
            return None
        subtask = Subtask(id=self.ids.new_id("st"), title=title.strip(), completed=False)
        result = await self._update_issue(issue_id, {"subtasks": [*issue.subtasks, subtask]})
        return subtask if result and result.ok else None

    async def toggle_subtask(self, issue_id: str, subtask_id: str, completed: Optional[bool] = None) -> bool:
        issue = self.issues.get(issue_id)
        if issue is None or not any(st.id == subtask_id for st in issue.subtasks):
            return False
        subtasks = [
            st.model_copy(update={"completed": (not st.completed) if completed is None else completed})
            if st.id == subtask_id else st
            for st in issue.subtasks
        ]
        result = await self._update_issue(issue_id, {"subtasks": subtasks})
        return bool(result and result.ok)

    async def delete_subtask(self, issue_id: str, subtask_id: str) -> bool:
        issue = self.issues.get(issue_id)
        if issue is None or not any(st.id == subtask_id for st in issue.subtasks):
            return False
        result = await self._update_issue(
            issue_id, {"subtasks": [st for st in issue.subtasks if st.id != subtask_id]}
        )
        return bool(result and result.ok)

    async def upload_attachment(
        self,
        issue_id: str,
        file_name: str,
        content: bytes,
        content_type: Optional[str] = None,
    ) -> Optional[Attachment]:
        if issue_id not in self.issues:
            return None
        try:
            url = await storage_api.upload_file(self.client, file_name, content, content_type)
        except DataAccessError as e:
            logger.error(f"Upload failed: {e.message}")
            self.toast_center.error(e.message)
            return None
        # Re-read: the issue may have changed while the upload was in flight
        issue = self.issues.get(issue_id)
        if issue is None:
            return None
        attachment = Attachment(
            id=self.ids.new_id("att"),
            name=file_name,
            type=storage_api.mime_type_tag(content_type),
            url=url,
        )
        result = await self._update_issue(
            issue_id,
            {"attachments": [*issue.attachments, attachment]},
            success_message="File uploaded successfully",
        )
        return attachment if result and result.ok else None

    async def remove_attachment(self, issue_id: str, attachment_id: str) -> bool:
        issue = self.issues.get(issue_id)
        if issue is None or not any(a.id == attachment_id for a in issue.attachments):
            return False
        result = await self._update_issue(
            issue_id, {"attachments": [a for a in issue.attachments if a.id != attachment_id]}
        )
        return bool(result and result.ok)

    # ------------------------------------------------------------------
    # Text generation
    # ------------------------------------------------------------------

    async def generate_description(self, title: str, issue_type: IssueType = IssueType.TASK) -> Optional[str]:
        try:
            return await genai.generate_issue_description(self.generator, title, IssueType(issue_type).value)
        except GenerationError as e:
            logger.error(f"GenAI Error: {e}")
            self.toast_center.error("Failed to generate description. Check API Key.")
            return None

    async def suggest_subtasks(self, issue_id: str) -> List[Subtask]:
        """Append AI-suggested subtasks to the issue; best-effort."""
        issue = self.issues.get(issue_id)
        if issue is None:
            return []
        titles = await genai.suggest_subtasks(self.generator, issue.description)
        if not titles:
            self.toast_center.info("No subtasks suggested.")
            return []
        issue = self.issues.get(issue_id)
        if issue is None:
            return []
        suggested = [Subtask(id=self.ids.new_id("st"), title=title) for title in titles]
        result = await self._update_issue(issue_id, {"subtasks": [*issue.subtasks, *suggested]})
        return suggested if result and result.ok else []

    async def summarize_issue(self, issue_id: str) -> Optional[str]:
        issue = self.issues.get(issue_id)
        if issue is None:
            return None
        try:
            summary = await genai.summarize_issue(self.generator, genai.build_issue_digest(issue))
        except GenerationError as e:
            logger.error(f"GenAI Error: {e}")
            self.toast_center.error("Failed to summarize issue.")
            return None
        await self._update_issue(issue_id, {"summary": summary})
        return summary

    # ------------------------------------------------------------------
    # Sprints and epics
    # ------------------------------------------------------------------

    async def create_sprint(self, name: str, goal: str = "", capacity: Optional[int] = None) -> Optional[Sprint]:
        project = self.active_project
        if project is None:
            return None
        if not self._require(Permission.CREATE_SPRINT, "You do not have permission to create sprints."):
            return None
        sprint = Sprint(
            id=self.ids.new_id("sp"),
            project_id=project.id,
            name=name,
            goal=goal,
            status=SprintStatus.PLANNED,
            capacity=settings.default_sprint_capacity if capacity is None else capacity,
        )
        result = await run_mutation(
            Mutation(
                name="create_sprint",
                collection=self.sprints,
                ids=[sprint.id],
                apply=lambda c: c.insert(sprint),
                commit=lambda: sprints_api.create_sprint(self.client, sprint),
                failure_message="Failed to create sprint",
                success_message="Sprint created",
                reconcile_id=sprint.id,
            ),
            self.toast_center,
        )
        if not result.ok:
            return None
        return self.sprints.get(result.value.id) or result.value

    async def start_sprint(
        self,
        sprint_id: str,
        start_date: datetime,
        end_date: datetime,
        goal: Optional[str] = None,
    ) -> bool:
        sprint = self.sprints.get(sprint_id)
        if sprint is None:
            return False
        if not self._require(Permission.MANAGE_SPRINT, "You do not have permission to manage sprints."):
            return False
        if not sprint.can_transition(SprintStatus.ACTIVE):
            self.toast_center.error(f"{sprint.name} cannot be started from {sprint.status.value}.")
            return False
        active = self.active_sprint
        if active is not None and active.id != sprint.id:
            self.toast_center.error(f"Complete {active.name} before starting another sprint.")
            return False
        started = sprint.model_copy(
            update={
                "status": SprintStatus.ACTIVE,
                "start_date": start_date,
                "end_date": end_date,
                "goal": goal or sprint.goal,
            }
        )
        result = await run_mutation(
            Mutation(
                name="start_sprint",
                collection=self.sprints,
                ids=[sprint_id],
                apply=lambda c: c.replace(started),
                commit=lambda: sprints_api.update_sprint(self.client, started),
                failure_message="Failed to start sprint",
                success_message=f"{sprint.name} started!",
            ),
            self.toast_center,
        )
        return result.ok

    def _next_planned_sprint(self, sprint: Sprint) -> Optional[Sprint]:
        """PLANNED sprint of the same project with the smallest id."""
        candidates = self.sprints.filter(
            lambda s: s.project_id == sprint.project_id and s.status == SprintStatus.PLANNED and s.id != sprint.id
        )
        return min(candidates, key=lambda s: s.id) if candidates else None

    async def complete_sprint(
        self,
        sprint_id: str,
        policy: SpilloverPolicy = SpilloverPolicy.BACKLOG,
    ) -> Optional[SprintCompletion]:
        """Complete a sprint and relocate its unfinished issues.

        DONE issues stay attached to the completed sprint. With NEXT_SPRINT the
        rest move to the next PLANNED sprint, or to the backlog when there is
        none. Each move is its own optimistic update; failures are reported in
        the result and a single toast. Completing an already completed sprint
        changes nothing.
        """
        policy = SpilloverPolicy(policy)
        sprint = self.sprints.get(sprint_id)
        if sprint is None:
            logger.warning(f"complete_sprint: unknown sprint {sprint_id}")
            return None
        if not self._require(Permission.MANAGE_SPRINT, "You do not have permission to manage sprints."):
            return None
        if sprint.status == SprintStatus.COMPLETED:
            logger.info(f"Sprint {sprint_id} already completed; nothing to do")
            return SprintCompletion(sprint_id=sprint_id, policy=policy, already_completed=True)

        completed = sprint.model_copy(update={"status": SprintStatus.COMPLETED})
        result = await run_mutation(
            Mutation(
                name="complete_sprint",
                collection=self.sprints,
                ids=[sprint_id],
                apply=lambda c: c.replace(completed),
                commit=lambda: sprints_api.update_sprint(self.client, completed),
                failure_message="Failed to complete sprint",
            ),
            self.toast_center,
        )
        if not result.ok:
            return None

        destination = self._next_planned_sprint(sprint) if policy == SpilloverPolicy.NEXT_SPRINT else None
        if policy == SpilloverPolicy.NEXT_SPRINT and destination is None:
            logger.info(f"No planned sprint after {sprint_id}; unfinished issues go to the backlog")
        outcome = SprintCompletion(
            sprint_id=sprint_id,
            policy=policy,
            destination_sprint_id=destination.id if destination else None,
        )

        unfinished = self.issues.filter(lambda i: i.sprint_id == sprint_id and i.status != IssueStatus.DONE)
        for issue in unfinished:
            moved = await self._update_issue(
                issue.id, {"sprint_id": outcome.destination_sprint_id}, notify=False
            )
            if moved is not None and moved.ok:
                outcome.moved_issue_ids.append(issue.id)
            else:
                outcome.failed_issue_ids.append(issue.id)

        if outcome.partial:
            logger.error(f"Sprint {sprint_id} completed with {len(outcome.failed_issue_ids)} unmoved issue(s)")
            self.toast_center.error(
                f"Sprint completed, but {len(outcome.failed_issue_ids)} issue(s) could not be moved."
            )
        else:
            self.toast_center.success("Sprint completed!")
        return outcome

    async def create_epic(
        self,
        title: str,
        description: str = "",
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        color: str = "bg-blue-500",
    ) -> Optional[Epic]:
        project = self.active_project
        if project is None:
            return None
        if not self._require(Permission.CREATE_EPIC, "You do not have permission to create epics."):
            return None
        epic = Epic(
            id=self.ids.new_id("e"),
            project_id=project.id,
            title=title,
            description=description,
            start_date=start_date,
            end_date=end_date,
            color=color,
        )
        result = await run_mutation(
            Mutation(
                name="create_epic",
                collection=self.epics,
                ids=[epic.id],
                apply=lambda c: c.insert(epic),
                commit=lambda: epics_api.create_epic(self.client, epic),
                failure_message="Failed to create epic",
                success_message="Epic created",
                reconcile_id=epic.id,
            ),
            self.toast_center,
        )
        if not result.ok:
            return None
        return self.epics.get(result.value.id) or result.value

    # ------------------------------------------------------------------
    # Users and notifications
    # ------------------------------------------------------------------

    async def update_user(self, user_id: str, **changes: Any) -> bool:
        if self.current_user is not None and user_id != self.current_user.id and not self._require(
            Permission.MANAGE_ACCESS, "You do not have permission to edit other users."
        ):
            return False
        result = await self._update_user(user_id, changes, success_message="Profile updated")
        return bool(result and result.ok)

    async def _update_user(
        self,
        user_id: str,
        changes: Dict[str, Any],
        *,
        notify: bool = True,
        success_message: Optional[str] = None,
    ) -> Optional[MutationResult]:
        before = self.users.get(user_id)
        if before is None and self.current_user is not None and self.current_user.id == user_id:
            before = self.current_user
        if before is None:
            return None
        invalid = (set(changes) - set(User.model_fields)) | (set(changes) & _IMMUTABLE_USER_FIELDS)
        if invalid:
            logger.error(f"Invalid profile update for {user_id}: cannot update fields {sorted(invalid)}")
            self.toast_center.error("Invalid profile update")
            return None
        try:
            after = User.model_validate({**before.model_dump(), **changes})
        except ValidationError as e:
            logger.error(f"Invalid profile update for {user_id}: {e}")
            self.toast_center.error("Invalid profile update")
            return None
        previous_current = self.current_user

        def apply(collection: EntityCollection) -> None:
            collection.upsert(after)
            if self.current_user is not None and self.current_user.id == user_id:
                self.current_user = after

        def restore_current() -> None:
            if self.current_user is not None and self.current_user.id == user_id:
                self.current_user = previous_current

        row_changes = after.to_row(include=set(changes))
        result = await run_mutation(
            Mutation(
                name="update_user",
                collection=self.users,
                ids=[user_id],
                apply=apply,
                commit=lambda: users_api.update_profile(self.client, user_id, row_changes),
                failure_message="Failed to update profile",
                success_message=success_message,
                on_rollback=[restore_current],
            ),
            self.toast_center,
            notify=notify,
        )
        if result.ok and self.current_user is not None and self.current_user.id == user_id:
            await self._remember()
        return result

    async def mark_notification_read(self, notification_id: str) -> bool:
        notification = self.notifications.get(notification_id)
        if notification is None or notification.read:
            return False
        updated = notification.model_copy(update={"read": True})
        result = await run_mutation(
            Mutation(
                name="mark_notification_read",
                collection=self.notifications,
                ids=[notification_id],
                apply=lambda c: c.replace(updated),
                commit=lambda: notifications_api.mark_notification_read(self.client, notification_id),
                failure_message="Failed to update notification",
            ),
            self.toast_center,
        )
        return result.ok

    def clear_notifications(self) -> None:
        self.notifications.clear()

    async def _notify(self, user_id: str, title: str, message: str, type: NotificationType) -> None:
        """Send a notification to another user; failures are only logged."""
        notification = Notification(
            id=self.ids.new_id("n"),
            user_id=user_id,
            title=title,
            message=message,
            type=type,
        )
        try:
            await notifications_api.create_notification(self.client, notification)
        except DataAccessError as e:
            logger.error(f"Failed to send notification to {user_id}: {e.message}")

    async def _notify_assignment(self, before: Optional[Issue], after: Issue) -> None:
        assignee = after.assignee_id
        if not assignee or (before is not None and before.assignee_id == assignee):
            return
        if self.current_user is not None and assignee == self.current_user.id:
            return
        await self._notify(
            assignee,
            "New assignment",
            f"You were assigned to {after.id}: {after.title}",
            NotificationType.ASSIGNMENT,
        )
