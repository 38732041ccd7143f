from typing import Any, Dict, List, Optional

from sprintdesk.core.models import IssueStatus, IssueType, Priority

from .config import open_store, report_toasts


async def list_issues(
    workspace: Optional[str] = None,
    project: Optional[str] = None,
    search: Optional[str] = None,
    backlog_only: bool = False,
) -> List[Dict[str, Any]]:
    async with open_store(workspace=workspace, project=project) as store:
        report_toasts(store, quiet=True)
        store.set_search_query(search or "")
        issues = store.backlog if backlog_only else store.visible_issues
        return [issue.to_row() for issue in issues]


async def create_issue(
    title: str,
    issue_type: str = IssueType.TASK.value,
    priority: str = Priority.MEDIUM.value,
    description: str = "",
    story_points: Optional[int] = None,
    assignee_id: Optional[str] = None,
    sprint_id: Optional[str] = None,
    generate_description: bool = False,
    workspace: Optional[str] = None,
    project: Optional[str] = None,
    quiet: bool = False,
) -> Optional[Dict[str, Any]]:
    async with open_store(workspace=workspace, project=project) as store:
        if generate_description and not description:
            description = await store.generate_description(title, IssueType(issue_type)) or ""
        issue = await store.add_issue(
            title,
            IssueType(issue_type),
            description=description,
            priority=Priority(priority),
            assignee_id=assignee_id,
            sprint_id=sprint_id,
            story_points=story_points,
        )
        report_toasts(store, quiet)
        return issue.to_row() if issue else None


async def move_issue(
    issue_id: str,
    status: Optional[str] = None,
    sprint_id: Optional[str] = None,
    to_backlog: bool = False,
    workspace: Optional[str] = None,
    project: Optional[str] = None,
    quiet: bool = False,
) -> Optional[Dict[str, Any]]:
    changes: Dict[str, Any] = {}
    if status:
        changes["status"] = IssueStatus(status)
    if to_backlog:
        changes["sprint_id"] = None
    elif sprint_id:
        changes["sprint_id"] = sprint_id
    async with open_store(workspace=workspace, project=project) as store:
        if issue_id not in store.issues:
            print(f"Issue {issue_id} not found in the active project")
            return None
        ok = await store.update_issue(issue_id, **changes) if changes else True
        report_toasts(store, quiet)
        issue = store.issues.get(issue_id)
        return {"ok": ok, "issue": issue.to_row() if issue else None}
