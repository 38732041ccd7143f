from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ..core.models import Epic, Issue, IssueStatus, Priority, Sprint, SprintStatus, User, utcnow


def _points(issues: Iterable[Issue]) -> int:
    return sum(issue.story_points or 0 for issue in issues)


def sprint_issues(issues: Iterable[Issue], sprint: Optional[Sprint]) -> List[Issue]:
    if sprint is None:
        return []
    return [issue for issue in issues if issue.sprint_id == sprint.id]


def sprint_progress(
    issues: Iterable[Issue],
    sprint: Optional[Sprint],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Story point progress of ``sprint`` and the days left until its end."""
    scoped = sprint_issues(issues, sprint)
    total = _points(scoped)
    completed = _points(issue for issue in scoped if issue.status == IssueStatus.DONE)
    days_remaining = None
    if sprint is not None and sprint.end_date is not None:
        now = now or utcnow()
        end = sprint.end_date if sprint.end_date.tzinfo else sprint.end_date.replace(tzinfo=now.tzinfo)
        days_remaining = max(0, (end - now).days)
    return {
        "sprint_id": sprint.id if sprint else None,
        "total_points": total,
        "completed_points": completed,
        "percentage": round(completed / total * 100) if total > 0 else 0,
        "days_remaining": days_remaining,
        "issue_count": len(scoped),
    }


def velocity(issues: Iterable[Issue], sprints: Iterable[Sprint]) -> Dict[str, Any]:
    """Done story points per completed sprint and their average."""
    issues = list(issues)
    per_sprint: List[Dict[str, Any]] = []
    for sprint in sprints:
        if sprint.status != SprintStatus.COMPLETED:
            continue
        done = [issue for issue in issues if issue.sprint_id == sprint.id and issue.status == IssueStatus.DONE]
        per_sprint.append({"sprint_id": sprint.id, "name": sprint.name, "points": _points(done)})
    average = round(sum(item["points"] for item in per_sprint) / (len(per_sprint) or 1))
    return {"sprints": per_sprint, "average": average}


def workload(issues: Iterable[Issue], users: Iterable[User], sprint: Optional[Sprint]) -> List[Dict[str, Any]]:
    scoped = sprint_issues(issues, sprint)
    rows = []
    for user in users:
        assigned = [issue for issue in scoped if issue.assignee_id == user.id]
        if not assigned:
            continue
        rows.append({"user_id": user.id, "name": user.name, "issues": len(assigned), "points": _points(assigned)})
    return rows


def status_breakdown(issues: Iterable[Issue]) -> Dict[str, int]:
    issues = list(issues)
    return {status.value: sum(1 for issue in issues if issue.status == status) for status in IssueStatus}


def open_issue_counts(issues: Iterable[Issue]) -> Dict[str, int]:
    open_issues = [issue for issue in issues if issue.status != IssueStatus.DONE]
    return {
        "open": len(open_issues),
        "critical": sum(1 for issue in open_issues if issue.priority == Priority.CRITICAL),
        "high": sum(1 for issue in open_issues if issue.priority == Priority.HIGH),
    }


def matches_search(issue: Issue, query: Optional[str]) -> bool:
    if not query:
        return True
    needle = query.casefold()
    return needle in issue.title.casefold() or needle in issue.id.casefold()


def board_columns(
    issues: Iterable[Issue],
    sprint: Optional[Sprint],
    search: Optional[str] = None,
    assignee_id: Optional[str] = None,
) -> Dict[IssueStatus, List[Issue]]:
    """Active-sprint issues grouped into the four board columns."""
    columns: Dict[IssueStatus, List[Issue]] = {status: [] for status in IssueStatus}
    for issue in sprint_issues(issues, sprint):
        if not matches_search(issue, search):
            continue
        if assignee_id and issue.assignee_id != assignee_id:
            continue
        columns[issue.status].append(issue)
    return columns


def roadmap(epics: Iterable[Epic]) -> List[Epic]:
    """Epics for the timeline, undated ones last."""
    return sorted(epics, key=lambda epic: (epic.start_date is None, epic.start_date or "", epic.title))


def dashboard(issues: Iterable[Issue], sprints: Iterable[Sprint], users: Iterable[User], active_sprint: Optional[Sprint]) -> Dict[str, Any]:
    issues = list(issues)
    sprints = list(sprints)
    return {
        "progress": sprint_progress(issues, active_sprint),
        "velocity": velocity(issues, sprints),
        "workload": workload(issues, users, active_sprint),
        "status": status_breakdown(issues),
        "open": open_issue_counts(issues),
    }
