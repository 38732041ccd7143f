from datetime import datetime, timezone

from sprintdesk.core.models import Epic, Issue, IssueStatus, Priority, Sprint, SprintStatus, User
from sprintdesk.services import stats


def _issue(issue_id, sprint_id=None, status=IssueStatus.TODO, points=None, **kwargs):
    return Issue(id=issue_id, project_id="p-1", title=issue_id, sprint_id=sprint_id, status=status,
                 story_points=points, **kwargs)


ACTIVE = Sprint(
    id="sp-2", project_id="p-1", name="Sprint 2", status=SprintStatus.ACTIVE,
    end_date=datetime(2026, 10, 28, tzinfo=timezone.utc),
)
DONE_SPRINT = Sprint(id="sp-1", project_id="p-1", name="Sprint 1", status=SprintStatus.COMPLETED)

ISSUES = [
    _issue("WEB-1", "sp-1", IssueStatus.DONE, 5),
    _issue("WEB-2", "sp-1", IssueStatus.TODO, 3),
    _issue("WEB-3", "sp-2", IssueStatus.DONE, 2, assignee_id="u-1"),
    _issue("WEB-4", "sp-2", IssueStatus.IN_PROGRESS, 6, assignee_id="u-1", priority=Priority.CRITICAL),
    _issue("WEB-5", None, IssueStatus.TODO, None, priority=Priority.HIGH),
]


def test_sprint_progress():
    progress = stats.sprint_progress(ISSUES, ACTIVE, now=datetime(2026, 10, 18, tzinfo=timezone.utc))
    assert progress["total_points"] == 8
    assert progress["completed_points"] == 2
    assert progress["percentage"] == 25
    assert progress["days_remaining"] == 10
    assert progress["issue_count"] == 2


def test_progress_without_sprint_or_points():
    assert stats.sprint_progress(ISSUES, None)["percentage"] == 0
    empty = Sprint(id="sp-9", project_id="p-1", name="Empty")
    assert stats.sprint_progress(ISSUES, empty)["days_remaining"] is None


def test_velocity_counts_completed_sprints_only():
    result = stats.velocity(ISSUES, [DONE_SPRINT, ACTIVE])
    assert result["sprints"] == [{"sprint_id": "sp-1", "name": "Sprint 1", "points": 5}]
    assert result["average"] == 5


def test_workload_and_open_counts():
    users = [User(id="u-1", name="Ada"), User(id="u-2", name="Bob")]
    assert stats.workload(ISSUES, users, ACTIVE) == [{"user_id": "u-1", "name": "Ada", "issues": 2, "points": 8}]
    assert stats.open_issue_counts(ISSUES) == {"open": 3, "critical": 1, "high": 1}
    assert stats.status_breakdown(ISSUES) == {"TODO": 2, "IN_PROGRESS": 1, "IN_REVIEW": 0, "DONE": 2}


def test_board_columns_filter_by_search_and_assignee():
    columns = stats.board_columns(ISSUES, ACTIVE, search="web-4")
    assert [i.id for i in columns[IssueStatus.IN_PROGRESS]] == ["WEB-4"]
    assert columns[IssueStatus.DONE] == []
    by_assignee = stats.board_columns(ISSUES, ACTIVE, assignee_id="u-2")
    assert all(not column for column in by_assignee.values())


def test_roadmap_puts_undated_epics_last():
    epics = [
        Epic(id="e-1", project_id="p-1", title="Later"),
        Epic(id="e-2", project_id="p-1", title="Beta", start_date="2026-11-01"),
        Epic(id="e-3", project_id="p-1", title="Alpha", start_date="2026-10-01"),
    ]
    assert [e.id for e in stats.roadmap(epics)] == ["e-3", "e-2", "e-1"]


def test_dashboard_bundles_every_panel():
    board = stats.dashboard(ISSUES, [DONE_SPRINT, ACTIVE], [User(id="u-1", name="Ada")], ACTIVE)
    assert set(board) == {"progress", "velocity", "workload", "status", "open"}
