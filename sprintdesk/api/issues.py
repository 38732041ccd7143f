"""Issues API."""

from typing import Any, Dict, List

from ..core.client import BackendClient
from ..core.models import Issue
from . import tables

TABLE = "issues"

_OPTIONAL_REFERENCES = ("sprintId", "epicId", "assigneeId")


def _issue_payload(issue: Issue) -> Dict[str, Any]:
    """Row for ``issue`` with empty optional references sent as explicit nulls."""
    payload = issue.to_row()
    for column in _OPTIONAL_REFERENCES:
        payload[column] = payload.get(column) or None
    return payload


async def list_issues(client: BackendClient, project_id: str) -> List[Issue]:
    """Retrieve the issues of one project.

    Args:
        client (BackendClient): The client instance.
        project_id (str): Owning project id.

    Returns:
        List[Issue]: Issues of the project.
    """
    rows = await tables.select_rows(client, TABLE, {"projectId": project_id})
    return [Issue.from_row(row) for row in rows]


async def create_issue(client: BackendClient, issue: Issue) -> Issue:
    """Insert ``issue`` and return the server's canonical copy."""
    row = await tables.insert_row(client, TABLE, _issue_payload(issue))
    return Issue.from_row(row)


async def update_issue(client: BackendClient, issue: Issue) -> None:
    payload = _issue_payload(issue)
    payload.pop("id", None)
    await tables.update_rows(client, TABLE, issue.id, payload)


async def delete_issue(client: BackendClient, issue_id: str) -> None:
    await tables.delete_rows(client, TABLE, issue_id)
