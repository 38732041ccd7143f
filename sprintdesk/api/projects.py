"""Projects API."""

from typing import List

from ..core.client import BackendClient
from ..core.models import Project
from . import tables

TABLE = "projects"


async def list_projects(client: BackendClient, workspace_id: str) -> List[Project]:
    """Retrieve the projects of one workspace.

    Args:
        client (BackendClient): The client instance.
        workspace_id (str): Owning workspace id.

    Returns:
        List[Project]: Projects of the workspace.
    """
    rows = await tables.select_rows(client, TABLE, {"workspaceId": workspace_id})
    return [Project.from_row(row) for row in rows]


async def create_project(client: BackendClient, project: Project) -> Project:
    row = await tables.insert_row(client, TABLE, project.to_row())
    return Project.from_row(row)


async def update_project(client: BackendClient, project: Project) -> None:
    row = project.to_row()
    row.pop("id", None)
    await tables.update_rows(client, TABLE, project.id, row)
