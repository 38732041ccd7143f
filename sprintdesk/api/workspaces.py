"""Workspaces API."""

from typing import List

from ..core.client import BackendClient
from ..core.models import Workspace
from . import tables

TABLE = "workspaces"


async def list_workspaces(client: BackendClient) -> List[Workspace]:
    rows = await tables.select_rows(client, TABLE)
    return [Workspace.from_row(row) for row in rows]


async def create_workspace(client: BackendClient, workspace: Workspace) -> Workspace:
    row = await tables.insert_row(client, TABLE, workspace.to_row())
    return Workspace.from_row(row)


async def update_workspace_members(client: BackendClient, workspace: Workspace) -> None:
    """Persist only the membership list of ``workspace``."""
    await tables.update_rows(client, TABLE, workspace.id, {"members": list(workspace.members)})
