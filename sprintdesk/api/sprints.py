"""Sprints API."""

from typing import List

from ..core.client import BackendClient
from ..core.models import Sprint
from . import tables

TABLE = "sprints"


async def list_sprints(client: BackendClient, project_id: str) -> List[Sprint]:
    rows = await tables.select_rows(client, TABLE, {"projectId": project_id})
    return [Sprint.from_row(row) for row in rows]


async def create_sprint(client: BackendClient, sprint: Sprint) -> Sprint:
    row = await tables.insert_row(client, TABLE, sprint.to_row())
    return Sprint.from_row(row)


async def update_sprint(client: BackendClient, sprint: Sprint) -> None:
    row = sprint.to_row()
    row.pop("id", None)
    await tables.update_rows(client, TABLE, sprint.id, row)
