"""Epics API."""

from typing import List

from ..core.client import BackendClient
from ..core.models import Epic
from . import tables

TABLE = "epics"


async def list_epics(client: BackendClient, project_id: str) -> List[Epic]:
    rows = await tables.select_rows(client, TABLE, {"projectId": project_id})
    return [Epic.from_row(row) for row in rows]


async def create_epic(client: BackendClient, epic: Epic) -> Epic:
    row = await tables.insert_row(client, TABLE, epic.to_row())
    return Epic.from_row(row)


async def update_epic(client: BackendClient, epic: Epic) -> None:
    row = epic.to_row()
    row.pop("id", None)
    await tables.update_rows(client, TABLE, epic.id, row)
