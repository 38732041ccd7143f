"""Teams API."""

from typing import List

from ..core.client import BackendClient
from ..core.models import Team
from . import tables

TABLE = "teams"


async def list_teams(client: BackendClient, workspace_id: str) -> List[Team]:
    rows = await tables.select_rows(client, TABLE, {"workspaceId": workspace_id})
    return [Team.from_row(row) for row in rows]


async def create_team(client: BackendClient, team: Team) -> Team:
    row = await tables.insert_row(client, TABLE, team.to_row())
    return Team.from_row(row)


async def update_team_members(client: BackendClient, team: Team) -> None:
    """Persist only the membership list of ``team``."""
    await tables.update_rows(client, TABLE, team.id, {"members": list(team.members)})
