"""Profiles API (table ``profiles``)."""

from typing import Any, Dict, List, Optional

from ..core.client import BackendClient
from ..core.models import User
from . import tables

TABLE = "profiles"


async def list_users(client: BackendClient) -> List[User]:
    """Retrieve every visible profile.

    Args:
        client (BackendClient): The client instance.

    Returns:
        List[User]: Profiles, empty when the service is not configured.
    """
    rows = await tables.select_rows(client, TABLE)
    return [User.from_row(row) for row in rows]


async def get_profile(client: BackendClient, user_id: str) -> Optional[User]:
    row = await tables.select_one(client, TABLE, user_id)
    return User.from_row(row) if row else None


async def insert_profile(client: BackendClient, user: User) -> User:
    row = await tables.insert_row(client, TABLE, user.to_row())
    return User.from_row(row)


async def upsert_profile(client: BackendClient, user: User) -> User:
    row = await tables.upsert_row(client, TABLE, user.to_row())
    return User.from_row(row)


async def update_profile(client: BackendClient, user_id: str, changes: Dict[str, Any]) -> None:
    """Apply a partial update; ``changes`` uses row (camelCase) column names."""
    await tables.update_rows(client, TABLE, user_id, changes)
