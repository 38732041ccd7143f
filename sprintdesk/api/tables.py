"""PostgREST table helpers shared by the per-entity API modules.

Reads return empty results when the remote service is not configured; writes
raise :class:`ServiceNotConfiguredError` through the client.
"""

from typing import Any, Dict, List, Optional

from ..core.client import BackendClient
from ..utils.logger import get_logger

logger = get_logger(__name__)

REST_PREFIX = "/rest/v1"


def table_path(table: str) -> str:
    return f"{REST_PREFIX}/{table}"


def eq_filters(filters: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Translate ``{"projectId": "p-1"}`` into PostgREST ``eq`` operators."""
    return {column: f"eq.{value}" for column, value in (filters or {}).items()}


async def select_rows(
    client: BackendClient,
    table: str,
    filters: Optional[Dict[str, Any]] = None,
    order: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Select all rows of ``table`` matching the equality filters."""
    if not client.configured:
        logger.debug(f"Skipping select on {table}: service not configured")
        return []
    params: Dict[str, Any] = {"select": "*", **eq_filters(filters)}
    if order:
        params["order"] = order
    data = await client.get(table_path(table), params=params)
    return list(data or [])


async def select_one(client: BackendClient, table: str, row_id: str) -> Optional[Dict[str, Any]]:
    rows = await select_rows(client, table, {"id": row_id})
    return rows[0] if rows else None


async def insert_row(client: BackendClient, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
    """Insert a row and return the server representation."""
    data = await client.post(
        table_path(table),
        json=row,
        headers={"Prefer": "return=representation"},
    )
    if isinstance(data, list):
        return data[0] if data else row
    return data or row


async def upsert_row(client: BackendClient, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
    data = await client.post(
        table_path(table),
        json=row,
        headers={"Prefer": "resolution=merge-duplicates,return=representation"},
    )
    if isinstance(data, list):
        return data[0] if data else row
    return data or row


async def update_rows(
    client: BackendClient,
    table: str,
    row_id: str,
    changes: Dict[str, Any],
) -> None:
    await client.patch(
        table_path(table),
        json=changes,
        params=eq_filters({"id": row_id}),
        headers={"Prefer": "return=minimal"},
    )


async def delete_rows(client: BackendClient, table: str, row_id: str) -> None:
    await client.delete(
        table_path(table),
        params=eq_filters({"id": row_id}),
        headers={"Prefer": "return=minimal"},
    )
