"""Notifications API (rows scoped by ``userId``)."""

from typing import List

from ..core.client import BackendClient
from ..core.models import Notification
from . import tables

TABLE = "notifications"


async def list_notifications(client: BackendClient, user_id: str) -> List[Notification]:
    rows = await tables.select_rows(client, TABLE, {"userId": user_id}, order="createdAt.desc")
    return [Notification.from_row(row) for row in rows]


async def create_notification(client: BackendClient, notification: Notification) -> Notification:
    row = await tables.insert_row(client, TABLE, notification.to_row())
    return Notification.from_row(row)


async def mark_notification_read(client: BackendClient, notification_id: str) -> None:
    await tables.update_rows(client, TABLE, notification_id, {"read": True})
