import asyncio

import httpx
import pytest

from sprintdesk.core.models import ChangeEvent, ChangeType
from sprintdesk.services.realtime import RealtimeHub
from webhooks.server import create_app


def _event(change=ChangeType.INSERT, project="p-1", row_id="WEB-1"):
    row = {"id": row_id, "projectId": project, "title": "t"}
    if change == ChangeType.DELETE:
        return ChangeEvent(type=change, table="issues", old_record=row)
    return ChangeEvent(type=change, table="issues", record=row)


@pytest.mark.asyncio
async def test_publish_routes_by_table_and_filter():
    hub = RealtimeHub()
    mine = hub.subscribe("issues", "projectId", "p-1")
    other = hub.subscribe("issues", "projectId", "p-2")
    sprints = hub.subscribe("sprints", "projectId", "p-1")

    assert hub.publish(_event()) == 1
    assert hub.publish(_event(ChangeType.DELETE, row_id="WEB-2")) == 1

    received = [await mine.__anext__(), await mine.__anext__()]
    assert [e.row_id for e in received] == ["WEB-1", "WEB-2"]
    assert other._queue.empty() and sprints._queue.empty()


@pytest.mark.asyncio
async def test_closed_subscription_ends_stream_and_stops_matching():
    hub = RealtimeHub()
    subscription = hub.subscribe("issues", "projectId", "p-1")
    seen = []

    async def consume():
        async for event in subscription:
            seen.append(event.row_id)
            subscription.task_done()

    task = asyncio.create_task(consume())
    hub.publish(_event())
    await subscription.join()
    subscription.close()
    await asyncio.wait_for(task, timeout=1)

    assert seen == ["WEB-1"]
    assert hub.publish(_event(row_id="WEB-3")) == 0
    assert hub.subscriptions == []


@pytest.mark.asyncio
async def test_webhook_relay_publishes_changes():
    hub = RealtimeHub()
    subscription = hub.subscribe("issues", "projectId", "p-1")
    app = create_app(hub, secret="s3cret")
    payload = {
        "type": "UPDATE",
        "table": "issues",
        "schema": "public",
        "record": {"id": "WEB-1", "projectId": "p-1", "status": "DONE"},
        "old_record": {"id": "WEB-1", "projectId": "p-1", "status": "TODO"},
    }
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://relay") as http:
        denied = await http.post("/webhook/changes", json=payload)
        accepted = await http.post("/webhook/changes", json=payload, headers={"X-Webhook-Secret": "s3cret"})
        invalid = await http.post("/webhook/changes", json={"hello": "world"}, headers={"X-Webhook-Secret": "s3cret"})
        health = await http.get("/health")

    assert denied.status_code == 401
    assert accepted.status_code == 200 and accepted.json() == {"success": True, "delivered": 1}
    assert invalid.status_code == 422
    assert health.json()["ok"] is True

    event = await subscription.__anext__()
    assert event.type == ChangeType.UPDATE and event.record["status"] == "DONE"
