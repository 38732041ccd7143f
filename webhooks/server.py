"""Relay for Supabase Database Webhooks.

Each configured table posts ``{"type", "table", "schema", "record",
"old_record"}`` to ``/webhook/changes``; the payload is validated and
published into a :class:`RealtimeHub`, whose subscriptions feed the
application store.
"""

import json
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from sprintdesk.core.models import ChangeEvent
from sprintdesk.services.realtime import RealtimeHub
from sprintdesk.utils.logger import get_logger

logger = get_logger("webhooks.server")


def _summary(event: ChangeEvent) -> str:
    row = event.row
    bits = [f"{event.type.value} {event.table} id={event.row_id}"]
    old, new = event.old_record or {}, event.record or {}
    for key in ("status", "sprintId", "assigneeId"):
        if key in old and key in new and old[key] != new[key]:
            bits.append(f"{key}: {old[key]} -> {new[key]}")
    if row.get("title"):
        bits.append(f"title: '{row['title']}'")
    return "; ".join(bits)


def create_app(hub: RealtimeHub, secret: Optional[str] = None) -> FastAPI:
    """Build the relay app publishing into ``hub``.

    When ``secret`` is set, requests must carry it in ``X-Webhook-Secret``.
    """
    app = FastAPI(title="SprintDesk Realtime Relay")
    app.state.hub = hub

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"ok": True, "subscriptions": len(hub.subscriptions)}

    @app.post("/webhook/changes")
    async def database_change(request: Request, x_webhook_secret: Optional[str] = Header(default=None)):
        if secret and x_webhook_secret != secret:
            logger.warning("Invalid webhook secret")
            raise HTTPException(status_code=401, detail="Invalid webhook secret")

        try:
            payload = await request.json()
        except json.JSONDecodeError:
            logger.warning("Webhook body is not JSON")
            raise HTTPException(status_code=400, detail="Body must be JSON")

        try:
            event = ChangeEvent.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Rejected webhook payload: {e.error_count()} validation error(s)")
            raise HTTPException(status_code=422, detail="Not a database change payload")

        delivered = hub.publish(event)
        logger.info(f"Webhook received: {_summary(event)} -> {delivered} subscriber(s)")
        return JSONResponse({"success": True, "delivered": delivered})

    return app

