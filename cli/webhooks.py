from typing import Optional

import uvicorn

from sprintdesk.config import settings
from webhooks.server import create_app

from .config import open_store, report_toasts


async def serve(
    host: Optional[str] = None,
    port: Optional[int] = None,
    workspace: Optional[str] = None,
    project: Optional[str] = None,
) -> None:
    """Run the change relay in-process, feeding a live store until interrupted."""
    async with open_store(workspace=workspace, project=project) as store:
        report_toasts(store, quiet=True)
        app = create_app(store.hub, settings.webhook_secret)
        config = uvicorn.Config(
            app,
            host=host or settings.webhook_host,
            port=port or settings.webhook_port,
            log_level=settings.log_level.lower(),
        )
        server = uvicorn.Server(config)
        await server.serve()
