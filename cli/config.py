import os
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sprintdesk.core.client import BackendClient
from sprintdesk.core.models import ToastType
from sprintdesk.services.session_cache import SessionCache
from sprintdesk.services.store import AppStore


def resolve_workspace_id(cli_value: Optional[str]) -> Optional[str]:
    """Resolve workspace id with precedence: CLI > env."""
    return cli_value or os.environ.get("SPRINTDESK_WORKSPACE_ID") or None


def resolve_project(cli_value: Optional[str]) -> Optional[str]:
    """Resolve project id or key with precedence: CLI > env."""
    return cli_value or os.environ.get("SPRINTDESK_PROJECT") or None


async def select_scope(store: AppStore, workspace: Optional[str] = None, project: Optional[str] = None) -> None:
    workspace_id = resolve_workspace_id(workspace)
    if workspace_id and workspace_id != store.active_workspace_id:
        await store.select_workspace(workspace_id)
    ref = resolve_project(project)
    if ref:
        match = store.projects.find(lambda p: p.id == ref or p.key == ref.upper())
        if match is None:
            print(f"Project {ref} not found in the active workspace", file=sys.stderr)
        elif match.id != store.active_project_id:
            await store.select_project(match.id)


@asynccontextmanager
async def open_store(
    workspace: Optional[str] = None,
    project: Optional[str] = None,
    restore: bool = True,
) -> AsyncIterator[AppStore]:
    """Store bound to the cached session, scoped to the requested workspace/project."""
    cache = SessionCache()
    async with BackendClient() as client:
        store = AppStore(client, cache=cache)
        try:
            if restore:
                await store.start()
                await select_scope(store, workspace, project)
            yield store
        finally:
            await store.close()
            await cache.close()


def report_toasts(store: AppStore, quiet: bool = False) -> None:
    """Echo the store's notices: errors to stderr, the rest to stdout."""
    for toast in store.toasts:
        if toast.type == ToastType.ERROR:
            print(f"error: {toast.message}", file=sys.stderr)
        elif not quiet:
            print(toast.message)
