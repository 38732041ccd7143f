from typing import Any, Dict, List, Optional

from .config import open_store, report_toasts


async def list_workspaces() -> List[Dict[str, Any]]:
    async with open_store() as store:
        report_toasts(store, quiet=True)
        return [
            {**ws.to_row(), "active": ws.id == store.active_workspace_id}
            for ws in store.workspaces
        ]


async def list_projects(workspace: Optional[str] = None) -> List[Dict[str, Any]]:
    async with open_store(workspace=workspace) as store:
        report_toasts(store, quiet=True)
        return [
            {**project.to_row(), "active": project.id == store.active_project_id}
            for project in store.projects
        ]
