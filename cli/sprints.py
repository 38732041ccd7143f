from dataclasses import asdict
from typing import Any, Dict, Optional

from sprintdesk.core.models import SpilloverPolicy
from sprintdesk.services import stats as stats_service

from .config import open_store, report_toasts


async def complete_sprint(
    sprint_id: Optional[str] = None,
    policy: str = SpilloverPolicy.BACKLOG.value,
    workspace: Optional[str] = None,
    project: Optional[str] = None,
    quiet: bool = False,
) -> Optional[Dict[str, Any]]:
    """Complete ``sprint_id`` (default: the active sprint)."""
    async with open_store(workspace=workspace, project=project) as store:
        target = sprint_id or (store.active_sprint.id if store.active_sprint else None)
        if target is None:
            print("No active sprint to complete")
            return None
        outcome = await store.complete_sprint(target, SpilloverPolicy(policy))
        report_toasts(store, quiet)
        if outcome is None:
            return None
        result = asdict(outcome)
        result["policy"] = outcome.policy.value
        return result


async def project_stats(workspace: Optional[str] = None, project: Optional[str] = None) -> Dict[str, Any]:
    async with open_store(workspace=workspace, project=project) as store:
        report_toasts(store, quiet=True)
        return stats_service.dashboard(store.issues, store.sprints, store.users, store.active_sprint)
