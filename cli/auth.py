from typing import Any, Dict

from .config import open_store, report_toasts


def _profile(store) -> Dict[str, Any]:
    user = store.current_user
    return {
        "authenticated": user is not None,
        "user": user.to_row() if user else None,
        "active_workspace_id": store.active_workspace_id,
        "active_project_id": store.active_project_id,
    }


async def login(email: str, password: str, quiet: bool = False) -> Dict[str, Any]:
    async with open_store(restore=False) as store:
        ok = await store.login(email, password)
        report_toasts(store, quiet)
        return {"ok": ok, **_profile(store)}


async def logout(quiet: bool = False) -> Dict[str, Any]:
    async with open_store() as store:
        await store.logout()
        report_toasts(store, quiet)
        return {"ok": True}


async def whoami() -> Dict[str, Any]:
    async with open_store() as store:
        report_toasts(store, quiet=True)
        return _profile(store)
