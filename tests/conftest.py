import asyncio
import json
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio

from sprintdesk.core.auth import AuthManager
from sprintdesk.core.client import BackendClient
from sprintdesk.core.models import ChangeEvent, ChangeType
from sprintdesk.services.genai import TextGenerator
from sprintdesk.services.realtime import RealtimeHub
from sprintdesk.services.store import AppStore
from sprintdesk.services.toasts import ToastCenter

BASE_URL = "https://fake.supabase.co"
ANON_KEY = "anon-test-key"


class FakeSupabase:
    """In-memory stand-in for PostgREST, GoTrue and Storage behind httpx.MockTransport."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.accounts: Dict[str, Dict[str, Any]] = {}
        self.tokens: Dict[str, str] = {}
        self.objects: Dict[str, bytes] = {}
        self.requests: List[httpx.Request] = []
        self.failures: Dict[Tuple[str, str], Optional[int]] = {}
        self.holds: List[Tuple[str, str, Dict[str, str], asyncio.Event]] = []
        self.hub: Optional[RealtimeHub] = None

    # -- test controls -------------------------------------------------

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def row(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        return next((r for r in self.rows(table) if r.get("id") == row_id), None)

    def seed(self, table: str, *rows: Dict[str, Any]) -> None:
        self.rows(table).extend(dict(r) for r in rows)

    def add_account(self, email: str, password: str, name: str = "Test User") -> str:
        user_id = f"u-{uuid.uuid4().hex[:8]}"
        self.accounts[email] = {
            "id": user_id,
            "email": email,
            "password": password,
            "user_metadata": {"full_name": name},
        }
        return user_id

    def fail(self, method: str, table: str, times: Optional[int] = None) -> None:
        """Make ``method`` on ``table`` answer 500 (``times`` calls, or forever)."""
        self.failures[(method, table)] = times

    def recover(self) -> None:
        self.failures.clear()

    def hold(self, method: str, table: str, **filters: str) -> asyncio.Event:
        """Block matching requests until the returned event is set."""
        event = asyncio.Event()
        self.holds.append((method, table, filters, event))
        return event

    def calls(self, method: str, table: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path.endswith(f"/{table}")]

    # -- transport -----------------------------------------------------

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith("/auth/v1/"):
            return self._auth(request, path[len("/auth/v1/"):])
        if path.startswith("/storage/v1/object/"):
            self.objects[path] = request.content
            return httpx.Response(200, json={"Key": path})
        if path.startswith("/rest/v1/"):
            return await self._rest(request, path[len("/rest/v1/"):])
        return httpx.Response(404, json={"message": "not found"})

    def _session_payload(self, account: Dict[str, Any]) -> Dict[str, Any]:
        token = f"token-{uuid.uuid4().hex[:8]}"
        self.tokens[token] = account["email"]
        user = {k: v for k, v in account.items() if k != "password"}
        return {
            "access_token": token,
            "refresh_token": f"refresh-{token}",
            "token_type": "bearer",
            "expires_in": 3600,
            "user": user,
        }

    def _auth(self, request: httpx.Request, endpoint: str) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        if endpoint == "token":
            if request.url.params.get("grant_type") == "refresh_token":
                token = body.get("refresh_token", "").replace("refresh-", "", 1)
                email = self.tokens.get(token)
                if email is None:
                    return httpx.Response(400, json={"error_description": "Invalid Refresh Token"})
                return httpx.Response(200, json=self._session_payload(self.accounts[email]))
            account = self.accounts.get(body.get("email"))
            if account is None or account["password"] != body.get("password"):
                return httpx.Response(400, json={"error_description": "Invalid login credentials"})
            return httpx.Response(200, json=self._session_payload(account))
        if endpoint == "signup":
            if body.get("email") in self.accounts:
                return httpx.Response(400, json={"msg": "User already registered"})
            self.add_account(body["email"], body["password"], (body.get("data") or {}).get("full_name", ""))
            return httpx.Response(200, json=self._session_payload(self.accounts[body["email"]]))
        if endpoint == "logout":
            return httpx.Response(204)
        if endpoint == "recover":
            return httpx.Response(200, json={})
        if endpoint == "user":
            token = request.headers.get("Authorization", "").replace("Bearer ", "", 1)
            email = self.tokens.get(token)
            if email is None:
                return httpx.Response(401, json={"msg": "invalid JWT"})
            return httpx.Response(200, json={k: v for k, v in self.accounts[email].items() if k != "password"})
        return httpx.Response(404, json={"msg": "unknown auth endpoint"})

    def _filters(self, request: httpx.Request) -> Dict[str, str]:
        return {
            key: value[3:]
            for key, value in request.url.params.items()
            if key not in ("select", "order") and value.startswith("eq.")
        }

    def _publish(self, change: ChangeType, table: str, record=None, old_record=None) -> None:
        if self.hub is not None:
            self.hub.publish(ChangeEvent(type=change, table=table, record=record, old_record=old_record))

    async def _rest(self, request: httpx.Request, table: str) -> httpx.Response:
        filters = self._filters(request)
        for method, held_table, held_filters, event in self.holds:
            if method == request.method and held_table == table and held_filters.items() <= filters.items():
                await event.wait()

        key = (request.method, table)
        if key in self.failures:
            remaining = self.failures[key]
            if remaining is not None:
                if remaining <= 1:
                    del self.failures[key]
                else:
                    self.failures[key] = remaining - 1
            return httpx.Response(500, json={"message": "internal error"})

        rows = self.rows(table)

        def matches(row: Dict[str, Any]) -> bool:
            return all(str(row.get(column)) == value for column, value in filters.items())

        if request.method == "GET":
            found = [dict(r) for r in rows if matches(r)]
            order = request.url.params.get("order")
            if order:
                column, _, direction = order.partition(".")
                found.sort(key=lambda r: str(r.get(column) or ""), reverse=direction == "desc")
            return httpx.Response(200, json=found)

        if request.method == "POST":
            body = json.loads(request.content)
            items = body if isinstance(body, list) else [body]
            upsert = "merge-duplicates" in request.headers.get("Prefer", "")
            stored = []
            for item in items:
                existing = self.row(table, item.get("id"))
                if existing is not None and not upsert:
                    return httpx.Response(409, json={"message": "duplicate key value violates unique constraint"})
                if existing is not None:
                    existing.update(item)
                    stored.append(dict(existing))
                    self._publish(ChangeType.UPDATE, table, dict(existing))
                else:
                    rows.append(dict(item))
                    stored.append(dict(item))
                    self._publish(ChangeType.INSERT, table, dict(item))
            return httpx.Response(201, json=stored)

        if request.method == "PATCH":
            changes = json.loads(request.content)
            for row in rows:
                if matches(row):
                    old = dict(row)
                    row.update(changes)
                    self._publish(ChangeType.UPDATE, table, dict(row), old)
            return httpx.Response(204)

        if request.method == "DELETE":
            for row in [r for r in rows if matches(r)]:
                rows.remove(row)
                self._publish(ChangeType.DELETE, table, None, dict(row))
            return httpx.Response(204)

        return httpx.Response(405, json={"message": "method not allowed"})


def make_client(backend: FakeSupabase, anon_key: str = ANON_KEY) -> BackendClient:
    return BackendClient(
        AuthManager(anon_key=anon_key),
        base_url=BASE_URL,
        transport=httpx.MockTransport(backend.handler),
        max_retries=0,
    )


def seed_workspace(
    backend: FakeSupabase,
    user_id: str,
    role: str = "Founder",
    name: str = "Ada Lovelace",
    email: str = "ada@example.com",
    project_keys: Tuple[str, ...] = ("WEB",),
) -> Dict[str, Any]:
    """Profile, one workspace and its projects for an existing account."""
    workspace = {"id": "ws-1", "name": "Acme", "ownerId": user_id, "members": [user_id]}
    backend.seed("profiles", {
        "id": user_id, "name": name, "email": email, "avatar": "", "role": role, "workspaceIds": ["ws-1"],
    })
    backend.seed("workspaces", workspace)
    projects = []
    for index, key in enumerate(project_keys, start=1):
        project = {
            "id": f"p-{index}", "workspaceId": "ws-1", "name": f"Project {key}", "key": key,
            "description": "", "leadId": user_id, "type": "software",
        }
        backend.seed("projects", project)
        projects.append(project)
    return {"workspace": workspace, "projects": projects}


@pytest.fixture
def backend() -> FakeSupabase:
    return FakeSupabase()


@pytest_asyncio.fixture
async def client(backend):
    async with make_client(backend) as c:
        yield c


@pytest.fixture
def hub(backend) -> RealtimeHub:
    hub = RealtimeHub()
    backend.hub = hub
    return hub


@pytest_asyncio.fixture
async def store(client, hub):
    s = AppStore(client, generator=TextGenerator(api_key=""), hub=hub, toasts=ToastCenter(ttl_seconds=0))
    yield s
    await s.close()


@pytest.fixture
def founder(backend) -> Dict[str, Any]:
    user_id = backend.add_account("ada@example.com", "secret", "Ada Lovelace")
    return {"id": user_id, "email": "ada@example.com", "password": "secret", **seed_workspace(backend, user_id)}


@pytest_asyncio.fixture
async def ready_store(store, founder):
    """Store signed in as a Founder with workspace ws-1 and project WEB selected."""
    assert await store.login(founder["email"], founder["password"])
    await store.realtime_idle()
    store.toast_center.clear()
    return store


def toast_messages(store: AppStore, type_: Optional[str] = None) -> List[str]:
    return [t.message for t in store.toasts if type_ is None or t.type.value == type_]


def entity_snapshot(collection) -> List[Dict[str, Any]]:
    return [item.model_dump() for item in collection]


def find_request(backend: FakeSupabase, predicate: Callable[[httpx.Request], bool]) -> Optional[httpx.Request]:
    return next((r for r in backend.requests if predicate(r)), None)
