import httpx
import pytest

from sprintdesk.api import issues as issues_api
from sprintdesk.api import tables
from sprintdesk.core.auth import AuthManager
from sprintdesk.core.client import BackendClient
from sprintdesk.core.exceptions import (
    NOT_CONFIGURED_MESSAGE,
    AuthorizationError,
    ConflictError,
    DataAccessError,
    NotFoundError,
    RateLimitError,
    ServiceNotConfiguredError,
)
from sprintdesk.core.models import Issue, Session

from conftest import ANON_KEY, BASE_URL


def _client(handler, max_retries: int = 0, session: Session = None) -> BackendClient:
    auth = AuthManager(anon_key=ANON_KEY)
    auth.session = session
    return BackendClient(auth, base_url=BASE_URL, transport=httpx.MockTransport(handler), max_retries=max_retries)


@pytest.mark.asyncio
async def test_unconfigured_reads_are_empty_and_writes_fail_fast():
    async with BackendClient(AuthManager(anon_key=""), base_url="") as client:
        assert not client.configured
        assert await tables.select_rows(client, "issues", {"projectId": "p-1"}) == []
        with pytest.raises(ServiceNotConfiguredError) as exc:
            await issues_api.create_issue(client, Issue(id="WEB-1", project_id="p-1", title="x"))
        assert exc.value.message == NOT_CONFIGURED_MESSAGE


@pytest.mark.asyncio
async def test_requests_carry_anon_key_and_session_token():
    seen = {}

    def handler(request):
        seen.update(request.headers)
        return httpx.Response(200, json=[])

    session = Session(access_token="user-token", user={"id": "u-1"})
    async with _client(handler, session=session) as client:
        await client.get("/rest/v1/issues")
    assert seen["apikey"] == ANON_KEY
    assert seen["authorization"] == "Bearer user-token"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, error",
    [(403, AuthorizationError), (404, NotFoundError), (409, ConflictError), (429, RateLimitError), (500, DataAccessError)],
)
async def test_error_statuses_are_mapped(status, error):
    def handler(request):
        return httpx.Response(status, json={"message": f"boom {status}"})

    async with _client(handler) as client:
        with pytest.raises(error) as exc:
            await client.get("/rest/v1/issues")
    assert exc.value.status_code == status
    assert exc.value.message == f"boom {status}"


@pytest.mark.asyncio
async def test_empty_success_body_is_none():
    async with _client(lambda request: httpx.Response(204)) as client:
        assert await client.patch("/rest/v1/issues", json={"title": "x"}) is None


@pytest.mark.asyncio
async def test_idempotent_reads_are_retried_after_network_errors():
    attempts = []

    def handler(request):
        attempts.append(request.method)
        if len(attempts) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json=[{"id": "WEB-1"}])

    async with _client(handler, max_retries=1) as client:
        assert await client.get("/rest/v1/issues") == [{"id": "WEB-1"}]
    assert attempts == ["GET", "GET"]


@pytest.mark.asyncio
async def test_inserts_are_not_retried():
    attempts = []

    def handler(request):
        attempts.append(request.method)
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler, max_retries=3) as client:
        with pytest.raises(DataAccessError, match="Network error"):
            await client.post("/rest/v1/issues", json={"id": "WEB-1"})
    assert attempts == ["POST"]
