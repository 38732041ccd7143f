import pytest
import pytest_asyncio

from sprintdesk.core.auth import AuthManager
from sprintdesk.core.client import BackendClient
from sprintdesk.core.models import Session, SessionPhase, User, UserRole
from sprintdesk.localdb import LocalDatabase, make_sqlite_url
from sprintdesk.services.genai import TextGenerator
from sprintdesk.services.session_cache import CURRENT_USER_KEY, SessionCache
from sprintdesk.services.store import AppStore
from sprintdesk.services.toasts import ToastCenter

from conftest import make_client


@pytest_asyncio.fixture
async def cache(tmp_path):
    c = SessionCache(LocalDatabase(make_sqlite_url(str(tmp_path / "local.db"))))
    yield c
    await c.close()


def _store(client, cache):
    return AppStore(client, cache=cache, generator=TextGenerator(api_key=""), toasts=ToastCenter(ttl_seconds=0))


@pytest.mark.asyncio
async def test_user_and_session_survive_a_round_trip(cache):
    user = User(id="u-1", name="Ada", email="ada@example.com", role=UserRole.CTO, workspace_ids=["ws-1"])
    session = Session(access_token="t", refresh_token="r", expires_at=123, user={"id": "u-1"})
    await cache.save_user(user)
    await cache.save_session(session)

    assert await cache.load_user() == user
    assert await cache.load_session() == session

    await cache.clear()
    assert await cache.load_user() is None
    assert await cache.load_session() is None


@pytest.mark.asyncio
async def test_unreadable_user_snapshot_is_discarded(cache):
    await cache._set(CURRENT_USER_KEY, {"name": "no id"})
    assert await cache.load_user() is None
    assert await cache._get(CURRENT_USER_KEY) is None


@pytest.mark.asyncio
async def test_start_restores_the_previous_session(backend, founder, cache):
    async with make_client(backend) as first_client:
        first = _store(first_client, cache)
        assert await first.login(founder["email"], founder["password"])
        await first.close()

    async with make_client(backend) as second_client:
        second = _store(second_client, cache)
        await second.start()
        assert second.phase == SessionPhase.READY
        assert second.current_user.id == founder["id"]
        assert second.active_project_id == "p-1"

        await second.logout()
        assert await cache.load_session() is None
        assert await cache.load_user() is None
        await second.close()


@pytest.mark.asyncio
async def test_start_with_a_revoked_session_signs_out(backend, founder, cache):
    await cache.save_user(User(id=founder["id"], name="Ada"))
    await cache.save_session(Session(access_token="revoked", user={"id": founder["id"]}))

    async with make_client(backend) as client:
        store = _store(client, cache)
        await store.start()
        assert store.phase == SessionPhase.UNAUTHENTICATED
        assert store.current_user is None
        assert await cache.load_user() is None
        await store.close()


@pytest.mark.asyncio
async def test_start_without_configuration_is_local_only(cache):
    await cache.save_user(User(id="u-1", name="Ada"))
    async with BackendClient(AuthManager(anon_key=""), base_url="") as client:
        store = _store(client, cache)
        await store.start()
        assert store.phase == SessionPhase.UNAUTHENTICATED
        assert store.current_user is None
        await store.close()
