"""Auth API (Supabase GoTrue endpoints).

Successful sign-in, sign-up with an immediate session and token refresh update
the client's :class:`AuthManager`, which notifies session listeners.
"""

from typing import Any, Dict, Optional, Tuple

from ..core.auth import TOKEN_REFRESHED
from ..core.client import BackendClient
from ..core.exceptions import AuthenticationError, DataAccessError
from ..core.models import Session
from ..utils.logger import get_logger

logger = get_logger(__name__)

AUTH_PREFIX = "/auth/v1"


async def sign_in(client: BackendClient, email: str, password: str) -> Session:
    """Password sign-in.

    Raises:
        AuthenticationError: Wrong credentials (GoTrue answers 400 for them).
    """
    try:
        payload = await client.post(
            f"{AUTH_PREFIX}/token",
            json={"email": email, "password": password},
            params={"grant_type": "password"},
            use_session=False,
        )
    except AuthenticationError:
        raise
    except DataAccessError as e:
        if e.status_code == 400:
            raise AuthenticationError(e.message, status_code=e.status_code, details=e.details)
        raise
    session = Session.from_auth_response(payload)
    client.auth_manager.set_session(session)
    return session


async def sign_up(
    client: BackendClient,
    email: str,
    password: str,
    data: Optional[Dict[str, Any]] = None,
) -> Tuple[Dict[str, Any], Optional[Session]]:
    """Register a user.

    Returns the created auth user and, when the project auto-confirms
    e-mail addresses, the new session.
    """
    payload = await client.post(
        f"{AUTH_PREFIX}/signup",
        json={"email": email, "password": password, "data": data or {}},
        use_session=False,
    )
    payload = payload or {}
    if payload.get("access_token"):
        session = Session.from_auth_response(payload)
        client.auth_manager.set_session(session)
        return session.user, session
    user = payload.get("user") or payload
    return user, None


async def sign_out(client: BackendClient) -> None:
    try:
        if client.configured and client.auth_manager.is_authenticated():
            await client.post(f"{AUTH_PREFIX}/logout")
    finally:
        client.auth_manager.clear_session()


async def reset_password(client: BackendClient, email: str, redirect_to: Optional[str] = None) -> None:
    params = {"redirect_to": redirect_to} if redirect_to else None
    await client.post(f"{AUTH_PREFIX}/recover", json={"email": email}, params=params, use_session=False)


async def get_user(client: BackendClient) -> Dict[str, Any]:
    return await client.get(f"{AUTH_PREFIX}/user")


async def refresh_session(client: BackendClient, refresh_token: str) -> Session:
    payload = await client.post(
        f"{AUTH_PREFIX}/token",
        json={"refresh_token": refresh_token},
        params={"grant_type": "refresh_token"},
        use_session=False,
    )
    session = Session.from_auth_response(payload)
    client.auth_manager.set_session(session, TOKEN_REFRESHED)
    return session


async def current_session(client: BackendClient, stored: Optional[Session]) -> Optional[Session]:
    """Validate a stored session against the auth service.

    Expired sessions are refreshed when a refresh token is available. A session
    the service rejects is dropped and ``None`` is returned.
    """
    if not client.configured or stored is None:
        return None
    try:
        if stored.is_expired():
            if not stored.refresh_token:
                return None
            return await refresh_session(client, stored.refresh_token)
        client.auth_manager.session = stored
        user = await get_user(client)
    except DataAccessError as e:
        if not isinstance(e, AuthenticationError) and e.status_code != 400:
            raise
        logger.info(f"Stored session rejected: {e.message}")
        client.auth_manager.session = None
        return None
    session = stored.model_copy(update={"user": user or stored.user})
    client.auth_manager.set_session(session)
    return session
