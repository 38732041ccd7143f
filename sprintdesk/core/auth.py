"""
Authentication state for the Supabase client.
Holds the anon key and the current user session, builds request headers and
notifies listeners when the session changes.
"""

from typing import Callable, Dict, List, Optional

from ..config import settings
from ..utils.logger import get_logger
from .models import Session

logger = get_logger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"

SessionListener = Callable[[str, Optional[Session]], None]


class AuthManager:
    """Keeps the anon key and the signed-in session for one client."""

    def __init__(self, anon_key: Optional[str] = None):
        self.anon_key = anon_key if anon_key is not None else (settings.supabase_anon_key or "")
        self.session: Optional[Session] = None
        self._listeners: List[SessionListener] = []

    def is_authenticated(self) -> bool:
        return self.session is not None

    def get_basic_headers(self) -> Dict[str, str]:
        """Headers for unauthenticated calls (sign-in, sign-up, recovery)."""
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.anon_key}",
            "Content-Type": "application/json",
        }

    def get_auth_headers(self) -> Dict[str, str]:
        """Headers carrying the user's access token when signed in."""
        token = self.session.access_token if self.session else self.anon_key
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def set_session(self, session: Session, event: str = SIGNED_IN) -> None:
        self.session = session
        logger.info(f"Session {event.lower()} for user {session.user_id}")
        self._emit(event, session)

    def clear_session(self) -> None:
        had_session = self.session is not None
        self.session = None
        if had_session:
            logger.info("Session cleared")
            self._emit(SIGNED_OUT, None)

    def on_session_change(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: str, session: Optional[Session]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception as e:
                logger.exception(f"Session listener failed on {event}: {e}")
