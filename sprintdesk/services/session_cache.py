"""Client-side local storage for the session snapshot.

The cached user is advisory: it lets the store show who was signed in while the
remote session check is in flight, and is always superseded by that check.
"""

from typing import Any, Optional

from ..config import settings
from ..core.exceptions import MalformedRowError
from ..core.models import Session, User
from ..localdb import LocalDatabase, LocalStorageEntry
from ..utils.logger import get_logger

logger = get_logger(__name__)

CURRENT_USER_KEY = "sprintdesk.current_user"
AUTH_SESSION_KEY = "sprintdesk.auth_session"


class SessionCache:
    def __init__(self, db: Optional[LocalDatabase] = None):
        self.db = db or LocalDatabase(settings.local_db_url)

    async def _get(self, key: str) -> Any:
        await self.db.init()
        async with self.db.session_factory() as session:
            entry = await session.get(LocalStorageEntry, key)
            return entry.value if entry is not None else None

    async def _set(self, key: str, value: Any) -> None:
        await self.db.init()
        async with self.db.session_factory() as session:
            async with session.begin():
                entry = await session.get(LocalStorageEntry, key)
                if entry is None:
                    session.add(LocalStorageEntry(key=key, value=value))
                else:
                    entry.value = value

    async def _delete(self, key: str) -> None:
        await self.db.init()
        async with self.db.session_factory() as session:
            async with session.begin():
                entry = await session.get(LocalStorageEntry, key)
                if entry is not None:
                    await session.delete(entry)

    async def save_user(self, user: User) -> None:
        await self._set(CURRENT_USER_KEY, user.to_row())

    async def load_user(self) -> Optional[User]:
        row = await self._get(CURRENT_USER_KEY)
        if not row:
            return None
        try:
            return User.from_row(row)
        except MalformedRowError:
            logger.warning("Discarding unreadable cached user snapshot")
            await self._delete(CURRENT_USER_KEY)
            return None

    async def save_session(self, session: Session) -> None:
        await self._set(AUTH_SESSION_KEY, session.model_dump(mode="json"))

    async def load_session(self) -> Optional[Session]:
        data = await self._get(AUTH_SESSION_KEY)
        if not data:
            return None
        try:
            return Session.model_validate(data)
        except ValueError:
            logger.warning("Discarding unreadable cached auth session")
            await self._delete(AUTH_SESSION_KEY)
            return None

    async def clear(self) -> None:
        await self._delete(CURRENT_USER_KEY)
        await self._delete(AUTH_SESSION_KEY)

    async def close(self) -> None:
        await self.db.dispose()
