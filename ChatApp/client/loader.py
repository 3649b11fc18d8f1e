import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from ChatApp.client.state import Session, as_utc
from ChatApp.client.store import ChatStore
from ChatApp.errors import StoreUnavailable

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class LoadedSessions:
    sessions: list[Session]
    active: Session


# Keeps the first row per session_id and orders newest-first
def _newest_first(rows: Iterable[Session]) -> list[Session]:
    unique: dict[str, Session] = {}
    for row in rows:
        unique.setdefault(row.session_id, row)
    return sorted(unique.values(), key=lambda s: as_utc(s.created_at) or _EPOCH, reverse=True)


class SessionLoader:
    def __init__(self, store: ChatStore):
        self._store = store

    async def load_sessions(self, user_id: str, *, _created: bool = False) -> LoadedSessions:
        """
        Load the user's sessions newest-first and pick the most recent as active.

        A user without sessions gets exactly one new session, then the load runs again.
        Store failures propagate as StoreUnavailable.
        """
        sessions = _newest_first(await self._store.list_sessions(user_id))
        if sessions:
            return LoadedSessions(sessions=sessions, active=sessions[0])

        if _created:
            raise StoreUnavailable(f"No sessions visible for user {user_id} after creating one")

        created = await self._store.create_session(user_id)
        logger.info("chat.session.created: user=%s session=%s", user_id, created.session_id)
        return await self.load_sessions(user_id, _created=True)
