import dataclasses
import logging

from ChatApp.client.expander import expand
from ChatApp.client.state import ChatState, DisplayMessage, Session, StateContainer, as_utc, set_auth_error, set_error
from ChatApp.client.store import ChatStore
from ChatApp.errors import AuthError

logger = logging.getLogger(__name__)


class SessionSwitcher:
    def __init__(self, store: ChatStore, container: StateContainer):
        self._store = store
        self._container = container

    # Makes `session` active and replaces the displayed messages with its stored history
    # plus the optimistic messages of any turn still in flight for it
    async def select_session(self, session: Session) -> bool:
        session_id = session.session_id

        def _activate(state: ChatState) -> ChatState:
            return dataclasses.replace(state, active_session=session, messages=state.in_flight_for(session_id))

        self._container.update(_activate)

        while True:
            settled = self._container.state.settled_turns
            try:
                exchanges = await self._store.list_exchanges(session_id)
            except AuthError as e:
                logger.error("chat.session.load.auth: session=%s error=%s", session_id, e)
                self._container.update(set_auth_error(str(e)))
                return False
            except Exception:
                logger.exception("chat.session.load.error: session=%s", session_id)
                self._container.update(set_error("Failed to load messages"))
                return False

            state = self._container.state
            if state.active_session_id != session_id:
                logger.debug("chat.session.load.superseded: session=%s", session_id)
                return True
            # A turn settled while reading; its exchange may be missing from what came back
            if state.settled_turns == settled:
                break
            logger.debug("chat.session.load.reread: session=%s", session_id)

        stored = expand(exchanges)
        stored_keys = {(e.query, as_utc(e.created_at)) for e in exchanges}

        # A later switch wins; never show one session's history under another
        def _apply(state: ChatState) -> ChatState:
            if state.active_session_id != session_id:
                return state
            pending = tuple(m for m in state.in_flight_for(session_id) if not _is_stored(m, stored_keys))
            return dataclasses.replace(state, messages=tuple(stored) + pending)

        self._container.update(_apply)
        logger.info("chat.session.selected: session=%s messages=%d", session_id, len(self._container.state.messages))
        return True


def _is_stored(message: DisplayMessage, stored_keys: set) -> bool:
    return (message.query, as_utc(message.created_at)) in stored_keys
