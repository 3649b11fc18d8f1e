import logging
from typing import Optional

from ChatApp.client.coordinator import SubmissionCoordinator, Turn
from ChatApp.client.gateway import GatewayClient
from ChatApp.client.loader import SessionLoader
from ChatApp.client.state import ChatState, Session, StateContainer, set_auth_error, set_error, set_input, set_sessions
from ChatApp.client.store import ChatStore
from ChatApp.client.switcher import SessionSwitcher
from ChatApp.errors import AuthError, ValidationError

logger = logging.getLogger(__name__)


# Wires the loader, switcher and coordinator around one state container for one signed-in user
class ChatClient:
    def __init__(self, store: ChatStore, gateway: GatewayClient, container: Optional[StateContainer] = None):
        self.store = store
        self.gateway = gateway
        self.container = container or StateContainer()
        self.loader = SessionLoader(store)
        self.switcher = SessionSwitcher(store, self.container)
        self.coordinator = SubmissionCoordinator(store, gateway, self.container)
        self.user_id: Optional[str] = None

    @property
    def state(self) -> ChatState:
        return self.container.state

    async def start(self, user_id: str) -> bool:
        if not user_id:
            raise ValidationError("user_id is required")
        self.user_id = user_id
        return await self.refresh_sessions()

    # Reloads the session list and activates the most recent session
    async def refresh_sessions(self) -> bool:
        try:
            loaded = await self.loader.load_sessions(self.user_id)
        except AuthError as e:
            logger.error("chat.sessions.auth: user=%s error=%s", self.user_id, e)
            self.container.update(set_auth_error(str(e)))
            return False
        except Exception:
            logger.exception("chat.sessions.load.error: user=%s", self.user_id)
            self.container.update(set_error("Failed to load chat sessions"))
            return False

        self.container.update(set_sessions(loaded.sessions, self.state.active_session))
        return await self.switcher.select_session(loaded.active)

    async def new_session(self) -> Optional[Session]:
        try:
            await self.store.create_session(self.user_id)
        except AuthError as e:
            self.container.update(set_auth_error(str(e)))
            return None
        except Exception:
            logger.exception("chat.session.create.error: user=%s", self.user_id)
            self.container.update(set_error("Failed to create new chat"))
            return None

        await self.refresh_sessions()
        return self.state.active_session

    async def select_session(self, session: Session) -> bool:
        return await self.switcher.select_session(session)

    def set_input(self, text: str) -> None:
        self.container.update(set_input(text))

    async def submit(self, kind: str = "text") -> Optional[Turn]:
        if kind == "image":
            return await self.coordinator.submit_image()
        if kind == "text":
            return await self.coordinator.submit_text()
        raise ValueError(f"Unknown submission kind: {kind}")

    async def submit_text(self) -> Optional[Turn]:
        return await self.coordinator.submit_text()

    async def submit_image(self) -> Optional[Turn]:
        return await self.coordinator.submit_image()

    async def check_connections(self) -> dict[str, bool]:
        store_ok = await self.store.ping()
        gateway_ok = await self.gateway.ping()
        logger.info("chat.connections: store=%s gateway=%s", store_ok, gateway_ok)
        return {"store": store_ok, "gateway": gateway_ok}
