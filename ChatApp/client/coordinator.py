import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from ChatApp.client.expander import expand
from ChatApp.client.gateway import GatewayClient
from ChatApp.client.state import (
    PLACEHOLDER_CONTENT,
    ChatState,
    DisplayMessage,
    StateContainer,
    mark_pending,
    remove_messages,
    replace_message_content,
    set_auth_error,
    set_error,
    set_input,
    settle_messages,
    track_messages,
    utcnow,
)
from ChatApp.client.store import ChatStore
from ChatApp.errors import AuthError, ValidationError

logger = logging.getLogger(__name__)

TEXT_ERROR = "Failed to send message"
IMAGE_ERROR = "Failed to generate image"


class TurnState(str, enum.Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass
class Turn:
    kind: str
    session_id: str
    prompt: str
    turn_id: str = ""
    state: TurnState = TurnState.IDLE
    user_message_id: Optional[str] = None
    assistant_message_id: Optional[str] = None
    response: Optional[str] = None
    error: Optional[str] = None
    # shared by the optimistic messages and the stored exchange, so a reload can match them up
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if not self.turn_id:
            self.turn_id = str(uuid.uuid4())

    @property
    def message_ids(self) -> list[str]:
        return [i for i in (self.user_message_id, self.assistant_message_id) if i]


# Drives one turn from the input buffer to storage: IDLE -> SUBMITTING -> COMMITTED | ROLLED_BACK.
# Optimistic messages only ever land in the list of the session the turn started under.
class SubmissionCoordinator:
    def __init__(self, store: ChatStore, gateway: GatewayClient, container: StateContainer):
        self._store = store
        self._gateway = gateway
        self._container = container

    async def submit_text(self) -> Optional[Turn]:
        return await self._submit("text", self._run_text_turn)

    async def submit_image(self) -> Optional[Turn]:
        return await self._submit("image", self._run_image_turn)

    async def _submit(self, kind: str, run: Callable) -> Optional[Turn]:
        state = self._container.state
        prompt = state.input
        try:
            session_id = self._validate(state, prompt)
        except ValidationError as e:
            logger.debug("chat.submit.rejected: %s", e)
            return None

        # Checked and marked before the first await, so it cannot race another submit
        if state.is_busy(session_id):
            logger.info("chat.submit.skipped: session=%s already has a turn in flight", session_id)
            return None

        turn = Turn(kind=kind, session_id=session_id, prompt=prompt)
        self._container.update(lambda s: set_error(None)(mark_pending(session_id, kind, True)(s)))
        try:
            turn.state = TurnState.SUBMITTING
            await run(turn)
        finally:
            ids = turn.message_ids
            self._container.update(lambda s: mark_pending(session_id, kind, False)(settle_messages(ids)(s)))
        logger.info("chat.turn.settled: kind=%s session=%s state=%s", kind, session_id, turn.state.value)
        return turn

    @staticmethod
    def _validate(state: ChatState, prompt: str) -> str:
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt is empty")
        if state.active_session is None:
            raise ValidationError("No active session")
        return state.active_session.session_id

    async def _run_text_turn(self, turn: Turn) -> None:
        try:
            history = expand(await self._store.list_exchanges(turn.session_id))
        except Exception as e:
            self._roll_back(turn, e, TEXT_ERROR)
            return

        user_message = self._user_message(turn)
        placeholder = self._assistant_message(turn, f"loading-{uuid.uuid4()}", PLACEHOLDER_CONTENT)
        turn.user_message_id = user_message.id
        turn.assistant_message_id = placeholder.id
        self._container.update(track_messages(user_message, placeholder))
        self._clear_input(turn.prompt)

        try:
            text = await self._gateway.generate_text(turn.prompt, history)
        except Exception as e:
            self._roll_back(turn, e, TEXT_ERROR)
            return

        self._commit(turn, text)
        self._container.update(replace_message_content(placeholder.id, text))
        await self._persist(turn, TEXT_ERROR)

    async def _run_image_turn(self, turn: Turn) -> None:
        user_message = self._user_message(turn)
        turn.user_message_id = user_message.id
        self._clear_input(turn.prompt)
        self._container.update(track_messages(user_message))

        try:
            history = expand(await self._store.list_exchanges(turn.session_id))
            text = await self._gateway.generate_image(turn.prompt, history)
        except Exception as e:
            self._roll_back(turn, e, IMAGE_ERROR)
            return

        assistant_message = self._assistant_message(turn, str(uuid.uuid4()), text)
        turn.assistant_message_id = assistant_message.id
        self._commit(turn, text)
        self._container.update(track_messages(assistant_message))
        await self._persist(turn, IMAGE_ERROR)

    @staticmethod
    def _user_message(turn: Turn) -> DisplayMessage:
        return DisplayMessage(
            id=str(uuid.uuid4()),
            role="user",
            content=turn.prompt,
            session_id=turn.session_id,
            created_at=turn.created_at,
            query=turn.prompt,
            datatext=turn.prompt,
        )

    @staticmethod
    def _assistant_message(turn: Turn, message_id: str, content: str) -> DisplayMessage:
        return DisplayMessage(
            id=message_id,
            role="assistant",
            content=content,
            session_id=turn.session_id,
            created_at=turn.created_at,
            query=turn.prompt,
            datatext=content,
        )

    @staticmethod
    def _commit(turn: Turn, text: str) -> None:
        turn.response = text
        turn.state = TurnState.COMMITTED

    async def _persist(self, turn: Turn, user_error: str) -> None:
        try:
            await self._store.insert_exchange(turn.session_id, turn.prompt, turn.response, created_at=turn.created_at)
        except Exception as e:
            # Generated text stays on screen even though it was not saved
            logger.exception("chat.turn.persist.error: session=%s", turn.session_id)
            turn.error = str(e)
            self._report(e, user_error)

    def _roll_back(self, turn: Turn, error: Exception, user_error: str) -> None:
        logger.error("chat.turn.rollback: kind=%s session=%s error=%s", turn.kind, turn.session_id, error)
        turn.state = TurnState.ROLLED_BACK
        turn.error = str(error)

        optimistic = turn.message_ids
        prompt = turn.prompt

        def _apply(state: ChatState) -> ChatState:
            state = remove_messages(optimistic)(state)
            if state.active_session_id == turn.session_id and not state.input:
                state = set_input(prompt)(state)
            return state

        self._container.update(_apply)
        self._report(error, user_error)

    def _report(self, error: Exception, user_error: str) -> None:
        if isinstance(error, AuthError):
            self._container.update(set_auth_error(str(error)))
        else:
            self._container.update(set_error(user_error))

    def _clear_input(self, prompt: str) -> None:
        self._container.update(lambda s: set_input("")(s) if s.input == prompt else s)
