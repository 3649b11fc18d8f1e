from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Literal, Optional

logger = logging.getLogger(__name__)

Role = Literal["user", "assistant"]

PLACEHOLDER_CONTENT = "..."


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Store timestamps may come back naive (sqlite) or as ISO strings (HTTP); always compare in UTC
def as_utc(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class Session:
    session_id: str
    user_id: str
    created_at: Optional[datetime] = None
    title: Optional[str] = None


@dataclass(frozen=True)
class Exchange:
    id: int
    session_id: str
    query: str
    datatext: Optional[str]
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class DisplayMessage:
    id: str
    role: Role
    content: str
    session_id: str
    created_at: Optional[datetime] = None
    query: Optional[str] = None
    datatext: Optional[str] = None

    # Shape expected by the generation endpoints
    def to_history_item(self) -> dict:
        return {"role": self.role, "content": self.content, "query": self.query, "datatext": self.datatext}


# Everything the UI renders; only ever replaced through StateContainer.update(fn)
@dataclass(frozen=True)
class ChatState:
    messages: tuple[DisplayMessage, ...] = ()
    # optimistic messages of unsettled turns, for every session; re-shown when their session is reloaded
    in_flight: tuple[DisplayMessage, ...] = ()
    # bumped whenever a turn settles, so a reload that raced the settle can tell
    settled_turns: int = 0
    sessions: tuple[Session, ...] = ()
    active_session: Optional[Session] = None
    input: str = ""
    error: Optional[str] = None
    auth_error: Optional[str] = None
    # session ids with a turn in flight, split by path so the UI can show the right indicator
    pending_text: frozenset[str] = field(default_factory=frozenset)
    pending_image: frozenset[str] = field(default_factory=frozenset)

    @property
    def active_session_id(self) -> Optional[str]:
        return self.active_session.session_id if self.active_session else None

    @property
    def is_loading(self) -> bool:
        return self.active_session_id in self.pending_text

    @property
    def is_generating_image(self) -> bool:
        return self.active_session_id in self.pending_image

    def is_busy(self, session_id: str) -> bool:
        return session_id in self.pending_text or session_id in self.pending_image

    def in_flight_for(self, session_id: str) -> tuple[DisplayMessage, ...]:
        return tuple(m for m in self.in_flight if m.session_id == session_id)


# ── Pure transformations ───────────────────────────────────────────────────

# Records optimistic messages of a turn; they are displayed only if their session is the active one
def track_messages(*messages: DisplayMessage) -> Callable[[ChatState], ChatState]:
    def _apply(state: ChatState) -> ChatState:
        shown = tuple(m for m in messages if m.session_id == state.active_session_id)
        return dataclasses.replace(
            state,
            messages=state.messages + shown,
            in_flight=state.in_flight + tuple(messages),
        )
    return _apply


def replace_message_content(message_id: str, content: str) -> Callable[[ChatState], ChatState]:
    def _replace(items: tuple[DisplayMessage, ...]) -> tuple[DisplayMessage, ...]:
        return tuple(
            dataclasses.replace(m, content=content, datatext=content) if m.id == message_id else m
            for m in items
        )

    def _apply(state: ChatState) -> ChatState:
        return dataclasses.replace(state, messages=_replace(state.messages), in_flight=_replace(state.in_flight))
    return _apply


def remove_messages(message_ids: Iterable[str]) -> Callable[[ChatState], ChatState]:
    ids = frozenset(message_ids)

    def _apply(state: ChatState) -> ChatState:
        return dataclasses.replace(
            state,
            messages=tuple(m for m in state.messages if m.id not in ids),
            in_flight=tuple(m for m in state.in_flight if m.id not in ids),
        )
    return _apply


# Stops tracking a finished turn; whatever is displayed stays until the next reload
def settle_messages(message_ids: Iterable[str]) -> Callable[[ChatState], ChatState]:
    ids = frozenset(message_ids)

    def _apply(state: ChatState) -> ChatState:
        return dataclasses.replace(
            state,
            in_flight=tuple(m for m in state.in_flight if m.id not in ids),
            settled_turns=state.settled_turns + 1,
        )
    return _apply


def set_sessions(sessions: Iterable[Session], active: Optional[Session]) -> Callable[[ChatState], ChatState]:
    def _apply(state: ChatState) -> ChatState:
        return dataclasses.replace(state, sessions=tuple(sessions), active_session=active)
    return _apply


def set_input(text: str) -> Callable[[ChatState], ChatState]:
    def _apply(state: ChatState) -> ChatState:
        return dataclasses.replace(state, input=text)
    return _apply


def set_error(message: Optional[str]) -> Callable[[ChatState], ChatState]:
    def _apply(state: ChatState) -> ChatState:
        return dataclasses.replace(state, error=message)
    return _apply


def set_auth_error(message: Optional[str]) -> Callable[[ChatState], ChatState]:
    def _apply(state: ChatState) -> ChatState:
        return dataclasses.replace(state, auth_error=message)
    return _apply


def mark_pending(session_id: str, kind: str, pending: bool) -> Callable[[ChatState], ChatState]:
    attr = "pending_image" if kind == "image" else "pending_text"

    def _apply(state: ChatState) -> ChatState:
        current: frozenset[str] = getattr(state, attr)
        updated = current | {session_id} if pending else current - {session_id}
        return dataclasses.replace(state, **{attr: updated})
    return _apply


Listener = Callable[[ChatState], None]


class StateContainer:
    def __init__(self, initial: Optional[ChatState] = None):
        self._state = initial or ChatState()
        self._listeners: list[Listener] = []

    @property
    def state(self) -> ChatState:
        return self._state

    # Applies a pure transformation to the latest snapshot and notifies listeners
    def update(self, fn: Callable[[ChatState], ChatState]) -> ChatState:
        self._state = fn(self._state)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("chat.state.listener.error")
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return _unsubscribe
