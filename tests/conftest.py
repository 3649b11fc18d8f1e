import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ChatApp.client.state import Exchange, Session, as_utc
from ChatApp.client.store import ChatStore, SqlChatStore
from ChatApp.database import Base
from ChatApp.errors import StoreError
import ChatApp.models  # noqa: F401


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def sql_store(session_factory):
    return SqlChatStore(session_factory)


class FakeStore(ChatStore):
    """In-memory store with per-operation failure injection."""

    def __init__(self):
        self.sessions: list[Session] = []
        self.exchanges: list[Exchange] = []
        self.fail: set[str] = set()
        # session id -> event; a read of that session holds its (already taken) snapshot until set
        self.read_gates: dict[str, asyncio.Event] = {}
        self._ticks = 0
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def tick(self) -> datetime:
        self._ticks += 1
        return self._clock + timedelta(seconds=self._ticks)

    def _check(self, op: str) -> None:
        if op in self.fail:
            raise StoreError(f"{op} failed")

    async def list_sessions(self, user_id):
        self._check("list_sessions")
        rows = [s for s in self.sessions if s.user_id == user_id]
        return sorted(rows, key=lambda s: s.created_at, reverse=True)

    async def create_session(self, user_id):
        self._check("create_session")
        session = Session(session_id=f"session-{len(self.sessions) + 1}", user_id=user_id, created_at=self.tick())
        self.sessions.append(session)
        return session

    async def list_exchanges(self, session_id):
        self._check("list_exchanges")
        rows = [e for e in self.exchanges if e.session_id == session_id]
        gate = self.read_gates.get(session_id)
        if gate is not None:
            await gate.wait()
        return sorted(rows, key=lambda e: e.created_at)

    async def insert_exchange(self, session_id, query, datatext, created_at: Optional[datetime] = None):
        self._check("insert_exchange")
        exchange = Exchange(
            id=len(self.exchanges) + 1,
            session_id=session_id,
            query=query,
            datatext=datatext,
            created_at=as_utc(created_at) if created_at else self.tick(),
        )
        self.exchanges.append(exchange)
        return exchange

    async def ping(self):
        return "ping" not in self.fail


class FakeGateway:
    """Records calls; `gate` holds a call open until set."""

    def __init__(self, text: str = "Hi there", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.gate: Optional[asyncio.Event] = None
        self.calls: list[tuple[str, str, list]] = []

    async def _respond(self, kind, prompt, history):
        self.calls.append((kind, prompt, list(history)))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.text

    async def generate_text(self, prompt, history=()):
        return await self._respond("text", prompt, history)

    async def generate_image(self, prompt, history=()):
        return await self._respond("image", prompt, history)

    async def ping(self):
        return self.error is None


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def fake_gateway():
    return FakeGateway()
