import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func

from ChatApp.database import Base


def _new_session_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# One row per chat session. The table name is kept as `users` for compatibility with existing data.
class ChatSession(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(64), unique=True, index=True, nullable=False, default=_new_session_id)
    user_id = Column(String(64), index=True, nullable=False)
    title = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), default=_utcnow)


# One row per request/response exchange inside a session
class ChatExchange(Base):
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(64), ForeignKey("users.session_id"), index=True, nullable=False)
    query = Column(Text, nullable=False)
    datatext = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), default=_utcnow)
