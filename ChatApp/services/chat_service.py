from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import text
from sqlalchemy.orm import Session

from ChatApp.client.expander import expand
from ChatApp.client.store import exchange_from_row
from ChatApp.crud.chat import create_exchange, create_session, get_exchanges, get_session, list_user_sessions
from ChatApp.models.chat_models import ChatSession
from ChatApp.schemas.chat import DisplayMessageOut, ExchangeOut, SessionOut, SessionsOut

logger = logging.getLogger(__name__)


class ChatService:
    # Initializes the service with a DB session used by CRUD helpers.
    def __init__(self, db: Session):
        self.db = db

    # A session is visible only to the user who owns it
    def _owned_session(self, session_id: str, user_id: str) -> ChatSession:
        row = get_session(self.db, session_id)
        if row is None or row.user_id != user_id:
            raise HTTPException(status_code=404, detail="Session not found.")
        return row

    def list_sessions(self, *, user_id: str) -> SessionsOut:
        rows = list_user_sessions(self.db, user_id)
        return SessionsOut(sessions=[SessionOut.model_validate(r) for r in rows])

    def create_session(self, *, user_id: str, title: Optional[str] = None) -> SessionOut:
        try:
            row = create_session(self.db, user_id, title=title)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("chat.session.create.error: user=%s", user_id)
            raise HTTPException(status_code=500, detail="Failed to create new chat")
        logger.info("chat.session.created: user=%s session=%s", user_id, row.session_id)
        return SessionOut.model_validate(row)

    def list_exchanges(self, *, session_id: str, user_id: str) -> list[ExchangeOut]:
        self._owned_session(session_id, user_id)
        return [ExchangeOut.model_validate(r) for r in get_exchanges(self.db, session_id)]

    def add_exchange(
        self,
        *,
        session_id: str,
        user_id: str,
        query: str,
        datatext: Optional[str],
        created_at: Optional[datetime] = None,
    ) -> ExchangeOut:
        self._owned_session(session_id, user_id)
        try:
            row = create_exchange(self.db, session_id, query, datatext, created_at=created_at)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("chat.exchange.insert.error: session=%s", session_id)
            raise HTTPException(status_code=500, detail="Failed to save exchange")
        return ExchangeOut.model_validate(row)

    def list_messages(self, *, session_id: str, user_id: str) -> list[DisplayMessageOut]:
        self._owned_session(session_id, user_id)
        exchanges = [exchange_from_row(r) for r in get_exchanges(self.db, session_id)]
        return [
            DisplayMessageOut(
                id=m.id,
                role=m.role,
                content=m.content,
                session_id=m.session_id,
                created_at=m.created_at,
            )
            for m in expand(exchanges)
        ]

    def store_ok(self) -> bool:
        try:
            self.db.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("chat.status.store.error")
            return False
