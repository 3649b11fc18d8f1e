from datetime import datetime
from typing import Optional

from ChatApp.models.chat_models import ChatExchange, ChatSession


# Create a new chat session owned by user_id
def create_session(session, user_id, title=None):
    row = ChatSession(user_id=user_id, title=title)
    session.add(row)
    session.flush()
    session.refresh(row)
    return row


# Get all chat sessions for a user, most recent first
def list_user_sessions(session, user_id):
    return (
        session.query(ChatSession)
        .filter_by(user_id=user_id)
        .order_by(ChatSession.created_at.desc(), ChatSession.id.desc())
        .all()
    )


# Get a single session by its public identifier
def get_session(session, session_id) -> Optional[ChatSession]:
    return session.query(ChatSession).filter_by(session_id=session_id).first()


# Get the exchange history of a session in replay order
def get_exchanges(session, session_id):
    return (
        session.query(ChatExchange)
        .filter_by(session_id=session_id)
        .order_by(ChatExchange.created_at, ChatExchange.id)
        .all()
    )


# Store one prompt/response exchange
def create_exchange(session, session_id, query, datatext, created_at: Optional[datetime] = None):
    row = ChatExchange(session_id=session_id, query=query, datatext=datatext)
    if created_at is not None:
        row.created_at = created_at
    session.add(row)
    session.flush()
    session.refresh(row)
    return row
