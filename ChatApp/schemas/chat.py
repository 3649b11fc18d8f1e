from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, field_validator


# One prior turn sent along with a generation request
class HistoryItem(BaseModel):
    model_config = ConfigDict(extra="ignore")
    role: Optional[str] = None
    content: Optional[str] = ""
    query: Optional[str] = None
    datatext: Optional[str] = None


# Request body for /api/chat and /api/image
class GenerateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")
    prompt: Optional[str] = None
    history: List[HistoryItem] = []

    @field_validator("history", mode="before")
    @classmethod
    def _null_history_is_empty(cls, value):
        return [] if value is None else value


# Successful generation response
class GenerateResponse(BaseModel):
    text: str


# Error body returned by the generation endpoints
class ErrorResponse(BaseModel):
    error: str


# Chat session row (one per conversation)
class SessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    session_id: str
    user_id: str
    title: Optional[str] = None
    created_at: Optional[datetime] = None


# Response payload for listing chat sessions
class SessionsOut(BaseModel):
    sessions: List[SessionOut]


# Stored prompt/response exchange
class ExchangeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    session_id: str
    query: str
    datatext: Optional[str] = None
    created_at: Optional[datetime] = None


# Request body for persisting an exchange
class ExchangeCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")
    query: str
    datatext: Optional[str] = None
    created_at: Optional[datetime] = None


# Display message derived from stored exchanges
class DisplayMessageOut(BaseModel):
    id: str
    role: str
    content: str
    session_id: str
    created_at: Optional[datetime] = None


# Result of the store / gateway connection check
class StatusOut(BaseModel):
    store: bool
    gateway: bool
