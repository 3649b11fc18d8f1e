import abc
import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Optional

import httpx
from sqlalchemy import text

from ChatApp.client.state import Exchange, Session, as_utc
from ChatApp.crud import chat as crud
from ChatApp.errors import AuthError, StoreError

logger = logging.getLogger(__name__)


# Async view of the session/exchange tables used by the client flows
class ChatStore(abc.ABC):
    @abc.abstractmethod
    async def list_sessions(self, user_id: str) -> list[Session]:
        ...

    @abc.abstractmethod
    async def create_session(self, user_id: str) -> Session:
        ...

    @abc.abstractmethod
    async def list_exchanges(self, session_id: str) -> list[Exchange]:
        ...

    @abc.abstractmethod
    async def insert_exchange(
        self, session_id: str, query: str, datatext: Optional[str], created_at: Optional[datetime] = None
    ) -> Exchange:
        ...

    @abc.abstractmethod
    async def ping(self) -> bool:
        ...


def session_from_row(obj: Any) -> Session:
    get = obj.get if isinstance(obj, dict) else lambda k: getattr(obj, k, None)
    return Session(
        session_id=get("session_id"),
        user_id=get("user_id"),
        created_at=as_utc(get("created_at")),
        title=get("title"),
    )


def exchange_from_row(obj: Any) -> Exchange:
    get = obj.get if isinstance(obj, dict) else lambda k: getattr(obj, k, None)
    return Exchange(
        id=get("id"),
        session_id=get("session_id"),
        query=get("query"),
        datatext=get("datatext"),
        created_at=as_utc(get("created_at")),
    )


# Talks to the database directly through SQLAlchemy; blocking work runs in a worker thread
class SqlChatStore(ChatStore):
    def __init__(self, session_factory: Optional[Callable] = None):
        if session_factory is None:
            from ChatApp.database import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    async def _run(self, op: str, fn: Callable, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except StoreError:
            raise
        except Exception as e:
            logger.exception("chat.store.error: op=%s", op)
            raise StoreError(f"{op} failed: {e}") from e

    def _read(self, fn: Callable):
        db = self._session_factory()
        try:
            return fn(db)
        finally:
            db.close()

    def _write(self, fn: Callable):
        db = self._session_factory()
        try:
            result = fn(db)
            db.commit()
            return result
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    async def list_sessions(self, user_id: str) -> list[Session]:
        return await self._run(
            "list_sessions",
            self._read,
            lambda db: [session_from_row(r) for r in crud.list_user_sessions(db, user_id)],
        )

    async def create_session(self, user_id: str) -> Session:
        return await self._run(
            "create_session",
            self._write,
            lambda db: session_from_row(crud.create_session(db, user_id)),
        )

    async def list_exchanges(self, session_id: str) -> list[Exchange]:
        return await self._run(
            "list_exchanges",
            self._read,
            lambda db: [exchange_from_row(r) for r in crud.get_exchanges(db, session_id)],
        )

    async def insert_exchange(
        self, session_id: str, query: str, datatext: Optional[str], created_at: Optional[datetime] = None
    ) -> Exchange:
        return await self._run(
            "insert_exchange",
            self._write,
            lambda db: exchange_from_row(crud.create_exchange(db, session_id, query, datatext, created_at=created_at)),
        )

    async def ping(self) -> bool:
        try:
            await self._run("ping", self._read, lambda db: db.execute(text("SELECT 1")).scalar())
            return True
        except StoreError:
            return False


# Talks to the /api/sessions routes of a running server; the owner is the bearer token's subject
class ApiChatStore(ChatStore):
    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("chat.store.http.error: %s %s: %s", method, path, e)
            raise StoreError(f"{method} {path} failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthError(_detail(response) or "Not authorized")
        if response.is_error:
            raise StoreError(f"{method} {path} returned {response.status_code}: {_detail(response)}")
        try:
            return response.json()
        except ValueError as e:
            logger.error("chat.store.http.body: %s %s returned a non-JSON body", method, path)
            raise StoreError(f"{method} {path} returned a non-JSON body") from e

    async def list_sessions(self, user_id: str) -> list[Session]:
        data = await self._request("GET", "/api/sessions")
        return [session_from_row(s) for s in data.get("sessions", [])]

    async def create_session(self, user_id: str) -> Session:
        return session_from_row(await self._request("POST", "/api/sessions"))

    async def list_exchanges(self, session_id: str) -> list[Exchange]:
        data = await self._request("GET", f"/api/sessions/{session_id}/exchanges")
        return [exchange_from_row(e) for e in data]

    async def insert_exchange(
        self, session_id: str, query: str, datatext: Optional[str], created_at: Optional[datetime] = None
    ) -> Exchange:
        body = {"query": query, "datatext": datatext}
        if created_at is not None:
            body["created_at"] = created_at.isoformat()
        return exchange_from_row(await self._request("POST", f"/api/sessions/{session_id}/exchanges", json=body))

    async def ping(self) -> bool:
        try:
            data = await self._request("GET", "/api/status")
        except (StoreError, AuthError):
            return False
        return bool(data.get("store"))


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or "")
    return ""
