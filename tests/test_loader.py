from datetime import datetime, timezone

import pytest

from ChatApp.client.loader import SessionLoader
from ChatApp.client.state import Session
from ChatApp.errors import StoreError, StoreUnavailable


async def test_new_user_gets_exactly_one_active_session(sql_store):
    loaded = await SessionLoader(sql_store).load_sessions("auth0|new-user")

    assert len(loaded.sessions) == 1
    assert loaded.active == loaded.sessions[0]
    assert loaded.active.user_id == "auth0|new-user"
    assert len(await sql_store.list_sessions("auth0|new-user")) == 1


async def test_existing_sessions_are_not_duplicated(sql_store):
    await sql_store.create_session("u1")

    loaded = await SessionLoader(sql_store).load_sessions("u1")

    assert len(loaded.sessions) == 1


async def test_sessions_are_newest_first_and_deduplicated(fake_store):
    older = Session("a", "u1", datetime(2026, 1, 1, tzinfo=timezone.utc))
    newer = Session("b", "u1", datetime(2026, 2, 1, tzinfo=timezone.utc))
    fake_store.sessions = [older, newer, Session("a", "u1", datetime(2026, 1, 1, tzinfo=timezone.utc))]

    loaded = await SessionLoader(fake_store).load_sessions("u1")

    assert [s.session_id for s in loaded.sessions] == ["b", "a"]
    assert loaded.active.session_id == "b"


async def test_store_failure_raises_store_unavailable(fake_store):
    fake_store.fail.add("list_sessions")

    with pytest.raises(StoreUnavailable):
        await SessionLoader(fake_store).load_sessions("u1")


async def test_session_that_never_appears_stops_after_one_create(fake_store):
    async def _invisible(user_id):
        return []

    fake_store.list_sessions = _invisible

    with pytest.raises(StoreError):
        await SessionLoader(fake_store).load_sessions("u1")
    assert len(fake_store.sessions) == 1
