from ChatApp.client.state import (
    ChatState,
    DisplayMessage,
    Session,
    StateContainer,
    mark_pending,
    remove_messages,
    replace_message_content,
    settle_messages,
    track_messages,
)


def _msg(i, role="user", content="x"):
    return DisplayMessage(id=str(i), role=role, content=content, session_id="s1")


def _active(**kwargs):
    return ChatState(active_session=Session(session_id="s1", user_id="u"), **kwargs)


def test_transformations_do_not_mutate_the_input_snapshot():
    before = _active(messages=(_msg(1),))

    after = track_messages(_msg(2))(before)

    assert [m.id for m in before.messages] == ["1"]
    assert [m.id for m in after.messages] == ["1", "2"]


def test_replace_message_content_keeps_identifier():
    state = ChatState(messages=(_msg(1), _msg(2, "assistant", "...")))

    state = replace_message_content("2", "Hi")(state)

    assert state.messages[1].id == "2"
    assert state.messages[1].content == "Hi"
    assert state.messages[1].datatext == "Hi"


def test_remove_messages_ignores_unknown_ids():
    state = ChatState(messages=(_msg(1), _msg(2)))

    assert remove_messages(["2", "nope"])(state).messages == (_msg(1),)


def test_pending_flags_follow_the_active_session():
    state = _active()

    state = mark_pending("s1", "text", True)(state)
    assert state.is_loading and not state.is_generating_image

    state = mark_pending("s2", "image", True)(state)
    assert not state.is_generating_image
    assert state.is_busy("s2")

    state = mark_pending("s1", "text", False)(state)
    assert not state.is_loading


def test_container_applies_updates_to_latest_snapshot_and_notifies():
    container = StateContainer(_active())
    seen = []
    unsubscribe = container.subscribe(lambda s: seen.append(len(s.messages)))

    container.update(track_messages(_msg(1)))
    container.update(track_messages(_msg(2)))
    unsubscribe()
    container.update(track_messages(_msg(3)))

    assert [m.id for m in container.state.messages] == ["1", "2", "3"]
    assert seen == [1, 2]


def test_failing_listener_does_not_block_update():
    container = StateContainer(_active())

    def _boom(_state):
        raise RuntimeError("listener broke")

    container.subscribe(_boom)
    container.update(track_messages(_msg(1)))

    assert len(container.state.messages) == 1


def test_tracked_messages_show_only_under_their_session_and_settle_keeps_them_displayed():
    state = _active()
    other = DisplayMessage(id="9", role="user", content="x", session_id="s2")

    state = track_messages(_msg(1), other)(state)
    assert [m.id for m in state.messages] == ["1"]
    assert [m.id for m in state.in_flight] == ["1", "9"]

    state = replace_message_content("1", "edited")(state)
    assert state.messages[0].content == state.in_flight[0].content == "edited"

    state = settle_messages(["1", "9"])(state)
    assert state.in_flight == ()
    assert [m.id for m in state.messages] == ["1"]
    assert state.settled_turns == 1
