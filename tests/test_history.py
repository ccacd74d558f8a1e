import pytest
from sqlalchemy import text

from config import db, APPEND_MAX_ATTEMPTS
from errors import AppendConflictError, CorruptHistoryError, StoreConnectionError
from models import ChatHistory, Role


def _fill(history, session_id, count, start=0):
    for i in range(start, start + count):
        role = Role.HUMAN if i % 2 == 0 else Role.ASSISTANT
        history.append_message(session_id, role, f"m{i}")


def test_unknown_session_reads_empty(history):
    assert history.get_messages("nobody") == []
    assert history.get_recent_window("nobody", 3) == []


def test_first_append_creates_session(history):
    message = history.add_user_message("U1", "hello")

    assert message.role is Role.HUMAN
    stored = history.get_messages("U1")
    assert [(m.role, m.content) for m in stored] == [(Role.HUMAN, "hello")]
    assert db.session.execute(db.select(ChatHistory)).scalars().one().session_id == "U1"


def test_log_is_capped_oldest_first(history):
    _fill(history, "U1", 27)

    contents = [m.content for m in history.get_messages("U1")]
    assert contents == [f"m{i}" for i in range(7, 27)]


def test_fewer_appends_than_cap_keeps_everything(history):
    _fill(history, "U1", 5)
    assert [m.content for m in history.get_messages("U1")] == ["m0", "m1", "m2", "m3", "m4"]


def test_recent_window_is_suffix_of_log(history):
    _fill(history, "U1", 12)
    full = history.get_messages("U1")

    for k in (1, 3, 12, 20):
        assert history.get_recent_window("U1", k) == full[-k:]
    assert history.get_recent_window("U1", 0) == []


def test_full_log_shifts_by_one_turn(history):
    _fill(history, "U1", 20)
    before = [m.content for m in history.get_recent_window("U1", 3)]

    history.add_user_message("U1", "m20")

    stored = history.get_messages("U1")
    assert len(stored) == 20
    assert stored[0].content == "m1"
    after = [m.content for m in history.get_recent_window("U1", 3)]
    assert before == ["m17", "m18", "m19"]
    assert after == ["m18", "m19", "m20"]


def test_sessions_are_independent(history):
    history.add_user_message("U1", "from one")
    history.add_user_message("U2", "from two")

    assert [m.content for m in history.get_messages("U1")] == ["from one"]
    assert [m.content for m in history.get_messages("U2")] == ["from two"]


def test_roles_round_trip(history):
    history.add_user_message("U1", "question")
    history.add_assistant_message("U1", "answer")

    assert [m.role for m in history.get_messages("U1")] == [Role.HUMAN, Role.ASSISTANT]


def test_unknown_role_cannot_be_appended(history):
    with pytest.raises(ValueError):
        history.append_message("U1", "system", "not allowed")
    assert history.get_messages("U1") == []


def test_stored_unknown_role_raises_on_read(history, clock):
    history.adapter.connect()
    db.session.add(ChatHistory(
        session_id="legacy",
        history=[
            {"role": "human", "content": "hi", "timestamp": clock().isoformat()},
            {"role": "system", "content": "??", "timestamp": clock().isoformat()},
        ],
        last_activity_timestamp=clock(),
    ))
    db.session.commit()

    with pytest.raises(CorruptHistoryError):
        history.get_messages("legacy")


def test_clear_then_append_again(history):
    _fill(history, "U1", 4)

    assert history.clear("U1") is True
    assert history.get_messages("U1") == []
    assert db.session.execute(db.select(ChatHistory).filter_by(session_id="U1")).scalar_one() is not None

    history.add_user_message("U1", "again")
    assert [m.content for m in history.get_messages("U1")] == ["again"]


def test_clear_unknown_session(history):
    assert history.clear("nobody") is False


def test_append_refreshes_activity_and_version(history, clock):
    history.add_user_message("U1", "one")
    clock.advance(60)
    history.add_assistant_message("U1", "two")

    row = db.session.execute(db.select(ChatHistory).filter_by(session_id="U1")).scalar_one()
    assert row.last_activity_timestamp == clock()
    assert row.version == 2


def test_idle_session_expires(history, clock):
    history.add_user_message("U1", "hello")

    clock.advance(299)
    assert len(history.get_messages("U1")) == 1

    clock.advance(2)
    assert history.get_messages("U1") == []
    assert history.get_recent_window("U1", 3) == []


def test_append_after_expiry_starts_fresh_log(history, clock):
    _fill(history, "U1", 6)
    clock.advance(301)

    history.add_user_message("U1", "new conversation")

    assert [m.content for m in history.get_messages("U1")] == ["new conversation"]


def test_purge_expired_removes_idle_sessions(history, clock):
    history.add_user_message("old", "hello")
    clock.advance(400)
    history.add_user_message("fresh", "hello")

    assert history.purge_expired() == 1
    sessions = [s["session_id"] for s in history.list_sessions()]
    assert sessions == ["fresh"]


def test_list_sessions_summary(history, clock):
    history.add_user_message("U1", "question")
    clock.advance(10)
    history.add_user_message("U2", "first")
    history.add_assistant_message("U2", "second")

    sessions = history.list_sessions()
    assert [s["session_id"] for s in sessions] == ["U2", "U1"]
    assert sessions[0]["message_count"] == 2
    assert sessions[0]["last_message"] == "second"
    assert sessions[0]["expired"] is False


def test_unreachable_store(make_app, tmp_path):
    app = make_app(DATABASE_URL=f"sqlite:///{tmp_path / 'missing' / 'dir' / 'chat.db'}")
    history = app.extensions["chatbot"]["history"]

    with app.app_context():
        # reads are best-effort, writes are not
        assert history.get_messages("U1") == []
        with pytest.raises(StoreConnectionError):
            history.add_user_message("U1", "hello")


def _bump_version_after_load(history, monkeypatch, times):
    """Make the next ``times`` loads look like another writer got in first."""
    original = history._load
    bumps = []

    def racing_load(session_id):
        row = original(session_id)
        if row is not None and len(bumps) < times:
            db.session.execute(
                text("UPDATE chat_histories SET version = version + 1 WHERE session_id = :sid"),
                {"sid": session_id},
            )
            bumps.append(session_id)
        return row

    monkeypatch.setattr(history, "_load", racing_load)
    return bumps


def test_append_retries_after_concurrent_write(history, monkeypatch):
    history.add_user_message("U1", "a")
    bumps = _bump_version_after_load(history, monkeypatch, times=1)

    history.add_assistant_message("U1", "b")

    assert len(bumps) == 1
    assert [m.content for m in history.get_messages("U1")] == ["a", "b"]


def test_append_gives_up_when_every_attempt_conflicts(history, monkeypatch):
    history.add_user_message("U1", "a")
    bumps = _bump_version_after_load(history, monkeypatch, times=APPEND_MAX_ATTEMPTS)

    with pytest.raises(AppendConflictError):
        history.add_assistant_message("U1", "b")

    assert len(bumps) == APPEND_MAX_ATTEMPTS
    assert [m.content for m in history.get_messages("U1")] == ["a"]


def test_add_turn_writes_question_and_answer_together(history, clock):
    history.add_user_message("U1", "earlier")

    stored = history.add_turn("U1", "question?", "answer.")

    assert [(m.role, m.content) for m in stored] == [(Role.HUMAN, "question?"), (Role.ASSISTANT, "answer.")]
    assert [m.content for m in history.get_messages("U1")] == ["earlier", "question?", "answer."]
    row = db.session.execute(db.select(ChatHistory).filter_by(session_id="U1")).scalar_one()
    assert row.version == 2


def test_add_turn_respects_cap(history):
    _fill(history, "U1", 19)

    history.add_turn("U1", "q", "a")

    contents = [m.content for m in history.get_messages("U1")]
    assert len(contents) == 20
    assert contents[0] == "m1"
    assert contents[-2:] == ["q", "a"]
