"""Tests for the per-response session (open assistant turn bookkeeping)."""

from __future__ import annotations

import pytest

from narrachat.core.errors import CancellationError, SessionSealedError, TransportError
from narrachat.core.session import StreamSession, StreamState
from narrachat.core.transcript import ConversationTurn, Transcript


def _transcript_with_user() -> Transcript:
    t = Transcript()
    t.append_turn(ConversationTurn(id="u1", role="user", content="hi"))
    return t


class TestAppendDelta:
    def test_first_delta_opens_assistant_turn(self):
        t = _transcript_with_user()
        s = StreamSession(t)
        turns = s.append_delta("Hel")
        assert len(turns) == 2
        assert turns[-1].role == "assistant"
        assert turns[-1].content == "Hel"
        assert s.open_turn_id == turns[-1].id

    def test_following_deltas_extend_same_turn(self):
        t = _transcript_with_user()
        s = StreamSession(t)
        s.append_delta("Hel")
        first_id = s.open_turn_id
        s.append_delta("lo")
        turns = t.turns()
        assert len(turns) == 2
        assert turns[-1].id == first_id
        assert turns[-1].content == "Hello"
        assert s.text == "Hello"

    def test_empty_fragment_is_noop(self):
        t = _transcript_with_user()
        s = StreamSession(t)
        s.append_delta("")
        assert len(t) == 1
        assert s.open_turn_id is None

    def test_new_session_opens_new_turn(self):
        t = _transcript_with_user()
        first = StreamSession(t)
        first.append_delta("one")
        first.finish()
        second = StreamSession(t)
        second.append_delta("two")
        assert [x.content for x in t.turns()] == ["hi", "one", "two"]

    def test_each_delta_is_observable(self):
        t = _transcript_with_user()
        seen = []
        t.transcriptChanged.connect(lambda turns: seen.append(turns[-1].content))
        s = StreamSession(t)
        s.append_delta("a")
        s.append_delta("b")
        assert seen == ["a", "ab"]


class TestFinish:
    def test_completed_seals(self):
        t = _transcript_with_user()
        s = StreamSession(t)
        s.append_delta("x")
        outcome = s.finish()
        assert outcome.ok
        assert outcome.state is StreamState.COMPLETED
        assert s.open_turn_id is None
        with pytest.raises(SessionSealedError):
            s.append_delta("late")
        assert t.turns()[-1].content == "x"

    def test_failed_keeps_partial_and_appends_error_turn(self):
        t = _transcript_with_user()
        s = StreamSession(t)
        s.append_delta("partial")
        outcome = s.finish(TransportError("boom"))
        assert outcome.state is StreamState.FAILED
        assert outcome.message == "connection problem"
        assert outcome.reason == "transport"
        contents = [x.content for x in t.turns()]
        assert contents[1] == "partial"
        assert t.turns()[-1].kind == "error"
        assert "connection problem" in t.turns()[-1].content

    def test_cancelled_error_turn(self):
        t = _transcript_with_user()
        s = StreamSession(t)
        outcome = s.finish(CancellationError())
        assert outcome.reason == "cancelled"
        assert t.turns()[-1].content == "Response cancelled."

    def test_finish_twice_rejected(self):
        s = StreamSession(_transcript_with_user())
        s.finish()
        with pytest.raises(SessionSealedError):
            s.finish()
