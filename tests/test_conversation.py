"""End-to-end tests for a conversation driven through a fake request issuer."""

from __future__ import annotations

import json
import threading
import time

import pytest

from narrachat.core.attachments import Attachment
from narrachat.core.conversation import Conversation
from narrachat.core.errors import ConversationBusyError, HttpStatusError, TransportError
from narrachat.core.session import StreamState
from narrachat.infra.llm.base import ModelClient
from narrachat.infra.llm.driver import CancelToken


def _data(content: str) -> bytes:
    return ("data: " + json.dumps({"choices": [{"delta": {"content": content}}]}) + "\n\n").encode()


class FakeResponse:
    def __init__(self, chunks):
        self._chunks = chunks
        self.closed = False

    def chunks(self):
        yield from self._chunks

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeClient(ModelClient):
    def __init__(self, *responses):
        self._responses = list(responses)
        self.requests = []

    def open_stream(self, messages):
        self.requests.append([(m.role, m.content) for m in messages])
        r = self._responses.pop(0)
        if isinstance(r, Exception):
            raise r
        return r


class TestSend:
    def test_streams_reply_into_one_assistant_turn(self):
        resp = FakeResponse([_data("Hel"), _data("lo"), b"data: [DONE]\n"])
        convo = Conversation(FakeClient(resp))
        outcome = convo.send("  hi  ")
        assert outcome.ok
        assert [(t.role, t.content) for t in convo.transcript] == [("user", "hi"), ("assistant", "Hello")]
        assert convo.state is StreamState.COMPLETED
        assert resp.closed

    def test_http_status_error_adds_no_assistant_reply(self):
        convo = Conversation(FakeClient(HttpStatusError(500, "rate limited")))
        outcome = convo.send("hi")
        assert outcome.state is StreamState.FAILED
        assert outcome.message == "rate limited"
        turns = convo.transcript.turns()
        assert [t.kind for t in turns] == ["message", "error"]
        assert not any(t.role == "assistant" and t.kind == "message" for t in turns)
        assert "rate limited" in turns[-1].content
        assert not convo.busy

    def test_transport_error_before_stream(self):
        convo = Conversation(FakeClient(TransportError("dns")))
        outcome = convo.send("hi")
        assert outcome.reason == "transport"
        assert outcome.message == "connection problem"

    def test_cancellation_keeps_partial(self):
        flag = {"stop": False}

        def chunks():
            yield _data("a")
            yield _data("b")
            flag["stop"] = True
            yield _data("c")

        convo = Conversation(FakeClient(FakeResponse(chunks())))
        outcome = convo.send("hi", stop_fn=lambda: flag["stop"])
        assert outcome.reason == "cancelled"
        assert convo.transcript.turns()[1].content == "ab"
        assert convo.state is StreamState.FAILED

    def test_cancel_aborts_a_response_waiting_on_the_server(self):
        stop = CancelToken()

        class StalledResponse(FakeResponse):
            def __init__(self):
                super().__init__([])
                self.aborted = threading.Event()

            def abort(self):
                self.aborted.set()

            def chunks(self):
                yield _data("one ")
                yield _data("two")
                threading.Timer(0.05, stop.cancel).start()
                if self.aborted.wait(5):
                    raise OSError("connection aborted")

        resp = StalledResponse()
        convo = Conversation(FakeClient(resp))
        started = time.monotonic()
        outcome = convo.send("hi", stop_fn=stop)
        assert time.monotonic() - started < 2
        assert resp.aborted.is_set()
        assert outcome.reason == "cancelled"
        assert [t.content for t in convo.transcript][1:] == ["one two", "Response cancelled."]
        assert resp.closed
        assert not convo.busy

    def test_second_send_opens_new_turn_and_sends_history(self):
        client = FakeClient(
            FakeResponse([_data("one"), b"data: [DONE]\n"]),
            FakeResponse([_data("two"), b"data: [DONE]\n"]),
        )
        convo = Conversation(client, greeting="Welcome")
        convo.send("first")
        convo.send("second")
        assert [t.content for t in convo.transcript] == ["Welcome", "first", "one", "second", "two"]
        # greeting is never sent to the model
        assert client.requests[1] == [
            ("user", "first"), ("assistant", "one"), ("user", "second"),
        ]

    def test_error_turns_are_not_sent_back(self):
        client = FakeClient(HttpStatusError(503), FakeResponse([b"data: [DONE]\n"]))
        convo = Conversation(client)
        convo.send("a")
        convo.send("b")
        assert client.requests[1] == [("user", "a"), ("user", "b")]

    def test_empty_input_is_ignored(self):
        client = FakeClient()
        convo = Conversation(client)
        assert convo.send("   ") is None
        assert len(convo.transcript) == 0
        assert client.requests == []

    def test_busy_conversation_rejects_send(self):
        convo = Conversation(FakeClient())
        convo.prepare_send("first")
        with pytest.raises(ConversationBusyError):
            convo.send("second")
        with pytest.raises(ConversationBusyError):
            convo.reset()

    def test_completed_with_no_content(self):
        convo = Conversation(FakeClient(FakeResponse([b": ping\n\n", b"data: [DONE]\n"])))
        outcome = convo.send("hi")
        assert outcome.ok
        assert len(convo.transcript) == 1


class TestAttachments:
    def test_attachment_merged_into_content_not_display(self):
        client = FakeClient(FakeResponse([b"data: [DONE]\n"]))
        convo = Conversation(client)
        att = Attachment(name="book.csv", text='Portfolio file "book.csv":\nNVDA | 10')
        convo.send("Check this", attachment=att)
        user = convo.transcript.turns()[0]
        assert user.content == 'Check this\n\n[Attached Portfolio]\nPortfolio file "book.csv":\nNVDA | 10'
        assert user.shown == "Check this\n\n📎 book.csv"
        assert client.requests[0][0][1] == user.content

    def test_attachment_without_text(self):
        convo = Conversation(FakeClient(FakeResponse([])))
        convo.send("", attachment=Attachment(name="p.csv", text="x"))
        user = convo.transcript.turns()[0]
        assert user.content == "[Attached Portfolio]\nx"
        assert user.shown == "📎 p.csv"


class TestReset:
    def test_reset_restores_greeting(self):
        convo = Conversation(FakeClient(FakeResponse([_data("r")])), greeting="Hi there")
        convo.send("q")
        convo.reset()
        turns = convo.transcript.turns()
        assert len(turns) == 1
        assert turns[0].kind == "greeting"
        assert convo.state is StreamState.IDLE
