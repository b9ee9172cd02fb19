# narrachat/core/conversation.py
from __future__ import annotations
import logging
from typing import Iterable, List, Optional, Tuple

from narrachat.infra.llm.base import ChatMessage, ModelClient
from narrachat.infra.llm.driver import StopFn, StreamDriver, watch_response
from .attachments import Attachment
from .errors import ChatError, ConversationBusyError
from .session import StreamOutcome, StreamSession, StreamState, fail_transcript
from .transcript import ConversationTurn, Transcript, new_turn_id

log = logging.getLogger(__name__)


class Conversation:
    """
    One chat thread: the transcript plus the rule that only one response
    streams at a time.

    `send()` runs a whole exchange on the calling thread. The Qt controller
    uses the finer-grained `prepare_send()` / `open_session()` / `finish()`
    steps to run the network part on a worker thread instead.
    """

    def __init__(self, client: Optional[ModelClient] = None, *, greeting: Optional[str] = None,
                 suggestions: Iterable[str] = (), transcript: Optional[Transcript] = None,
                 driver: Optional[StreamDriver] = None):
        self.client = client
        self.greeting = greeting
        self.suggestions: Tuple[str, ...] = tuple(suggestions)
        self.transcript = transcript if transcript is not None else Transcript()
        self.driver = driver or StreamDriver()
        self.state = StreamState.IDLE
        if len(self.transcript) == 0:
            self._seed()

    @property
    def busy(self) -> bool:
        return self.state is StreamState.STREAMING

    def _seed(self) -> None:
        if self.greeting:
            self.transcript.append_turn(
                ConversationTurn(id=new_turn_id("greet"), role="assistant", content=self.greeting, kind="greeting")
            )

    def reset(self) -> None:
        """Start over ('New chat'). Not allowed mid-stream."""
        if self.busy:
            raise ConversationBusyError()
        self.transcript.clear()
        self._seed()
        self.state = StreamState.IDLE

    def outgoing_messages(self) -> List[ChatMessage]:
        return [ChatMessage(role=t.role, content=t.content) for t in self.transcript if t.kind == "message"]

    def add_user_turn(self, text: str, attachment: Optional[Attachment] = None) -> Optional[ConversationTurn]:
        text = (text or "").strip()
        if not text and attachment is None:
            return None
        content, display = text, None
        if attachment is not None:
            prefix = f"{text}\n\n" if text else ""
            content = f"{prefix}[Attached Portfolio]\n{attachment.text}"
            display = f"{prefix}📎 {attachment.name}"
        turn = ConversationTurn(id=new_turn_id("user"), role="user", content=content, display=display)
        self.transcript.append_turn(turn)
        return turn

    # ---- step-wise API (used by the Qt controller) ----
    def prepare_send(self, text: str, attachment: Optional[Attachment] = None) -> Optional[List[ChatMessage]]:
        """Append the user turn and enter Streaming; returns the request messages, or None if nothing to send."""
        if self.busy:
            raise ConversationBusyError()
        if self.add_user_turn(text, attachment) is None:
            return None
        self.state = StreamState.STREAMING
        return self.outgoing_messages()

    def open_session(self) -> StreamSession:
        return StreamSession(self.transcript)

    def finish(self, session: Optional[StreamSession], error: Optional[ChatError] = None) -> StreamOutcome:
        if session is not None:
            outcome = session.finish(error)
        elif error is not None:
            outcome = fail_transcript(self.transcript, error)
        else:
            outcome = StreamOutcome(StreamState.COMPLETED, self.transcript.turns())
        self.state = outcome.state
        return outcome

    # ---- blocking API ----
    def send(self, text: str, *, attachment: Optional[Attachment] = None,
             stop_fn: Optional[StopFn] = None) -> Optional[StreamOutcome]:
        if self.client is None:
            raise RuntimeError("conversation has no model client")
        messages = self.prepare_send(text, attachment)
        if messages is None:
            return None
        try:
            response = self.client.open_stream(messages)
        except ChatError as exc:
            return self.finish(None, exc)
        except Exception:
            self.state = StreamState.FAILED
            raise

        watch_response(stop_fn, response)
        session = self.open_session()
        try:
            with response:
                outcome = self.driver.run(response.chunks(), session, stop_fn)
        except Exception:
            # never leave the conversation stuck in Streaming
            self.state = StreamState.FAILED
            raise
        self.state = outcome.state
        return outcome
