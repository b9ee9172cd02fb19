# narrachat/core/session.py
from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from narrachat.infra.llm.frames import FrameReader
from .errors import CancellationError, ChatError, SessionSealedError
from .transcript import ConversationTurn, Transcript, new_turn_id

log = logging.getLogger(__name__)


class StreamState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class StreamOutcome:
    state: StreamState                       # COMPLETED | FAILED
    turns: Tuple[ConversationTurn, ...]
    error: Optional[ChatError] = None

    @property
    def ok(self) -> bool:
        return self.state is StreamState.COMPLETED

    @property
    def reason(self) -> Optional[str]:
        return self.error.reason if self.error else None

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None


def error_turn(error: ChatError) -> ConversationTurn:
    if isinstance(error, CancellationError):
        text = "Response cancelled."
    else:
        text = f"Sorry, I encountered an error: {error.message}. Please try again."
    return ConversationTurn(id=new_turn_id("err"), role="assistant", content=text, kind="error")


def fail_transcript(transcript: Transcript, error: ChatError) -> StreamOutcome:
    """Terminal failure with no session (e.g. rejected before streaming began)."""
    transcript.append_turn(error_turn(error))
    return StreamOutcome(StreamState.FAILED, transcript.turns(), error)


class StreamSession:
    """
    State for one outstanding streamed response.

    Owns the frame reader's buffer, the accumulated text of the reply and the
    id of the single assistant turn that may still grow. Once finished the
    session is sealed: the open turn can no longer be targeted.
    """

    def __init__(self, transcript: Transcript, *, encoding: str = "utf-8"):
        self.transcript = transcript
        self.reader = FrameReader(encoding)
        self.state = StreamState.STREAMING
        self.open_turn_id: Optional[str] = None
        self._parts: List[str] = []

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def sealed(self) -> bool:
        return self.state is not StreamState.STREAMING

    def append_delta(self, fragment: str) -> Tuple[ConversationTurn, ...]:
        if self.sealed:
            raise SessionSealedError(f"session already {self.state.value}")
        if not fragment:
            return self.transcript.turns()
        self._parts.append(fragment)

        if self.open_turn_id is None:
            turn = ConversationTurn(id=new_turn_id("ai"), role="assistant", content=self.text)
            self.transcript.append_turn(turn)
            self.open_turn_id = turn.id
        else:
            current = self.transcript.get(self.open_turn_id)
            if current is None:
                # transcript was reset under us; nothing left to extend
                raise SessionSealedError("open turn no longer in transcript")
            self.transcript.replace_turn(current.with_content(self.text))
        return self.transcript.turns()

    def finish(self, error: Optional[ChatError] = None) -> StreamOutcome:
        if self.sealed:
            raise SessionSealedError(f"session already {self.state.value}")
        self.open_turn_id = None
        if error is None:
            self.state = StreamState.COMPLETED
            log.debug("Stream completed (%d chars)", len(self.text))
            return StreamOutcome(self.state, self.transcript.turns())
        self.state = StreamState.FAILED
        log.info("Stream failed: %s (%d chars kept)", error.reason, len(self.text))
        self.transcript.append_turn(error_turn(error))
        return StreamOutcome(self.state, self.transcript.turns(), error)
