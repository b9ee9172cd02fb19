# narrachat/ui/chat_controller.py
from __future__ import annotations
import logging
from typing import Optional
from PyQt6.QtCore import QObject, Qt, pyqtSignal

from narrachat.core.attachments import Attachment
from narrachat.core.conversation import Conversation
from narrachat.core.errors import CancellationError, ChatError, ConversationBusyError
from narrachat.core.session import StreamSession
from narrachat.core.transcript import Transcript
from narrachat.infra.llm.backend_adapter import make_stream_func
from narrachat.infra.llm.thread_broker import STATUS_CANCELLED, ThreadBroker

log = logging.getLogger(__name__)


class ChatController(QObject):
    """
    Glue between a chat view and the streaming backend.

    Responsibilities:
    - Own the Conversation (transcript + one-stream-at-a-time rule).
    - Start / stop streamed responses via ThreadBroker.
    - Apply deltas to the transcript on the GUI thread, ignoring stale tickets.
    """

    streamStarted  = pyqtSignal(int)      # ticket
    streamFinished = pyqtSignal(object)   # StreamOutcome
    sendRejected   = pyqtSignal(str)      # reason text
    busyChanged    = pyqtSignal(bool)

    def __init__(self, conversation: Conversation, *, parent: Optional[QObject] = None):
        super().__init__(parent)
        if conversation.client is None:
            raise ValueError("conversation has no model client")
        self.conversation = conversation
        self.broker = ThreadBroker(self)
        self.stream_func = make_stream_func(conversation.client, driver=conversation.driver)

        self._active_ticket: int = -1
        self._session: Optional[StreamSession] = None
        self._error: Optional[ChatError] = None

        # Broker → controller
        self.broker.job_token.connect(self._on_job_token, Qt.ConnectionType.QueuedConnection)
        self.broker.job_error.connect(self._on_job_error, Qt.ConnectionType.QueuedConnection)
        self.broker.job_finished.connect(self._on_job_finished, Qt.ConnectionType.QueuedConnection)

    @property
    def transcript(self) -> Transcript:
        return self.conversation.transcript

    def is_busy(self) -> bool:
        return self.conversation.busy

    # ---------- API ----------
    def send(self, text: str, attachment: Optional[Attachment] = None) -> bool:
        """Queue a user turn. Returns False (and emits sendRejected) when busy or empty."""
        try:
            messages = self.conversation.prepare_send(text, attachment)
        except ConversationBusyError as exc:
            self.sendRejected.emit(exc.message)
            return False
        if messages is None:
            return False

        self._session = None
        self._error = None
        self._active_ticket = self.broker.submit(self.stream_func, messages)
        self.busyChanged.emit(True)
        self.streamStarted.emit(self._active_ticket)
        return True

    def stop(self):
        """Cancel the active response, breaking a read that is waiting on the server."""
        self.broker.stop_active()

    def reset(self):
        """'New chat'. Stops anything in flight first."""
        if self.is_busy():
            self.sendRejected.emit("stop the current response before starting a new chat")
            return
        self.conversation.reset()

    # ---------- Slots ----------
    def _on_job_token(self, ticket: int, delta: str):
        if ticket != self._active_ticket:
            return
        if self._session is None:
            self._session = self.conversation.open_session()
        self._session.append_delta(delta)

    def _on_job_error(self, ticket: int, error: object):
        if ticket != self._active_ticket:
            return
        self._error = error if isinstance(error, ChatError) else ChatError(str(error))

    def _on_job_finished(self, ticket: int, status: str):
        if ticket != self._active_ticket:
            return
        error = self._error
        if status == STATUS_CANCELLED:
            error = CancellationError()
        outcome = self.conversation.finish(self._session, error)
        log.debug("Ticket %d finished: %s", ticket, outcome.state.value)

        self._session = None
        self._error = None
        self._active_ticket = -1
        self.busyChanged.emit(False)
        self.streamFinished.emit(outcome)
