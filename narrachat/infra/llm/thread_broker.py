# narrachat/infra/llm/thread_broker.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, Deque, Iterator, Optional
from collections import deque
from itertools import count
import logging

from PyQt6.QtCore import QObject, QThread, pyqtSignal, Qt

from narrachat.core.errors import CancellationError, ChatError
from .driver import CancelToken

log = logging.getLogger(__name__)

StreamFunc = Callable[..., Iterator[str]]

STATUS_OK        = "ok"
STATUS_CANCELLED = "cancelled"
STATUS_ERROR     = "error"

@dataclass(slots=True)
class Job:
    ticket: int
    func:   StreamFunc
    args:   tuple = field(default_factory=tuple)
    kwargs: dict  = field(default_factory=dict)


# ---------- Worker ----------
class _Worker(QObject):
    token    = pyqtSignal(int, str)     # (ticket, delta)
    finished = pyqtSignal(int, str)     # (ticket, status)
    error    = pyqtSignal(int, object)  # (ticket, ChatError)

    def __init__(self, job: Job):
        super().__init__()
        self._job = job
        self._cancel = CancelToken()

    def stop(self):
        # called from the GUI thread; also aborts the response the job registered
        self._cancel.cancel()

    def run(self):
        ticket = self._job.ticket
        status = STATUS_OK
        deltas: Optional[Iterator[str]] = None
        try:
            kw = dict(self._job.kwargs)
            kw.setdefault("stop_fn", self._cancel)
            deltas = iter(self._job.func(*self._job.args, **kw))
            for delta in deltas:
                if self._cancel.cancelled:
                    status = STATUS_CANCELLED
                    break
                self.token.emit(ticket, str(delta))
        except CancellationError:
            status = STATUS_CANCELLED
        except ChatError as exc:
            status = STATUS_ERROR
            self.error.emit(ticket, exc)
        except Exception as exc:
            log.exception("Stream job %d crashed", ticket)
            status = STATUS_ERROR
            self.error.emit(ticket, ChatError(f"{type(exc).__name__}: {exc}"))
        finally:
            try:
                # a generator left mid-stream still holds its response open
                if deltas is not None and hasattr(deltas, "close"):
                    deltas.close()
            finally:
                self.finished.emit(ticket, status)


# ---------- Broker ----------
class ThreadBroker(QObject):
    """
    Runs stream jobs one at a time on a QThread; later submissions queue.

    A job is a callable returning an iterator of text deltas. It receives a
    `stop_fn` keyword (a CancelToken) and finishes with status
    ok / cancelled / error.
    """
    job_token    = pyqtSignal(int, str)     # (ticket, delta)
    job_finished = pyqtSignal(int, str)     # (ticket, status)
    job_error    = pyqtSignal(int, object)  # (ticket, ChatError)

    def __init__(self, parent: QObject | None = None):
        super().__init__(parent)
        self._tickets = count(1)
        self._queue: Deque[Job] = deque()
        self._thread: Optional[QThread] = None
        self._worker: Optional[_Worker] = None

    def submit(self, func: StreamFunc, *args, **kwargs) -> int:
        ticket = next(self._tickets)
        self._queue.append(Job(ticket, func, args, kwargs))
        self._start_next()
        return ticket

    def stop_active(self):
        if self._worker:
            self._worker.stop()

    def _start_next(self):
        if self._thread or self._worker or not self._queue:
            return
        job = self._queue.popleft()
        log.debug("Starting stream job %d (%d queued)", job.ticket, len(self._queue))

        self._thread = QThread()
        self._worker = _Worker(job)
        self._worker.moveToThread(self._thread)

        self._worker.token.connect(self.job_token, Qt.ConnectionType.QueuedConnection)
        self._worker.finished.connect(self._on_worker_finished, Qt.ConnectionType.QueuedConnection)
        self._worker.error.connect(self.job_error, Qt.ConnectionType.QueuedConnection)

        self._thread.started.connect(self._worker.run)
        self._thread.start()

    def _cleanup(self):
        if self._thread:
            self._thread.quit()
            self._thread.wait()
            self._thread.deleteLater()
            self._thread = None
        if self._worker:
            self._worker.deleteLater()
            self._worker = None

    def _on_worker_finished(self, ticket: int, status: str):
        self._cleanup()
        self.job_finished.emit(ticket, status)
        self._start_next()
