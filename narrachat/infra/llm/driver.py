# narrachat/infra/llm/driver.py
from __future__ import annotations
import logging
import threading
from typing import Callable, Iterable, Iterator, List, Optional, Union

from narrachat.core.errors import CancellationError, ChatError, FrameDecodeError, TransportError
from narrachat.core.session import StreamOutcome, StreamSession
from .deltas import extract_delta
from .events import EventKind, classify
from .frames import FrameReader

log = logging.getLogger(__name__)

StopFn = Callable[[], bool]

_DONE = object()
_MALFORMED = object()


class CancelToken:
    """
    A stop_fn that can also break a read blocked on the network.

    Whoever opens a response registers its closer with `on_cancel()`;
    `cancel()` (from any thread, or a signal handler) raises the flag and
    runs the closers, so the pending read fails instead of waiting for the
    server. The driver maps that failure to a cancellation.
    """

    def __init__(self):
        self._event = threading.Event()
        self._closers: List[Callable[[], None]] = []

    def __call__(self) -> bool:
        return self._event.is_set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def on_cancel(self, closer: Callable[[], None]) -> None:
        self._closers.append(closer)
        if self._event.is_set():
            self._release()

    def cancel(self) -> None:
        self._event.set()
        self._release()

    def _release(self) -> None:
        while True:
            try:
                closer = self._closers.pop()
            except IndexError:
                return
            try:
                closer()
            except Exception:
                log.warning("Closing the response on cancel failed", exc_info=True)


def watch_response(stop_fn: Optional[StopFn], response) -> None:
    """Let `stop_fn`, when it is a CancelToken, abort `response`."""
    if isinstance(stop_fn, CancelToken):
        stop_fn.on_cancel(getattr(response, "abort", None) or response.close)


def _never() -> bool:
    return False


def _decode(line: str) -> Union[None, str, object]:
    """None (nothing to apply), delta text, _DONE or _MALFORMED."""
    event = classify(line)
    if event.kind is not EventKind.DATA:
        return None
    if event.is_sentinel:
        return _DONE
    try:
        return extract_delta(event.payload or "")
    except FrameDecodeError:
        return _MALFORMED


class StreamDriver:
    """
    Pulls chunks, splits them into lines and turns data lines into deltas.

    A data line whose JSON does not parse is held and retried once, glued to
    the next raw line; this repairs a frame that was split by a stray newline
    inside its JSON. Frames split over more than two lines are not repaired.
    """

    def iter_deltas(self, chunks: Iterable[bytes], reader: FrameReader,
                    stop_fn: Optional[StopFn] = None) -> Iterator[str]:
        stop_fn = stop_fn or _never
        held: Optional[str] = None
        it = iter(chunks)

        def step(line: str):
            nonlocal held
            if held is not None:
                joined, held = held + line, None
                result = _decode(joined)
                if result is not _MALFORMED:
                    return result
                log.debug("Dropping unrepairable frame (%d chars)", len(joined) - len(line))
            result = _decode(line)
            if result is _MALFORMED:
                held = line
                return None
            return result

        while True:
            if stop_fn():
                raise CancellationError()
            try:
                chunk = next(it)
            except StopIteration:
                if stop_fn():
                    raise CancellationError()
                break
            except ChatError:
                if stop_fn():
                    raise CancellationError()
                raise
            except Exception as exc:
                if stop_fn():
                    raise CancellationError() from exc
                raise TransportError(f"{type(exc).__name__}: {exc}") from exc
            if stop_fn():
                raise CancellationError()

            for line in reader.feed(chunk):
                result = step(line)
                if result is _DONE:
                    log.debug("Stream finished on [DONE]")
                    return
                if result:
                    yield result

        tail = reader.flush()
        if tail is not None:
            result = step(tail)
            if result is _DONE:
                log.debug("Stream finished on [DONE]")
                return
            if result:
                yield result
        if held is not None:
            log.debug("Dropping unterminated frame at end of stream (%d chars)", len(held))
        log.debug("Stream finished at end of body")

    def run(self, chunks: Iterable[bytes], session: StreamSession,
            stop_fn: Optional[StopFn] = None) -> StreamOutcome:
        try:
            for delta in self.iter_deltas(chunks, session.reader, stop_fn):
                session.append_delta(delta)
        except ChatError as exc:
            return session.finish(exc)
        return session.finish()
