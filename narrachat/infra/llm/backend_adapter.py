# narrachat/infra/llm/backend_adapter.py
from typing import Callable, Iterator, List, Optional
from .base import ChatMessage, ModelClient
from .driver import StreamDriver, watch_response
from .frames import FrameReader


def make_stream_func(
    client: ModelClient,
    *,
    driver: Optional[StreamDriver] = None,
) -> Callable[..., Iterator[str]]:
    """
    Returns a StreamFunc(messages, *, stop_fn) -> Iterator[str]
    that the ThreadBroker can schedule.

    The request is issued lazily, on the worker thread, at the first pull.
    A CancelToken stop_fn gets the response registered so a stop breaks a
    read that is waiting on the server.
    Transport / status / cancellation errors propagate as ChatError.
    """
    drv = driver or StreamDriver()

    def stream(messages: List[ChatMessage], *, stop_fn) -> Iterator[str]:
        with client.open_stream(messages) as response:
            watch_response(stop_fn, response)
            yield from drv.iter_deltas(response.chunks(), FrameReader(), stop_fn)
    return stream
