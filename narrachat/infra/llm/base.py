# narrachat/infra/llm/base.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Iterator, List, Protocol


@dataclass
class ChatMessage:
    role: str   # "user" | "assistant"
    content: str


class ChunkSource(Protocol):
    """An open streamed response: raw body bytes as they arrive."""
    def chunks(self) -> Iterator[bytes]: ...
    def close(self) -> None: ...
    def __enter__(self) -> "ChunkSource": ...
    def __exit__(self, *exc) -> None: ...


class ModelClient:
    """Abstract request issuer."""
    def open_stream(self, messages: List[ChatMessage]) -> ChunkSource:
        raise NotImplementedError
