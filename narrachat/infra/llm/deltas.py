# narrachat/infra/llm/deltas.py
from __future__ import annotations
import json
from dataclasses import dataclass
from typing import Any, Optional, Tuple
from narrachat.core.errors import FrameDecodeError


def _opt_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


@dataclass(frozen=True)
class ChoiceDelta:
    content: Optional[str] = None
    role: Optional[str] = None

    @classmethod
    def from_json(cls, obj: Any) -> "ChoiceDelta":
        if not isinstance(obj, dict):
            return cls()
        return cls(content=_opt_str(obj.get("content")), role=_opt_str(obj.get("role")))


@dataclass(frozen=True)
class Choice:
    delta: ChoiceDelta = ChoiceDelta()
    finish_reason: Optional[str] = None

    @classmethod
    def from_json(cls, obj: Any) -> "Choice":
        if not isinstance(obj, dict):
            return cls()
        return cls(
            delta=ChoiceDelta.from_json(obj.get("delta")),
            finish_reason=_opt_str(obj.get("finish_reason")),
        )


@dataclass(frozen=True)
class CompletionChunk:
    """One streamed completion frame: {"choices": [{"delta": {"content": "..."}}]}.

    Every field is optional; anything else in the payload is ignored.
    """
    choices: Tuple[Choice, ...] = ()

    @classmethod
    def from_json(cls, obj: Any) -> "CompletionChunk":
        if not isinstance(obj, dict):
            return cls()
        raw = obj.get("choices")
        if not isinstance(raw, list):
            return cls()
        return cls(choices=tuple(Choice.from_json(c) for c in raw))

    @property
    def content(self) -> Optional[str]:
        if not self.choices:
            return None
        return self.choices[0].delta.content or None

    @property
    def finish_reason(self) -> Optional[str]:
        return self.choices[0].finish_reason if self.choices else None


def parse_chunk(payload: str) -> CompletionChunk:
    try:
        obj = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise FrameDecodeError(payload, exc) from exc
    return CompletionChunk.from_json(obj)


def extract_delta(payload: str) -> Optional[str]:
    """Text increment carried by `payload`, or None for control/role-only frames.

    Raises FrameDecodeError when the payload is not complete JSON.
    """
    return parse_chunk(payload).content
