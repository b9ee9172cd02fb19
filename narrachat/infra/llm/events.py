# narrachat/infra/llm/events.py
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from narrachat.constants import DATA_FIELD, DONE_SENTINEL


class EventKind(str, Enum):
    BLANK = "blank"                 # event boundary
    COMMENT = "comment"             # ":" keep-alive
    DATA = "data"
    UNRECOGNIZED = "unrecognized"   # event:, id:, retry:, anything newer


@dataclass(frozen=True)
class EventLine:
    kind: EventKind
    payload: Optional[str] = None

    @property
    def is_sentinel(self) -> bool:
        return self.kind is EventKind.DATA and (self.payload or "").strip() == DONE_SENTINEL


_BLANK = EventLine(EventKind.BLANK)
_COMMENT = EventLine(EventKind.COMMENT)
_UNRECOGNIZED = EventLine(EventKind.UNRECOGNIZED)


def classify(line: str) -> EventLine:
    if not line.strip():
        return _BLANK
    if line.startswith(":"):
        return _COMMENT
    if line.startswith(DATA_FIELD):
        payload = line[len(DATA_FIELD):]
        if payload.startswith(" "):
            payload = payload[1:]
        return EventLine(EventKind.DATA, payload)
    return _UNRECOGNIZED
