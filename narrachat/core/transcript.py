# narrachat/core/transcript.py
from __future__ import annotations
import uuid
from dataclasses import dataclass, replace
from typing import Any, Iterator, List, Optional, Tuple
from PyQt6.QtCore import QAbstractListModel, QModelIndex, Qt, pyqtSignal


def new_turn_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class ConversationTurn:
    id: str
    role: str                       # "user" | "assistant"
    content: str                    # what the model sees
    display: Optional[str] = None   # what a UI shows, when it differs from content
    kind: str = "message"           # "message" | "greeting" | "error"

    @property
    def shown(self) -> str:
        return self.content if self.display is None else self.display

    def with_content(self, content: str) -> "ConversationTurn":
        return replace(self, content=content)


class Transcript(QAbstractListModel):
    """
    Ordered conversation turns, insertion order = chronological order.

    Observers get Qt model notifications (rowsInserted / dataChanged, so a view
    updates the last bubble in place instead of adding one) and a
    `transcriptChanged` snapshot after every mutation.
    """
    ID_ROLE      = Qt.ItemDataRole.UserRole + 1
    ROLE_ROLE    = Qt.ItemDataRole.UserRole + 2
    CONTENT_ROLE = Qt.ItemDataRole.UserRole + 3
    KIND_ROLE    = Qt.ItemDataRole.UserRole + 4

    transcriptChanged = pyqtSignal(object)   # emits tuple[ConversationTurn, ...]

    def __init__(self, turns: Optional[List[ConversationTurn]] = None, parent=None):
        super().__init__(parent)
        self._items: List[ConversationTurn] = list(turns or [])

    # Qt model plumbing
    def rowCount(self, parent: QModelIndex = QModelIndex()) -> int:
        return 0 if parent.isValid() else len(self._items)

    def data(self, index: QModelIndex, role: int = Qt.ItemDataRole.DisplayRole) -> Any:
        if not index.isValid(): return None
        t = self._items[index.row()]
        if role == self.ID_ROLE: return t.id
        if role == self.ROLE_ROLE: return t.role
        if role in (self.CONTENT_ROLE, Qt.ItemDataRole.DisplayRole): return t.shown
        if role == self.KIND_ROLE: return t.kind
        return None

    def roleNames(self):
        return {
            self.ID_ROLE: b"turnId",
            self.ROLE_ROLE: b"role",
            self.CONTENT_ROLE: b"text",
            self.KIND_ROLE: b"kind",
        }

    # mutation
    def append_turn(self, turn: ConversationTurn) -> int:
        if self.find_row(turn.id) is not None:
            raise ValueError(f"duplicate turn id {turn.id!r}")
        row = len(self._items)
        self.beginInsertRows(QModelIndex(), row, row)
        self._items.append(turn)
        self.endInsertRows()
        self._notify()
        return row

    def replace_turn(self, turn: ConversationTurn) -> int:
        """Swap in a new version of an existing turn: same id, same position."""
        row = self.find_row(turn.id)
        if row is None:
            raise KeyError(turn.id)
        self._items[row] = turn
        ix = self.index(row)
        self.dataChanged.emit(ix, ix, [self.CONTENT_ROLE])
        self._notify()
        return row

    def clear(self):
        if not self._items:
            return
        self.beginResetModel()
        self._items.clear()
        self.endResetModel()
        self._notify()

    # queries
    def find_row(self, turn_id: str) -> Optional[int]:
        for i, t in enumerate(self._items):
            if t.id == turn_id:
                return i
        return None

    def get(self, turn_id: str) -> Optional[ConversationTurn]:
        row = self.find_row(turn_id)
        return None if row is None else self._items[row]

    def last_turn(self) -> Optional[ConversationTurn]:
        return self._items[-1] if self._items else None

    def turns(self) -> Tuple[ConversationTurn, ...]:
        return tuple(self._items)

    def to_list(self) -> list[dict]:
        return [{"id": t.id, "role": t.role, "content": t.content, "kind": t.kind} for t in self._items]

    def __iter__(self) -> Iterator[ConversationTurn]:
        return iter(self.turns())

    def __len__(self):
        return len(self._items)

    def _notify(self):
        self.transcriptChanged.emit(self.turns())
