"""
Conversation state for a chat session.

Two parallel histories are kept per session:

- ``AIState``: model-facing messages, replayed to the language model on every turn.
- ``UIState``: display items, the render units shown to the user.

Both are append-only. ``AIState.update`` and ``AIState.done`` take the whole new
sequence (the caller builds it from ``get()``), but refuse any sequence that does
not keep the existing entries in place.
"""

import time
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from .errors import HistoryRewriteError

ROLES = ("user", "assistant", "system", "function")


class ModelMessage(NamedTuple):
    """A single entry of the model-facing history."""

    role: str
    content: str
    name: Optional[str] = None
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"role": self.role, "content": self.content}
        if self.name is not None:
            data["name"] = self.name
        if self.id is not None:
            data["id"] = self.id
        return data


class DisplayItem(NamedTuple):
    """A render unit shown to the user, keyed by a millisecond timestamp."""

    id: int
    display: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "display": self.display}


class AIState:
    """Model-facing history with wholesale update and terminal ``done``."""

    def __init__(self, messages: Optional[Sequence[ModelMessage]] = None):
        self._messages: List[ModelMessage] = list(messages or [])
        self._done = True

    def get(self) -> List[ModelMessage]:
        """Return a copy of the current history."""
        return list(self._messages)

    @property
    def is_done(self) -> bool:
        """True when the last mutation was ``done`` (no turn in progress)."""
        return self._done

    def update(self, messages: Sequence[ModelMessage]) -> None:
        """Replace the history with ``messages`` and mark a turn as in progress."""
        self._replace(messages)
        self._done = False

    def done(self, messages: Sequence[ModelMessage]) -> None:
        """Replace the history with ``messages`` and mark the turn complete."""
        self._replace(messages)
        self._done = True

    def _replace(self, messages: Sequence[ModelMessage]) -> None:
        messages = list(messages)
        current = self._messages

        if len(messages) < len(current):
            raise HistoryRewriteError(
                f"History would shrink from {len(current)} to {len(messages)} entries"
            )
        for index, (old, new) in enumerate(zip(current, messages)):
            if old != new:
                raise HistoryRewriteError(f"History entry {index} would change")
        for message in messages[len(current):]:
            if message.role not in ROLES:
                raise ValueError(f"Unknown message role: {message.role}")

        self._messages = messages

    def to_list(self) -> List[Dict[str, Any]]:
        return [message.to_dict() for message in self._messages]

    def __len__(self) -> int:
        return len(self._messages)


class UIState:
    """Display history: one item per user message and per response."""

    def __init__(self):
        self._items: List[DisplayItem] = []
        self._last_id = 0

    def next_id(self) -> int:
        """Return a millisecond timestamp, bumped past the previous id if needed."""
        item_id = max(int(time.time() * 1000), self._last_id + 1)
        self._last_id = item_id
        return item_id

    def append(self, display: Dict[str, Any]) -> DisplayItem:
        """Append a render unit and return the new display item."""
        item = DisplayItem(self.next_id(), display)
        self._items.append(item)
        return item

    def items(self) -> List[DisplayItem]:
        return list(self._items)

    def to_list(self) -> List[Dict[str, Any]]:
        return [item.to_dict() for item in self._items]

    def __len__(self) -> int:
        return len(self._items)
