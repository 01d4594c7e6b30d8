# history.py

import logging
from typing import Dict, List, Optional, Any

from constants import HISTORY_LIMIT

logger = logging.getLogger(__name__)

# wid -> serialized widget record, or None when the widget did not exist
ElementStates = Dict[str, Optional[Dict[str, Any]]]


class HistoryEntry:
    """One undoable step: the touched elements before and after the change."""

    def __init__(self, label: str, before: ElementStates, after: ElementStates,
                 order_before: Optional[List[str]] = None, order_after: Optional[List[str]] = None):
        self.label = label
        self.before = before
        self.after = after
        # Element order only matters when the step added or removed elements.
        self.order_before = order_before
        self.order_after = order_after

    def __repr__(self):
        return f"<HistoryEntry {self.label!r} ({len(self.before)} elements)>"


class PendingChange:
    """Collects the before-state of every element touched inside an open transaction."""

    def __init__(self, label: str):
        self.label = label
        self.before: ElementStates = {}
        self.order_before: Optional[List[str]] = None

    def touch(self, wid: str, state: Optional[Dict[str, Any]]):
        # Only the first touch matters; later ones would record intermediate states.
        if wid not in self.before:
            self.before[wid] = state

    def touch_order(self, order: List[str]):
        if self.order_before is None:
            self.order_before = list(order)

    def finish(self, current_state, current_order: List[str]) -> Optional[HistoryEntry]:
        """
        Builds the history entry by reading the after-state of each touched element.
        current_state is a callable wid -> record-or-None. Returns None when nothing changed.
        """
        after = {wid: current_state(wid) for wid in self.before}
        order_after = list(current_order) if self.order_before is not None else None
        changed = {wid for wid in self.before if self.before[wid] != after[wid]}
        if not changed and self.order_before == order_after:
            return None
        before = {wid: self.before[wid] for wid in changed}
        after = {wid: after[wid] for wid in changed}
        return HistoryEntry(self.label, before, after, self.order_before, order_after)


class History:
    def __init__(self, limit: int = HISTORY_LIMIT):
        self.limit = limit
        self._undo: List[HistoryEntry] = []
        self._redo: List[HistoryEntry] = []

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def undo_label(self) -> Optional[str]:
        return self._undo[-1].label if self._undo else None

    @property
    def redo_label(self) -> Optional[str]:
        return self._redo[-1].label if self._redo else None

    def push(self, entry: HistoryEntry):
        self._undo.append(entry)
        if len(self._undo) > self.limit:
            del self._undo[0]
        self._redo.clear() # A new edit invalidates the redo branch
        logger.debug("History.push: Recorded %r", entry)

    def pop_undo(self) -> Optional[HistoryEntry]:
        if not self._undo: return None
        entry = self._undo.pop()
        self._redo.append(entry)
        return entry

    def pop_redo(self) -> Optional[HistoryEntry]:
        if not self._redo: return None
        entry = self._redo.pop()
        self._undo.append(entry)
        return entry

    def clear(self):
        self._undo.clear()
        self._redo.clear()
