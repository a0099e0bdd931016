"""Bounded snapshot history with a cursor, for undo/redo."""

from __future__ import annotations

from typing import Generic, TypeVar

from medgas_mcp.config import HISTORY_LIMIT

T = TypeVar("T")


class History(Generic[T]):
    """Undo stack of pre-mutation snapshots.

    ``step`` counts the mutations that can currently be undone: entries
    ``[0, step)`` are the states preceding each of them. Entries past ``step``
    are redo targets; the last one is the state after the newest mutation and
    is only stored once the first undo from the top happens.

    ``limit`` caps the undoable mutations, not the stack: that stored
    post-mutation state can make ``len()`` read ``limit + 1``.
    """

    def __init__(self, limit: int = HISTORY_LIMIT):
        if limit < 1:
            raise ValueError(f"History limit must be at least 1, got {limit}")
        self._limit = limit
        self._stack: list[T] = []
        self._step = 0

    @property
    def step(self) -> int:
        return self._step

    @property
    def limit(self) -> int:
        return self._limit

    def __len__(self) -> int:
        return len(self._stack)

    @property
    def can_undo(self) -> bool:
        return self._step > 0

    @property
    def can_redo(self) -> bool:
        return self._step < len(self._stack) - 1

    def record(self, snapshot: T) -> None:
        """Store the state preceding a mutation; call *before* mutating."""
        del self._stack[self._step:]
        self._stack.append(snapshot)
        if len(self._stack) > self._limit:
            del self._stack[0]
        self._step = len(self._stack)

    def undo(self, current: T) -> T | None:
        """Step back once. Returns the snapshot to restore, or ``None`` at 0."""
        if self._step == 0:
            return None
        if self._step == len(self._stack):
            self._stack.append(current)
        self._step -= 1
        return self._stack[self._step]

    def redo(self) -> T | None:
        """Step forward once. Returns the snapshot to restore, or ``None``."""
        if not self.can_redo:
            return None
        self._step += 1
        return self._stack[self._step]

    def clear(self) -> None:
        self._stack.clear()
        self._step = 0
