"""Undo/redo history of applied commands."""

import time
from collections import deque
from typing import Callable, Deque, Optional

from flax import struct

from .core.types import Document


@struct.dataclass
class Command:
    """A named, pure document transformation.

    ``apply`` must return its argument unchanged (``is`` identity) when the
    command has nothing to do.
    """

    id: str = struct.field(pytree_node=False)
    label: str = struct.field(pytree_node=False)
    apply: Callable[[Document], Document] = struct.field(pytree_node=False)


@struct.dataclass
class Record:
    """Documents on either side of one executed command."""

    command: Command = struct.field(pytree_node=False)
    before: Document
    after: Document
    timestamp: float = struct.field(pytree_node=False, default=0.0)


def make_record(command: Command, before: Document, after: Document) -> Record:
    return Record(command=command, before=before, after=after, timestamp=time.time())


class CommandHistory:
    """Linear undo/redo stacks.

    Pushing a new record discards everything that could have been redone.
    With ``limit`` set, the oldest undo records are dropped first.
    """

    def __init__(self, limit: Optional[int] = None):
        if limit is not None and limit < 1:
            raise ValueError(f"history limit must be positive, got {limit}")
        self.limit = limit
        self._past: Deque[Record] = deque(maxlen=limit)
        self._future: Deque[Record] = deque()

    def push(self, record: Record) -> None:
        self._past.append(record)
        self._future.clear()

    def undo(self) -> Optional[Record]:
        if not self._past:
            return None
        record = self._past.pop()
        self._future.appendleft(record)
        return record

    def redo(self) -> Optional[Record]:
        if not self._future:
            return None
        record = self._future.popleft()
        self._past.append(record)
        return record

    def can_undo(self) -> bool:
        return len(self._past) > 0

    def can_redo(self) -> bool:
        return len(self._future) > 0

    def clear(self) -> None:
        self._past.clear()
        self._future.clear()

    def __len__(self) -> int:
        return len(self._past)
