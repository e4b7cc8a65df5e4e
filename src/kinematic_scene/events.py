"""Events published by the document engine and a synchronous bus for them."""

from typing import Callable, ClassVar, Dict, List

from flax import struct

from .core.types import Document

Unsubscribe = Callable[[], None]


@struct.dataclass
class DocumentChanged:
    type: ClassVar[str] = "document:changed"

    document: Document
    reason: str = struct.field(pytree_node=False, default="")


@struct.dataclass
class HistoryChanged:
    type: ClassVar[str] = "history:changed"

    can_undo: bool = struct.field(pytree_node=False, default=False)
    can_redo: bool = struct.field(pytree_node=False, default=False)


class EventBus:
    """Dispatches events to handlers registered for their ``type`` string.

    Handlers run synchronously in subscription order. Exceptions raised by a
    handler propagate to the code that emitted the event.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, handler: Callable) -> Unsubscribe:
        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

        def unsubscribe() -> None:
            current = self._handlers.get(event_type)
            if current is None or handler not in current:
                return
            current.remove(handler)
            if not current:
                del self._handlers[event_type]

        return unsubscribe

    def emit(self, event) -> None:
        for handler in list(self._handlers.get(event.type, ())):
            handler(event)

    def handler_count(self, event_type: str) -> int:
        return len(self._handlers.get(event_type, ()))
