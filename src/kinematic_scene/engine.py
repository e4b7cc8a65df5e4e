"""Document engine: the single entry point through which edits are applied.

The engine owns the current :class:`Document`, runs commands through the
synchronizer, records undo history and publishes
:class:`~kinematic_scene.events.DocumentChanged` and
:class:`~kinematic_scene.events.HistoryChanged` events.

Handlers are called while the engine is still applying a change. Calling
:meth:`DocumentEngine.execute` (or undo/redo) from inside a handler raises
``RuntimeError``; handlers that need a follow-up edit queue it with
:meth:`DocumentEngine.defer`, and queued commands run as soon as the current
call returns.
"""

import contextlib
import logging
from collections import deque
from typing import Callable, Deque, Optional, Tuple

from .commands import (
    duplicate_subtree_command,
    remove_subtree_command,
    set_node_name_command,
    set_node_parent_command,
    set_node_physics_command,
    set_node_robot_fragment_command,
    set_node_transform_command,
    set_node_visual_command,
    set_selection_command,
)
from .config import CONFIG, EditorConfig
from .core import ops
from .core.factory import create_empty_document
from .core.types import (
    Document,
    Physics,
    PhysicsFields,
    RobotFragment,
    Scene,
    Transform,
    Vec3,
    VisualFlags,
)
from .events import DocumentChanged, EventBus, HistoryChanged, Unsubscribe
from .history import Command, CommandHistory, make_record
from .sync import synchronize
from .util.logger import LOGGER_NAME

LOGGER = logging.getLogger(LOGGER_NAME)


class DocumentEngine:
    def __init__(
        self,
        initial: Optional[Document] = None,
        config: Optional[EditorConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or CONFIG
        self.logger = logger or LOGGER
        self._document = initial if initial is not None else create_empty_document()
        self._bus = EventBus()
        self._history = CommandHistory(limit=self.config.history_limit)
        self._busy = False
        self._deferred: Deque[Tuple[Command, bool, Optional[str]]] = deque()

    # State

    def get_document(self) -> Document:
        return self._document

    @property
    def document(self) -> Document:
        return self._document

    @property
    def history(self) -> CommandHistory:
        return self._history

    def can_undo(self) -> bool:
        return self._history.can_undo()

    def can_redo(self) -> bool:
        return self._history.can_redo()

    def subscribe(self, event_type: str, handler: Callable) -> Unsubscribe:
        """Register ``handler`` for ``"document:changed"`` or ``"history:changed"``."""
        return self._bus.subscribe(event_type, handler)

    # Dispatch

    @contextlib.contextmanager
    def _exclusive(self, action: str):
        if self._busy:
            raise RuntimeError(
                f"cannot {action} while an event handler is running; use defer() instead"
            )
        self._busy = True
        try:
            yield
        except BaseException:
            self._deferred.clear()
            raise
        finally:
            self._busy = False

    def _publish_document(self, reason: str) -> None:
        self._bus.emit(DocumentChanged(document=self._document, reason=reason))

    def _publish_history(self) -> None:
        self._bus.emit(
            HistoryChanged(can_undo=self._history.can_undo(), can_redo=self._history.can_redo())
        )

    def _drain(self) -> None:
        while self._deferred and not self._busy:
            command, record_history, reason = self._deferred.popleft()
            self.execute(command, record_history=record_history, reason=reason)

    def execute(
        self, command: Command, record_history: bool = True, reason: Optional[str] = None
    ) -> bool:
        """Apply ``command`` followed by the synchronizer.

        Returns:
            True when the document changed. A command whose result is the
            unchanged document emits nothing and records nothing.
        """
        with self._exclusive("execute a command"):
            before = self._document
            after = synchronize(command.apply(before))
            if after is before:
                self.logger.debug("command %s left the document unchanged", command.id)
                changed = False
            else:
                self.logger.debug("command %s applied", command.id)
                self._document = after
                if record_history:
                    self._history.push(make_record(command, before, after))
                self._publish_document(reason or command.id)
                if record_history:
                    self._publish_history()
                changed = True
        self._drain()
        return changed

    def defer(
        self, command: Command, record_history: bool = True, reason: Optional[str] = None
    ) -> None:
        """Run ``command`` once the engine is idle (immediately if it already is)."""
        if not self._busy:
            self.execute(command, record_history=record_history, reason=reason)
            return
        self._deferred.append((command, record_history, reason))

    def undo(self) -> bool:
        with self._exclusive("undo"):
            record = self._history.undo()
            if record is None:
                return False
            self._document = record.before
            self._publish_document(f"undo:{record.command.id}")
            self._publish_history()
        self._drain()
        return True

    def redo(self) -> bool:
        with self._exclusive("redo"):
            record = self._history.redo()
            if record is None:
                return False
            self._document = record.after
            self._publish_document(f"redo:{record.command.id}")
            self._publish_history()
        self._drain()
        return True

    def set_document(self, doc: Document, reason: str) -> None:
        """Swap in a document from outside the command system (load, import).

        History is left untouched.
        """
        with self._exclusive("set the document"):
            self._document = synchronize(doc)
            self._publish_document(reason)
        self._drain()

    def replace_scene(self, scene: Scene, reason: str = "scene.replace") -> None:
        self.set_document(ops.replace_scene(self._document, scene), reason)

    # Convenience edits

    def set_selection(self, node_id: Optional[str]) -> bool:
        return self.execute(set_selection_command(node_id), record_history=False)

    def set_node_name(
        self, node_id: str, name: str, record_history: bool = True, reason: Optional[str] = None
    ) -> bool:
        return self.execute(set_node_name_command(node_id, name), record_history, reason)

    def set_node_transform(
        self,
        node_id: str,
        transform: Transform,
        record_history: bool = False,
        reason: Optional[str] = None,
    ) -> bool:
        """Transforms stream while dragging, so they skip history by default."""
        return self.execute(set_node_transform_command(node_id, transform), record_history, reason)

    def set_node_physics(
        self,
        node_id: str,
        physics: Physics,
        fields: Optional[PhysicsFields] = None,
        record_history: bool = True,
        reason: Optional[str] = None,
    ) -> bool:
        return self.execute(set_node_physics_command(node_id, physics, fields), record_history, reason)

    def set_node_robot_fragment(
        self,
        node_id: str,
        fragment: RobotFragment,
        record_history: bool = True,
        reason: Optional[str] = None,
    ) -> bool:
        return self.execute(set_node_robot_fragment_command(node_id, fragment), record_history, reason)

    def set_node_visual(
        self,
        node_id: str,
        visual: VisualFlags,
        record_history: bool = True,
        reason: Optional[str] = None,
    ) -> bool:
        return self.execute(set_node_visual_command(node_id, visual), record_history, reason)

    def set_node_parent(
        self, node_id: str, parent_id: Optional[str], transform: Optional[Transform] = None
    ) -> bool:
        return self.execute(set_node_parent_command(node_id, parent_id, transform))

    def duplicate_subtree(self, root_id: str, offset: Optional[Vec3] = None) -> bool:
        if offset is None:
            offset = tuple(self.config.duplicate_offset)
        return self.execute(duplicate_subtree_command(root_id, offset=offset))

    def remove_subtree(self, root_id: str) -> bool:
        return self.execute(remove_subtree_command(root_id))
