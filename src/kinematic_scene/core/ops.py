"""Structural operations on scene documents.

Every public function takes a :class:`Document` plus an intent and returns a
:class:`Document`. Functions are pure and total: an unknown id, an invalid
reparent target or a change that would not alter anything returns the input
document itself (``result is doc``), which callers treat as "nothing
happened" rather than as an error.

Parent/children adjacency is only ever edited through :class:`_SceneDraft`,
so both sides of every edge change together in one place.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from ..chain import nearest_ancestor_of_kinds, resolve_link_label
from .factory import new_node_id, utc_timestamp
from .naming import (
    FALLBACK_NAMES,
    canonical_name,
    is_exempt_kind,
    is_name_exempt,
    resolve_node_name,
    resolve_unique_name,
    strip_copy_suffix,
    strip_index_suffix,
)
from .types import (
    EMPTY_COMPONENTS,
    ClonePayload,
    CloneSource,
    Components,
    Document,
    JointFragment,
    LinkFragment,
    Mirror,
    Node,
    NodeInput,
    NodeKind,
    Physics,
    PhysicsFields,
    RobotFragment,
    Scene,
    Transform,
    Vec3,
    VisualFlags,
)

LINK_PARENT_KINDS = frozenset({NodeKind.ROBOT, NodeKind.JOINT})


class _Unset:
    def __repr__(self):
        return "UNSET"


UNSET = _Unset()


class _SceneDraft:
    """Scratch copy of a scene that one operation may edit in place.

    The draft owns fresh ``dict``/``list`` containers; nodes themselves stay
    immutable and are swapped for updated copies.
    """

    def __init__(self, scene: Scene):
        self.nodes: Dict[str, Node] = dict(scene.nodes)
        self.roots: List[str] = list(scene.roots)
        self.selected_id = scene.selected_id

    def put(self, node: Node) -> None:
        self.nodes[node.id] = node

    def detach(self, node_id: str) -> None:
        node = self.nodes[node_id]
        parent = self.nodes.get(node.parent_id) if node.parent_id is not None else None
        if parent is not None:
            self.nodes[parent.id] = parent.replace(
                children=tuple(c for c in parent.children if c != node_id)
            )
        self.roots = [r for r in self.roots if r != node_id]
        self.nodes[node_id] = node.replace(parent_id=None)

    def attach(
        self, node_id: str, parent_id: Optional[str], insert_after_id: Optional[str] = None
    ) -> None:
        """Link an unattached node under ``parent_id`` (or the roots)."""
        node = self.nodes[node_id]
        parent = self.nodes.get(parent_id) if parent_id is not None else None
        if parent is None:
            self.roots = _insert_after(self.roots, insert_after_id, node_id)
            self.nodes[node_id] = node.replace(parent_id=None)
            return
        children = _insert_after(list(parent.children), insert_after_id, node_id)
        self.nodes[parent.id] = parent.replace(children=tuple(children))
        self.nodes[node_id] = node.replace(parent_id=parent.id)

    def reparent(
        self, node_id: str, parent_id: Optional[str], insert_after_id: Optional[str] = None
    ) -> None:
        self.detach(node_id)
        self.attach(node_id, parent_id, insert_after_id)

    def delete(self, ids: Iterable[str]) -> None:
        for node_id in ids:
            self.nodes.pop(node_id, None)

    def is_ancestor(self, ancestor_id: str, node_id: Optional[str]) -> bool:
        """True when ``ancestor_id`` is ``node_id`` or one of its ancestors."""
        seen = set()
        current = node_id
        while current is not None and current not in seen:
            if current == ancestor_id:
                return True
            seen.add(current)
            node = self.nodes.get(current)
            current = node.parent_id if node is not None else None
        return False

    def freeze(self) -> Scene:
        return Scene(nodes=self.nodes, roots=tuple(self.roots), selected_id=self.selected_id)


def _insert_after(items: List[str], target_id: Optional[str], new_id: str) -> List[str]:
    items = [i for i in items if i != new_id]
    if target_id is not None and target_id in items:
        index = items.index(target_id)
        return items[: index + 1] + [new_id] + items[index + 1 :]
    return items + [new_id]


def touch_metadata(doc: Document) -> Document:
    return doc.replace(metadata=doc.metadata.replace(updated_at=utc_timestamp()))


def _commit(doc: Document, draft: _SceneDraft) -> Document:
    return touch_metadata(doc.replace(scene=draft.freeze()))


def replace_node(doc: Document, node: Node) -> Document:
    nodes = dict(doc.scene.nodes)
    nodes[node.id] = node
    return touch_metadata(doc.replace(scene=doc.scene.replace(nodes=nodes)))


# Kind rules


def is_allowed_link_parent_kind(kind: Optional[NodeKind]) -> bool:
    return kind in LINK_PARENT_KINDS


def sanitize_parent_for_kind(nodes, parent_id: Optional[str], kind: NodeKind) -> Optional[str]:
    """Apply kind constraints to a requested parent.

    Robots never have a parent; a link may only sit under a robot or a joint
    and falls back to the roots otherwise. Unknown parents map to the roots.
    """
    if kind is NodeKind.ROBOT or parent_id is None:
        return None
    parent = nodes.get(parent_id)
    if parent is None:
        return None
    if kind is NodeKind.LINK and not is_allowed_link_parent_kind(parent.kind):
        return None
    return parent_id


def validate_reparent_target(doc: Document, source_id: str, target_id: Optional[str]) -> Optional[str]:
    """Explain why ``source_id`` cannot move under ``target_id``.

    Returns:
        A human-readable reason, or None when the move is allowed.
    """
    nodes = doc.scene.nodes
    source = nodes.get(source_id)
    if source is None:
        return "Source node not found."
    if target_id == source_id:
        return "A node cannot be parented to itself."
    if target_id is not None:
        current = target_id
        while current is not None:
            if current == source_id:
                return "Cannot parent a node inside its own descendants."
            node = nodes.get(current)
            current = node.parent_id if node is not None else None
    if source.kind is NodeKind.ROBOT and target_id is not None:
        return "Robots are primary roots and must stay at scene root."
    if source.kind is NodeKind.LINK and target_id is not None:
        target = nodes.get(target_id)
        if not is_allowed_link_parent_kind(target.kind if target is not None else None):
            return "Links can only be parented to Robot, Joint or scene root."
    return None


# Selection and components


def replace_scene(doc: Document, scene: Scene) -> Document:
    return touch_metadata(doc.replace(scene=scene))


def set_selection(doc: Document, node_id: Optional[str]) -> Document:
    if doc.scene.selected_id == node_id:
        return doc
    if node_id is not None and node_id not in doc.scene.nodes:
        return doc
    return touch_metadata(doc.replace(scene=doc.scene.replace(selected_id=node_id)))


def _replace_components(doc: Document, node_id: str, **changes) -> Document:
    node = doc.scene.nodes.get(node_id)
    if node is None:
        return doc
    components = node.components.replace(**changes)
    if components == node.components:
        return doc
    return replace_node(doc, node.replace(components=components))


def set_node_transform(doc: Document, node_id: str, transform: Transform) -> Document:
    return _replace_components(doc, node_id, transform=transform)


def set_node_physics(
    doc: Document, node_id: str, physics: Physics, fields: Optional[PhysicsFields] = None
) -> Document:
    node = doc.scene.nodes.get(node_id)
    if node is None:
        return doc
    if fields is None:
        fields = node.components.physics_fields
    return _replace_components(doc, node_id, physics=physics, physics_fields=fields)


def set_node_visual(doc: Document, node_id: str, visual: VisualFlags) -> Document:
    return _replace_components(doc, node_id, visual=visual)


def set_node_robot_fragment(doc: Document, node_id: str, fragment: RobotFragment) -> Document:
    return _replace_components(doc, node_id, robot=fragment)


def _stamp_fragment_name(components: Components, name: str, kinds=(JointFragment,)) -> Components:
    fragment = components.robot
    if isinstance(fragment, kinds) and fragment.name != name:
        return components.replace(robot=fragment.replace(name=name))
    return components


def set_node_name(doc: Document, node_id: str, name: str) -> Document:
    """Rename a node.

    Link and joint fragments follow the display name. Renaming a link also
    rewrites the ``parent``/``child`` labels of every joint fragment that
    referenced the link's previous label.
    """
    nodes = doc.scene.nodes
    node = nodes.get(node_id)
    if node is None:
        return doc

    previous_label = resolve_link_label(node) if node.kind is NodeKind.LINK else None
    fallback = FALLBACK_NAMES.get(node.kind, node.name or "Object")
    desired = name.strip() or fallback
    if is_name_exempt(node):
        next_name = canonical_name(node.kind, desired)
    else:
        next_name = resolve_node_name(nodes, node.kind, desired, except_id=node_id)

    components = _stamp_fragment_name(node.components, next_name, (LinkFragment, JointFragment))
    if next_name == node.name and components is node.components:
        return doc

    renamed = node.replace(name=next_name, components=components)
    next_nodes = dict(nodes)
    next_nodes[node_id] = renamed

    next_label = resolve_link_label(renamed) if node.kind is NodeKind.LINK else None
    if previous_label is not None and next_label is not None and previous_label != next_label:
        for candidate in nodes.values():
            if candidate.id == node_id or candidate.kind is not NodeKind.JOINT:
                continue
            fragment = candidate.components.robot
            if not isinstance(fragment, JointFragment):
                continue
            parent = next_label if fragment.parent == previous_label else fragment.parent
            child = next_label if fragment.child == previous_label else fragment.child
            if parent == fragment.parent and child == fragment.child:
                continue
            next_nodes[candidate.id] = candidate.replace(
                components=candidate.components.replace(
                    robot=fragment.replace(parent=parent, child=child)
                )
            )

    return touch_metadata(doc.replace(scene=doc.scene.replace(nodes=next_nodes)))


# Tree structure


def set_node_parent(doc: Document, node_id: str, parent_id: Optional[str]) -> Document:
    """Move a node under ``parent_id`` (None or unknown id means the roots).

    Self-parenting, cycles and parenting a robot are refused (input returned
    unchanged). A link whose requested parent is not a robot or joint falls
    back to the roots. The node is appended at the tail of its new sibling
    list.
    """
    nodes = doc.scene.nodes
    node = nodes.get(node_id)
    if node is None:
        return doc
    target = parent_id if parent_id is not None and parent_id in nodes else None
    if node.kind is NodeKind.ROBOT and target is not None:
        return doc
    draft = _SceneDraft(doc.scene)
    if target is not None:
        if draft.is_ancestor(node_id, target):
            return doc
        if node.kind is NodeKind.LINK and not is_allowed_link_parent_kind(nodes[target].kind):
            target = None
    if target == node.parent_id:
        return doc

    draft.reparent(node_id, target)
    return _commit(doc, draft)


def _input_name(nodes, node_input: NodeInput, components: Components) -> str:
    if components.mirror is not None:
        return node_input.name
    return resolve_node_name(nodes, node_input.kind, node_input.name)


def add_nodes(
    doc: Document,
    inputs: Sequence[NodeInput],
    select_id: Optional[str] = None,
    keep_selection: bool = False,
) -> Document:
    """Insert a batch of nodes.

    All nodes are created before any parent/child wiring happens, so an
    input may name another input of the same batch as its parent. Inputs
    whose id already exists are skipped.

    Args:
        doc: Source document.
        inputs: Node requests, processed in order.
        select_id: Node to select afterwards; defaults to the first created.
        keep_selection: Leave the current selection untouched.
    """
    if not inputs:
        return doc

    draft = _SceneDraft(doc.scene)
    created: List[str] = []
    requested_parents: Dict[str, Optional[str]] = {}

    for node_input in inputs:
        node_id = node_input.id or new_node_id()
        if node_id in draft.nodes:
            continue
        components = node_input.components or EMPTY_COMPONENTS
        name = _input_name(draft.nodes, node_input, components)
        components = _stamp_fragment_name(components, name)
        draft.put(
            Node(
                id=node_id,
                name=name,
                kind=node_input.kind,
                parent_id=None,
                children=(),
                components=components,
                source=node_input.source,
            )
        )
        created.append(node_id)
        requested_parents[node_id] = node_input.parent_id

    if not created:
        return doc

    # Wire batch members only now; provisional parents are used to detect
    # cycles inside the batch itself.
    provisional = dict(requested_parents)
    for node_id in created:
        node = draft.nodes[node_id]
        parent_id = sanitize_parent_for_kind(draft.nodes, provisional[node_id], node.kind)
        if parent_id is not None and _reaches(draft, provisional, parent_id, node_id):
            parent_id = None
        provisional[node_id] = parent_id
        draft.attach(node_id, parent_id)

    if not keep_selection:
        draft.selected_id = select_id if select_id is not None else created[0]
    return _commit(doc, draft)


def _reaches(draft: _SceneDraft, provisional: Dict[str, Optional[str]], start_id: str, target_id: str) -> bool:
    seen = set()
    current: Optional[str] = start_id
    while current is not None and current not in seen:
        if current == target_id:
            return True
        seen.add(current)
        if current in provisional:
            current = provisional[current]
        else:
            node = draft.nodes.get(current)
            current = node.parent_id if node is not None else None
    return False


def add_node(doc: Document, node_input: NodeInput) -> Document:
    """Insert one node and select it. An id that already exists is a no-op."""
    return add_nodes(doc, [node_input])


def collect_subtree(doc: Document, root_id: str) -> Optional[ClonePayload]:
    """Pre-order snapshot of a node and all its descendants."""
    nodes = doc.scene.nodes
    if root_id not in nodes:
        return None
    out: List[Node] = []
    stack = [root_id]
    while stack:
        node = nodes.get(stack.pop())
        if node is None:
            continue
        out.append(node)
        stack.extend(reversed(node.children))
    return ClonePayload(root_id=root_id, nodes=tuple(out))


def _offset_transform(transform: Optional[Transform], offset: Vec3) -> Transform:
    base = transform or Transform.identity()
    position = tuple(p + o for p, o in zip(base.position, offset))
    return base.replace(position=position)


def paste_subtree(
    doc: Document,
    payload: ClonePayload,
    offset: Optional[Vec3] = None,
    name_suffix: Optional[str] = None,
    parent_id=UNSET,
    insert_after_id: Optional[str] = None,
) -> Document:
    """Insert a copy of ``payload`` with fresh ids.

    One remap table covers the whole payload. ``parent_id``, ``children`` and
    ``mirror.source_id`` references that point inside the payload follow the
    copy; references that point outside are kept. Every new node records
    ``CloneSource(original_id)``.

    Args:
        doc: Target document.
        payload: Result of :func:`collect_subtree`.
        offset: Added to the root's translation only.
        name_suffix: Decoration for the root name (" Copy", " Paste") before
            it is made unique again.
        parent_id: Target parent. Defaults to the original root's parent.
            Link roots are re-targeted to the nearest robot or joint at or
            above it; robot roots are always parentless.
        insert_after_id: Sibling after which the new root is inserted;
            appended at the end when absent.
    """
    template = next((n for n in payload.nodes if n.id == payload.root_id), None)
    if template is None:
        return doc
    nodes = doc.scene.nodes

    if parent_id is UNSET:
        original = nodes.get(payload.root_id, template)
        requested = original.parent_id
    else:
        requested = parent_id
    if requested is not None and requested not in nodes:
        requested = None

    if template.kind is NodeKind.ROBOT:
        root_parent = None
    elif template.kind is NodeKind.LINK:
        anchor = nearest_ancestor_of_kinds(nodes, requested, LINK_PARENT_KINDS)
        root_parent = anchor.id if anchor is not None else None
    else:
        root_parent = requested

    id_map = {node.id: new_node_id() for node in payload.nodes}
    new_root_id = id_map[payload.root_id]
    draft = _SceneDraft(doc.scene)

    for node in payload.nodes:
        is_root = node.id == payload.root_id
        components = node.components
        mirror = components.mirror
        if mirror is not None and mirror.source_id in id_map:
            components = components.replace(mirror=Mirror(source_id=id_map[mirror.source_id]))

        name = canonical_name(node.kind, node.name)
        if is_exempt_kind(node.kind) or components.mirror is not None:
            pass
        elif is_root:
            decorated = f"{name}{name_suffix}" if name_suffix else name
            name = resolve_unique_name(draft.nodes, strip_index_suffix(strip_copy_suffix(decorated)))
        else:
            name = resolve_unique_name(draft.nodes, strip_index_suffix(strip_copy_suffix(name)))
        components = _stamp_fragment_name(components, name, (LinkFragment, JointFragment))

        if is_root and offset is not None:
            components = components.replace(transform=_offset_transform(components.transform, offset))

        draft.put(
            node.replace(
                id=id_map[node.id],
                name=name,
                parent_id=None if is_root else id_map.get(node.parent_id, node.parent_id),
                children=tuple(id_map[c] for c in node.children if c in id_map),
                components=components,
                source=CloneSource(from_id=node.id),
            )
        )

    draft.attach(new_root_id, root_parent, insert_after_id)
    draft.selected_id = new_root_id
    return _commit(doc, draft)


def clone_subtree(doc: Document, root_id: str, offset: Optional[Vec3] = None) -> Document:
    """Duplicate a subtree next to the original."""
    payload = collect_subtree(doc, root_id)
    if payload is None:
        return doc
    return paste_subtree(doc, payload, offset=offset, name_suffix=" Copy", insert_after_id=root_id)


def remove_subtree(doc: Document, root_id: str) -> Document:
    """Delete a node with all its descendants.

    The selection is cleared when it pointed inside the removed set.
    """
    payload = collect_subtree(doc, root_id)
    if payload is None:
        return doc
    removed = {node.id for node in payload.nodes}
    draft = _SceneDraft(doc.scene)
    draft.detach(root_id)
    draft.delete(removed)
    if draft.selected_id in removed:
        draft.selected_id = None
    return _commit(doc, draft)


def set_child_order(doc: Document, parent_id: str, child_ids: Sequence[str]) -> Document:
    """Reorder the children of ``parent_id``.

    ``child_ids`` must be a permutation of the current children; anything
    else leaves the document unchanged.
    """
    parent = doc.scene.nodes.get(parent_id)
    if parent is None:
        return doc
    ordered = tuple(child_ids)
    if ordered == parent.children or sorted(ordered) != sorted(parent.children):
        return doc
    return replace_node(doc, parent.replace(children=ordered))
