"""Display-name rules for scene nodes.

Names are unique across the whole document. ``visual`` and ``collision``
containers are exempt: they always carry the canonical names "Visual" and
"Collision". Mirror shadows are exempt as well; they copy the name of the
node they shadow.
"""

import re
from typing import Mapping, Optional

from .types import Node, NodeKind

_INDEX_SUFFIX = re.compile(r"^(.*)_\d+$")

EXEMPT_KINDS = frozenset({NodeKind.VISUAL, NodeKind.COLLISION})

CANONICAL_NAMES = {
    NodeKind.VISUAL: "Visual",
    NodeKind.COLLISION: "Collision",
}

FALLBACK_NAMES = {
    NodeKind.ROBOT: "Robot",
    NodeKind.LINK: "Link",
    NodeKind.JOINT: "Joint",
    NodeKind.MESH: "Mesh",
}


def is_exempt_kind(kind: NodeKind) -> bool:
    return kind in EXEMPT_KINDS


def is_name_exempt(node: Node) -> bool:
    """Containers and generated mirror shadows do not take part in uniqueness."""
    return is_exempt_kind(node.kind) or node.components.mirror is not None


def canonical_name(kind: NodeKind, fallback: str) -> str:
    return CANONICAL_NAMES.get(kind, fallback)


def strip_index_suffix(name: str) -> str:
    """``"Link_3"`` -> ``"Link"``."""
    match = _INDEX_SUFFIX.match(name)
    return match.group(1) if match else name


def strip_copy_suffix(name: str) -> str:
    """Remove a trailing " Copy" or " Paste" decoration."""
    trimmed = name.strip()
    for suffix in (" Copy", " Paste"):
        if trimmed.endswith(suffix):
            return trimmed[: -len(suffix)]
    return trimmed


def resolve_unique_name(
    nodes: Mapping[str, Node], base_name: str, except_id: Optional[str] = None
) -> str:
    """Pick a document-unique name derived from ``base_name``.

    Returns the bare name when nothing else uses it; otherwise appends
    ``_N`` where ``N`` is one more than the largest numeric suffix already
    in use for that base.

    Args:
        nodes: All nodes of the document.
        base_name: Requested name. Blank names become "Object".
        except_id: Node being renamed; its own name does not count.
    """
    clean = base_name.strip() or "Object"
    has_base = False
    max_index = 0
    prefix = clean + "_"
    for node in nodes.values():
        if node.id == except_id or is_name_exempt(node):
            continue
        if node.name == clean:
            has_base = True
            continue
        if node.name.startswith(prefix):
            suffix = node.name[len(prefix):]
            if suffix.isascii() and suffix.isdigit():
                max_index = max(max_index, int(suffix))
    if not has_base and max_index == 0:
        return clean
    return f"{clean}_{max(1, max_index + 1)}"


def resolve_node_name(
    nodes: Mapping[str, Node], kind: NodeKind, base_name: str, except_id: Optional[str] = None
) -> str:
    if is_exempt_kind(kind):
        return canonical_name(kind, base_name)
    return resolve_unique_name(nodes, base_name, except_id)
