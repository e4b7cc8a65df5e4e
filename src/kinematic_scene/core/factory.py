"""Constructors for empty documents and fresh node ids."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from .types import Document, Metadata, Scene


def new_node_id() -> str:
    return uuid.uuid4().hex


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_empty_scene() -> Scene:
    return Scene(nodes={}, roots=(), selected_id=None)


def create_empty_document(name: Optional[str] = None) -> Document:
    """Create the empty document a session starts from."""
    now = utc_timestamp()
    return Document(
        scene=create_empty_scene(),
        sources={},
        metadata=Metadata(name=name, created_at=now, updated_at=now),
    )
