"""Opaque identifiers for tags, collections, and files."""

from __future__ import annotations

from uuid import uuid4

ID = str

ROOT_COLLECTION_ID: ID = "root"
SYSTEM_TAGS_ID: ID = "system-tags"


def generate_id() -> ID:
    """Return a new globally unique identifier.

    Callers must treat the value as opaque; nothing in the package derives
    meaning from its shape.

    Returns:
        ID: Freshly generated identifier.
    """
    return uuid4().hex


__all__ = ["ID", "ROOT_COLLECTION_ID", "SYSTEM_TAGS_ID", "generate_id"]
