"""Domain records exchanged between the tree, the file layer, and backends."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List

from pydantic import BaseModel, Field

from .ids import ROOT_COLLECTION_ID, generate_id


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Tag(BaseModel):
    """A label that can be attached to files.

    Attributes:
        id: Opaque tag identifier.
        name: Display name.
        date_added: Creation timestamp.
    """

    id: str = Field(default_factory=generate_id)
    name: str
    date_added: datetime = Field(default_factory=_now)


class TagCollection(BaseModel):
    """A named node of the tag hierarchy.

    Attributes:
        id: Opaque collection identifier.
        name: Display name.
        tag_ids: Member tags in display order.
        sub_collection_ids: Child collections in display order.
    """

    id: str = Field(default_factory=generate_id)
    name: str
    tag_ids: List[str] = Field(default_factory=list)
    sub_collection_ids: List[str] = Field(default_factory=list)


class FileRecord(BaseModel):
    """Backend representation of a tracked file."""

    id: str = Field(default_factory=generate_id)
    path: str
    tag_ids: List[str] = Field(default_factory=list)
    date_added: datetime = Field(default_factory=_now)


class HierarchySnapshot(BaseModel):
    """Persisted form of the tag hierarchy."""

    root_id: str = ROOT_COLLECTION_ID
    tags: List[Tag] = Field(default_factory=list)
    collections: List[TagCollection] = Field(default_factory=list)


__all__ = ["Tag", "TagCollection", "FileRecord", "HierarchySnapshot"]
