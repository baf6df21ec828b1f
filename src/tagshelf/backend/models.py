"""Persisted library document."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel, Field

from tagshelf.models import FileRecord, HierarchySnapshot


class LibraryState(BaseModel):
    """Everything the JSON backend stores for one library."""

    files: Dict[str, FileRecord] = Field(default_factory=dict)
    hierarchy: Optional[HierarchySnapshot] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


__all__ = ["LibraryState"]
