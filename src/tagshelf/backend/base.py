"""Backend contract consumed by the file reconciler and the root store."""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from tagshelf.models import FileRecord, HierarchySnapshot


@runtime_checkable
class Backend(Protocol):
    """Asynchronous persistence contract.

    Implementations raise ``BackendUnavailableError`` (or any exception, which
    callers treat the same way) when a call cannot be completed.
    """

    async def create_file(self, file_id: str, path: str) -> FileRecord: ...

    async def fetch_files(self) -> list[FileRecord]: ...

    async def search_files(self, tag_ids: Sequence[str]) -> list[FileRecord]:
        """Return files carrying any of ``tag_ids``."""
        ...

    async def save_file(self, record: FileRecord) -> None: ...

    async def remove_file(self, record: FileRecord) -> None:
        """Remove ``record``; removing an unknown record is not an error."""
        ...

    async def fetch_hierarchy(self) -> HierarchySnapshot | None: ...

    async def save_hierarchy(self, snapshot: HierarchySnapshot) -> None: ...


__all__ = ["Backend"]
