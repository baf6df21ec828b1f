"""Shared fixtures: an in-memory backend and helpers for file records."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

import pytest

from tagshelf.errors import BackendUnavailableError
from tagshelf.models import FileRecord, HierarchySnapshot


class RecordingBackend:
    """Backend double that keeps records in memory and logs every call.

    Attributes:
        calls: ``(operation, argument)`` pairs in call order.
        failing: Operation names that raise ``BackendUnavailableError``.
        delay: Optional callable returning seconds to sleep before an operation.
    """

    def __init__(self, records: Iterable[FileRecord] = ()) -> None:
        self.records: dict[str, FileRecord] = {record.id: record for record in records}
        self.hierarchy: HierarchySnapshot | None = None
        self.calls: list[tuple[str, Any]] = []
        self.failing: set[str] = set()
        self.delay: Callable[[str, Any], float] | None = None

    def arguments(self, operation: str) -> list[Any]:
        return [argument for name, argument in self.calls if name == operation]

    async def _enter(self, operation: str, argument: Any = None) -> None:
        self.calls.append((operation, argument))
        if self.delay is not None:
            seconds = self.delay(operation, argument)
            if seconds:
                await asyncio.sleep(seconds)
        else:
            await asyncio.sleep(0)
        if operation in self.failing:
            raise BackendUnavailableError(f"{operation} failed")

    async def create_file(self, file_id: str, path: str) -> FileRecord:
        await self._enter("create_file", file_id)
        record = FileRecord(id=file_id, path=path)
        self.records[file_id] = record
        return record

    async def fetch_files(self) -> list[FileRecord]:
        await self._enter("fetch_files")
        return [record.model_copy(deep=True) for record in self.records.values()]

    async def search_files(self, tag_ids: Sequence[str]) -> list[FileRecord]:
        await self._enter("search_files", tuple(tag_ids))
        wanted = set(tag_ids)
        return [
            record.model_copy(deep=True)
            for record in self.records.values()
            if wanted.intersection(record.tag_ids)
        ]

    async def save_file(self, record: FileRecord) -> None:
        await self._enter("save_file", record.id)
        self.records[record.id] = record

    async def remove_file(self, record: FileRecord) -> None:
        await self._enter("remove_file", record.id)
        self.records.pop(record.id, None)

    async def fetch_hierarchy(self) -> HierarchySnapshot | None:
        await self._enter("fetch_hierarchy")
        return self.hierarchy

    async def save_hierarchy(self, snapshot: HierarchySnapshot) -> None:
        await self._enter("save_hierarchy")
        self.hierarchy = snapshot


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def make_record(tmp_path: Path) -> Callable[..., FileRecord]:
    """Return a factory creating file records, backed by real files unless ``exists=False``."""

    def _make(name: str, *, exists: bool = True, tag_ids: Sequence[str] = ()) -> FileRecord:
        path = tmp_path / name
        if exists:
            path.write_text(name, encoding="utf-8")
        return FileRecord(id=f"file-{name}", path=str(path), tag_ids=list(tag_ids))

    return _make
