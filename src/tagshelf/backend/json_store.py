"""JSON document backend for a tagshelf library."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Sequence, TypeVar

from pydantic import ValidationError

from tagshelf.errors import BackendUnavailableError
from tagshelf.models import FileRecord, HierarchySnapshot

from .errors import LibraryError, MissingLibraryError
from .models import LibraryState

LOGGER = logging.getLogger(__name__)

DEFAULT_LIBRARY_FILENAME = "library.json"

T = TypeVar("T")


class JsonBackend:
    """Persist files and the tag hierarchy in a single JSON document.

    Blocking file access runs on worker threads; a lock serializes each
    read-modify-write cycle so concurrent removals cannot drop each other's
    changes.
    """

    def __init__(self, directory: Path, filename: str = DEFAULT_LIBRARY_FILENAME) -> None:
        """Initialize the backend.

        Args:
            directory: Directory holding the library document.
            filename: Name of the JSON document inside ``directory``.
        """
        self._directory = directory.expanduser()
        self._filename = filename
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        """Return the location of the library document."""
        return self._directory / self._filename

    # ------------------------------------------------------------------ #
    # Synchronous document access                                        #
    # ------------------------------------------------------------------ #

    def load(self) -> LibraryState:
        """Load the library document.

        Returns:
            LibraryState: Deserialized library.

        Raises:
            MissingLibraryError: If the document does not exist.
            LibraryError: If the document cannot be parsed.
        """
        path = self.path
        if not path.exists():
            raise MissingLibraryError(f"No library found at {path}")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise LibraryError(f"Invalid library data: {exc}") from exc
        try:
            return LibraryState.model_validate(data)
        except ValidationError as exc:
            raise LibraryError(f"Invalid library data: {exc}") from exc

    def save(self, state: LibraryState) -> None:
        """Write the library document, replacing the previous one atomically."""
        self.initialize()
        state.updated_at = datetime.now(timezone.utc)
        if state.created_at.tzinfo is None:
            state.created_at = state.created_at.replace(tzinfo=timezone.utc)
        payload = state.model_dump(mode="json")
        staging = self.path.with_suffix(self.path.suffix + ".tmp")
        staging.write_text(json.dumps(payload, indent=2, sort_keys=False), encoding="utf-8")
        os.replace(staging, self.path)

    def initialize(self) -> Path:
        """Create the library directory if needed.

        Returns:
            Path: Directory containing the library document.
        """
        self._directory.mkdir(parents=True, exist_ok=True)
        return self._directory

    def _load_or_new(self) -> LibraryState:
        try:
            return self.load()
        except MissingLibraryError:
            return LibraryState()

    def _update(self, mutate: Callable[[LibraryState], T]) -> T:
        with self._lock:
            state = self._load_or_new()
            result = mutate(state)
            self.save(state)
            return result

    def _read(self, select: Callable[[LibraryState], T]) -> T:
        with self._lock:
            return select(self._load_or_new())

    # ------------------------------------------------------------------ #
    # Backend contract                                                   #
    # ------------------------------------------------------------------ #

    async def create_file(self, file_id: str, path: str) -> FileRecord:
        record = FileRecord(id=file_id, path=path)

        def _create(state: LibraryState) -> FileRecord:
            state.files[file_id] = record
            return record

        return await self._call("create_file", self._update, _create)

    async def fetch_files(self) -> list[FileRecord]:
        return await self._call("fetch_files", self._read, lambda state: list(state.files.values()))

    async def search_files(self, tag_ids: Sequence[str]) -> list[FileRecord]:
        wanted = set(tag_ids)

        def _search(state: LibraryState) -> list[FileRecord]:
            return [
                record for record in state.files.values() if wanted.intersection(record.tag_ids)
            ]

        return await self._call("search_files", self._read, _search)

    async def save_file(self, record: FileRecord) -> None:
        def _save(state: LibraryState) -> None:
            state.files[record.id] = record.model_copy(deep=True)

        await self._call("save_file", self._update, _save)

    async def remove_file(self, record: FileRecord) -> None:
        def _remove(state: LibraryState) -> None:
            if state.files.pop(record.id, None) is None:
                LOGGER.debug("File %s was already removed", record.id)

        await self._call("remove_file", self._update, _remove)

    async def fetch_hierarchy(self) -> HierarchySnapshot | None:
        return await self._call("fetch_hierarchy", self._read, lambda state: state.hierarchy)

    async def save_hierarchy(self, snapshot: HierarchySnapshot) -> None:
        def _save(state: LibraryState) -> None:
            state.hierarchy = snapshot.model_copy(deep=True)

        await self._call("save_hierarchy", self._update, _save)

    async def _call(self, operation: str, runner: Callable[..., T], *args) -> T:
        try:
            return await asyncio.to_thread(runner, *args)
        except (LibraryError, OSError) as exc:
            raise BackendUnavailableError(f"{operation} failed for {self.path}: {exc}") from exc


__all__ = ["JsonBackend", "DEFAULT_LIBRARY_FILENAME"]
