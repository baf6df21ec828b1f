"""File list reconciliation against the backend and the filesystem."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Coroutine, Iterable, Optional, Sequence

from tagshelf.backend import Backend
from tagshelf.config.models import ReconcileSettings
from tagshelf.errors import BackendUnavailableError, StaleFileError
from tagshelf.models import FileRecord
from tagshelf.observable import ObservableList

from .client import ClientFile
from .fs import path_exists

if TYPE_CHECKING:
    from tagshelf.selection import Selection

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ReconcileResult:
    """Outcome of one reconciliation pass.

    Attributes:
        mode: Branch taken (``populate``, ``clear``, ``replace``, ``merge``, ``discarded``).
        kept: Ids present in the list after the pass, in order.
        stale: Records pruned because their path no longer exists.
    """

    mode: str
    kept: list[str] = field(default_factory=list)
    stale: list[StaleFileError] = field(default_factory=list)

    @property
    def discarded(self) -> bool:
        return self.mode == "discarded"


class FileStore:
    """Hold the reconciled file list.

    Read paths (``fetch_*``, ``reconcile``) log backend failures and leave the
    list unchanged. Write paths (``add_file``, ``remove_files_by_id``) raise
    ``BackendUnavailableError`` so callers can roll back.
    """

    def __init__(
        self,
        backend: Backend,
        *,
        selection: Optional["Selection"] = None,
        settings: ReconcileSettings | None = None,
    ) -> None:
        self._backend = backend
        self._selection = selection
        self._settings = settings or ReconcileSettings()
        self.file_list: ObservableList[ClientFile] = ObservableList()
        self._lock = asyncio.Lock()
        self._generation = 0
        self._background: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------ #
    # Read-only projection                                               #
    # ------------------------------------------------------------------ #

    @property
    def files(self) -> tuple[ClientFile, ...]:
        return self.file_list.snapshot()

    @property
    def generation(self) -> int:
        return self._generation

    def get(self, file_id: str) -> ClientFile | None:
        for client in self.file_list:
            if client.id == file_id:
                return client
        return None

    # ------------------------------------------------------------------ #
    # Read paths                                                         #
    # ------------------------------------------------------------------ #

    async def init(self) -> ReconcileResult | None:
        """Load every file from the backend and prune stale entries."""
        return await self.fetch_all_files()

    async def fetch_all_files(self) -> ReconcileResult | None:
        generation = self._next_generation()
        try:
            records = await self._backend.fetch_files()
        except Exception as exc:
            LOGGER.error("Could not load all files: %s", exc)
            return None
        return await self.reconcile(records, generation=generation)

    async def fetch_files_by_tag_ids(self, tag_ids: Sequence[str]) -> ReconcileResult | None:
        """Fetch files carrying any of ``tag_ids``; an empty list fetches everything."""
        if not tag_ids:
            return await self.fetch_all_files()
        generation = self._next_generation()
        try:
            records = await self._backend.search_files(list(tag_ids))
        except Exception as exc:
            LOGGER.error("Could not find files based on tag search %s: %s", list(tag_ids), exc)
            return None
        return await self.reconcile(records, generation=generation)

    async def reconcile(
        self,
        records: Sequence[FileRecord],
        *,
        generation: int | None = None,
    ) -> ReconcileResult:
        """Rebuild the file list from backend records whose paths still exist.

        Records with missing paths are removed from the backend in the
        background and their in-memory files are dropped. The surviving records
        then populate an empty list, clear the list when none survive, or
        replace the whole list.

        Args:
            records: Records reported by the backend.
            generation: Fetch generation the records belong to; the pass is
                discarded when a newer fetch has started.

        Returns:
            ReconcileResult: Summary of the pass.
        """
        async with self._lock:
            records = _unique_by_id(records)
            exists = await self._check_existence(records)
            if generation is not None and generation != self._generation:
                LOGGER.debug(
                    "Discarding stale fetch generation %s (current %s)",
                    generation,
                    self._generation,
                )
                return ReconcileResult(mode="discarded")

            result = ReconcileResult(mode="")
            existing: list[FileRecord] = []
            with self.file_list.changes.batch():
                for record, present in zip(records, exists):
                    if present:
                        existing.append(record)
                        continue
                    LOGGER.info("%s does not exist; removing file %s", record.path, record.id)
                    result.stale.append(StaleFileError(record.id, record.path))
                    self._spawn(self._remove_stale(record))
                    client = self.get(record.id)
                    if client is not None:
                        self._drop(client)

                if len(self.file_list) == 0:
                    result.mode = "populate"
                    self.file_list.extend(self._build(record) for record in existing)
                elif not existing:
                    result.mode = "clear"
                    self._clear()
                elif self._settings.preserve_identity:
                    result.mode = "merge"
                    self._merge(existing)
                else:
                    result.mode = "replace"
                    self._replace(existing)

            result.kept = [client.id for client in self.file_list]
            return result

    # ------------------------------------------------------------------ #
    # Write paths                                                        #
    # ------------------------------------------------------------------ #

    async def add_file(self, path: str | Path) -> ClientFile:
        """Persist a new file and append it to the list.

        Raises:
            BackendUnavailableError: If the backend rejects the file; the list
                is left unchanged.
        """
        client = ClientFile.new(path, on_change=self._autosave)
        try:
            await self._backend.create_file(client.id, client.path)
        except Exception as exc:
            client.dispose()
            if isinstance(exc, BackendUnavailableError):
                raise
            raise BackendUnavailableError(f"Could not create file {client.path}: {exc}") from exc
        async with self._lock:
            self.file_list.append(client)
        return client

    async def remove_files_by_id(self, file_ids: Iterable[str]) -> list[str]:
        """Remove files one at a time, in the given order.

        Each file is deselected, disposed, and dropped from the list before its
        backend removal is awaited; the next id is not touched until that call
        returns. Unknown ids are skipped.

        Returns:
            list[str]: Ids that were removed.

        Raises:
            BackendUnavailableError: If a backend removal fails; later ids are
                not processed.
        """
        ids = list(file_ids)
        removed: list[str] = []
        async with self._lock:
            targets = [self.get(file_id) for file_id in ids]
            for file_id, client in zip(ids, targets):
                if client is None:
                    LOGGER.warning("Could not find file to remove: %s", file_id)
                    continue
                if client.disposed:
                    continue
                record = client.to_record()
                self._drop(client)
                try:
                    await self._backend.remove_file(record)
                except BackendUnavailableError:
                    raise
                except Exception as exc:
                    raise BackendUnavailableError(
                        f"Could not remove file {file_id}: {exc}"
                    ) from exc
                removed.append(file_id)
        return removed

    # ------------------------------------------------------------------ #
    # Lifecycle                                                          #
    # ------------------------------------------------------------------ #

    async def drain(self) -> None:
        """Wait for background backend calls started by this store."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def dispose(self) -> None:
        """Dispose every file and release all list subscriptions."""
        await self.drain()
        async with self._lock:
            self._clear()
            self.file_list.changes.dispose()

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    async def _check_existence(self, records: Sequence[FileRecord]) -> list[bool]:
        limit = asyncio.Semaphore(self._settings.max_concurrent_checks)

        async def _check(record: FileRecord) -> bool:
            async with limit:
                return await path_exists(record.path)

        return list(await asyncio.gather(*(_check(record) for record in records)))

    def _build(self, record: FileRecord) -> ClientFile:
        return ClientFile(record, on_change=self._autosave)

    def _drop(self, client: ClientFile) -> None:
        if self._selection is not None:
            self._selection.deselect_file(client.id)
        client.dispose()
        self.file_list.remove(client)

    def _clear(self) -> None:
        for client in self.file_list:
            client.dispose()
        self.file_list.clear()

    def _replace(self, records: Sequence[FileRecord]) -> None:
        for client in self.file_list:
            client.dispose()
        self.file_list.replace(self._build(record) for record in records)

    def _merge(self, records: Sequence[FileRecord]) -> None:
        current = {client.id: client for client in self.file_list}
        rebuilt: list[ClientFile] = []
        for record in records:
            client = current.pop(record.id, None)
            if client is None:
                client = self._build(record)
            else:
                client.update_from_record(record)
            rebuilt.append(client)
        for leftover in current.values():
            leftover.dispose()
        self.file_list.replace(rebuilt)

    def _autosave(self, client: ClientFile) -> None:
        self._spawn(self._save(client.to_record()))

    def _spawn(self, coroutine: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coroutine)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _remove_stale(self, record: FileRecord) -> None:
        try:
            await self._backend.remove_file(record)
        except Exception as exc:
            LOGGER.warning("Could not remove stale file %s from the backend: %s", record.id, exc)

    async def _save(self, record: FileRecord) -> None:
        try:
            await self._backend.save_file(record)
        except Exception as exc:
            LOGGER.warning("Could not save file %s: %s", record.id, exc)


def _unique_by_id(records: Sequence[FileRecord]) -> list[FileRecord]:
    seen: set[str] = set()
    unique: list[FileRecord] = []
    for record in records:
        if record.id in seen:
            LOGGER.warning("Ignoring duplicate record for file %s", record.id)
            continue
        seen.add(record.id)
        unique.append(record)
    return unique


__all__ = ["FileStore", "ReconcileResult"]
