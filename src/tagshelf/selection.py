"""Tag and file selection, and the aggregation of collection clicks into tag sets."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Protocol, Sequence

from .errors import NotFoundError
from .hierarchy import TagCollectionTree
from .observable import Change, Notifier, ObservableList

if TYPE_CHECKING:
    from .files.store import ReconcileResult

LOGGER = logging.getLogger(__name__)


class FileFetcher(Protocol):
    async def fetch_files_by_tag_ids(self, tag_ids: Sequence[str]) -> "ReconcileResult | None": ...


class Selection:
    """Active tag filter and the set of selected files."""

    def __init__(self) -> None:
        self.tags: ObservableList[str] = ObservableList()
        self._files: set[str] = set()
        self.file_changes = Notifier()

    def tag_ids(self) -> list[str]:
        return list(self.tags)

    def is_tag_selected(self, tag_id: str) -> bool:
        return tag_id in self.tags

    def select_tag(self, tag_id: str) -> bool:
        if tag_id in self.tags:
            return False
        self.tags.append(tag_id)
        return True

    def deselect_tag(self, tag_id: str) -> bool:
        return self.tags.remove(tag_id)

    def select_tags(self, tag_ids: Iterable[str]) -> list[str]:
        """Add every id not already selected, in order; returns the added ids."""
        added = []
        with self.tags.changes.batch():
            for tag_id in tag_ids:
                if self.select_tag(tag_id):
                    added.append(tag_id)
        return added

    def deselect_tags(self, tag_ids: Iterable[str]) -> list[str]:
        removed = []
        with self.tags.changes.batch():
            for tag_id in tag_ids:
                if self.deselect_tag(tag_id):
                    removed.append(tag_id)
        return removed

    def clear_tags(self) -> None:
        self.tags.clear()

    @property
    def file_ids(self) -> frozenset[str]:
        return frozenset(self._files)

    def is_file_selected(self, file_id: str) -> bool:
        return file_id in self._files

    def select_file(self, file_id: str) -> None:
        if file_id not in self._files:
            self._files.add(file_id)
            self.file_changes.publish(Change("add", (file_id,)))

    def deselect_file(self, file_id: str) -> None:
        if file_id in self._files:
            self._files.discard(file_id)
            self.file_changes.publish(Change("remove", (file_id,)))

    def clear_files(self) -> None:
        if self._files:
            removed = tuple(self._files)
            self._files.clear()
            self.file_changes.publish(Change("clear", removed))

    def dispose(self) -> None:
        self.tags.changes.dispose()
        self.file_changes.dispose()


class SelectionAggregator:
    """Translate tag and collection clicks into selection changes and file fetches.

    Every toggle refreshes the file list for the resulting selection: an empty
    selection fetches all files, otherwise files carrying any selected tag.
    """

    def __init__(
        self,
        tree: TagCollectionTree,
        selection: Selection,
        files: FileFetcher,
    ) -> None:
        self._tree = tree
        self._selection = selection
        self._files = files

    def is_collection_selected(self, collection_id: str) -> bool:
        """Return whether every tag under the collection is selected.

        A collection without any descendant tags is never selected.
        """
        tag_ids = self._tree.descendant_tag_ids(collection_id)
        return bool(tag_ids) and all(self._selection.is_tag_selected(tag_id) for tag_id in tag_ids)

    async def toggle_tag(self, tag_id: str) -> list[str]:
        """Flip a tag in the selection and refresh the file list.

        Returns:
            list[str]: Selection after the toggle.

        Raises:
            NotFoundError: If the tag is not part of the hierarchy.
        """
        if not self._tree.has_tag(tag_id):
            raise NotFoundError(f"Unknown tag: {tag_id}")
        if self._selection.is_tag_selected(tag_id):
            self._selection.deselect_tag(tag_id)
        else:
            self._selection.select_tag(tag_id)
        return await self._refresh()

    async def toggle_collection(self, collection_id: str) -> list[str]:
        """Select or deselect every tag under a collection and refresh the file list.

        Args:
            collection_id: Collection that was clicked.

        Returns:
            list[str]: Selection after the toggle.
        """
        tag_ids = self._tree.descendant_tag_ids(collection_id)
        if self.is_collection_selected(collection_id):
            self._selection.deselect_tags(tag_ids)
        else:
            self._selection.select_tags(tag_ids)
        return await self._refresh()

    async def clear(self) -> list[str]:
        """Drop the whole tag filter and show every file."""
        self._selection.clear_tags()
        return await self._refresh()

    async def _refresh(self) -> list[str]:
        current = self._selection.tag_ids()
        LOGGER.debug("Refreshing files for selection %s", current)
        await self._files.fetch_files_by_tag_ids(current)
        return current


__all__ = ["Selection", "SelectionAggregator", "FileFetcher"]
