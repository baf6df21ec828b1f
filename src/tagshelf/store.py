"""Process-scoped root store wiring the hierarchy, selection, and file list."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Coroutine, Sequence

from .backend import Backend, JsonBackend
from .config import TagShelfConfig
from .errors import NotFoundError
from .files import ClientFile, FileStore
from .hierarchy import ExpandState, RemovedSubtree, TagCollectionTree
from .models import HierarchySnapshot, Tag, TagCollection
from .observable import Change, Subscription
from .selection import Selection, SelectionAggregator

LOGGER = logging.getLogger(__name__)


class RootStore:
    """Own every piece of client state for one session.

    Construct it at startup, ``await init()``, and ``await dispose()`` at
    shutdown. Views read ``tree``, ``expand``, ``selection`` and ``files``;
    mutations go through the methods below.

    Hierarchy operations that reference an unknown id are logged and ignored
    (they return ``None``). Structural violations such as removing the root or
    creating a cycle raise.
    """

    def __init__(self, config: TagShelfConfig, backend: Backend) -> None:
        self.config = config
        self.backend = backend
        self.tree = TagCollectionTree(root_name=config.hierarchy.root_name)
        self.expand = ExpandState(config.hierarchy.default_expanded)
        self.selection = Selection()
        self.files = FileStore(backend, selection=self.selection, settings=config.reconcile)
        self.aggregator = SelectionAggregator(self.tree, self.selection, self.files)
        self._tree_subscription: Subscription | None = None
        self._background: set[asyncio.Task[None]] = set()
        self._pending_snapshot: HierarchySnapshot | None = None
        self._saving = False

    @classmethod
    def from_config(cls, config: TagShelfConfig) -> "RootStore":
        """Build a store backed by the JSON library configured in ``config.library``."""
        backend = JsonBackend(Path(config.library.location), config.library.filename)
        return cls(config, backend)

    async def init(self, *, load_files: bool = True) -> None:
        """Load the hierarchy and, optionally, the file list from the backend."""
        try:
            snapshot = await self.backend.fetch_hierarchy()
        except Exception as exc:
            LOGGER.error("Could not load the tag hierarchy: %s", exc)
            snapshot = None
        if snapshot is not None:
            self._replace_tree(
                TagCollectionTree.from_snapshot(snapshot, root_name=self.config.hierarchy.root_name)
            )
        self._tree_subscription = self.tree.changes.subscribe(self._persist_hierarchy)
        if load_files:
            await self.files.init()

    async def dispose(self) -> None:
        """Unsubscribe every observer and wait for pending backend writes."""
        if self._tree_subscription is not None:
            self._tree_subscription.dispose()
            self._tree_subscription = None
        await self.drain()
        await self.files.dispose()
        self.selection.dispose()
        self.tree.changes.dispose()
        self.expand.changes.dispose()

    async def drain(self) -> None:
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self.files.drain()

    # ------------------------------------------------------------------ #
    # Hierarchy                                                          #
    # ------------------------------------------------------------------ #

    def add_collection(
        self, name: str | None = None, parent_id: str | None = None
    ) -> TagCollection | None:
        """Create a collection and expand it immediately."""
        try:
            collection = self.tree.add_collection(
                name or self.config.hierarchy.new_collection_name, parent_id or self.tree.root_id
            )
        except NotFoundError as exc:
            LOGGER.warning("Could not add collection: %s", exc)
            return None
        self.expand.set_expanded(collection.id, True)
        return collection

    def remove_collection(self, collection_id: str) -> RemovedSubtree | None:
        """Remove a collection subtree and drop its tags from loaded files and the selection.

        When the selection changes, the file list is re-fetched in the background.
        """
        try:
            removed = self.tree.remove_collection(collection_id)
        except NotFoundError as exc:
            LOGGER.warning("Could not remove collection: %s", exc)
            return None
        self._strip_tags_from_files(removed.tag_ids)
        if self.selection.deselect_tags(removed.tag_ids):
            self._spawn(self._refresh_files())
        known = [collection.id for collection in self.tree.collections()]
        self.expand.evict(known + list(self.config.hierarchy.default_expanded))
        return removed

    def move_collection(self, collection_id: str, new_parent_id: str) -> bool:
        try:
            self.tree.move_collection(collection_id, new_parent_id)
        except NotFoundError as exc:
            LOGGER.warning("Could not move collection: %s", exc)
            return False
        return True

    def rename_collection(self, collection_id: str, name: str) -> bool:
        try:
            self.tree.rename_collection(collection_id, name)
        except NotFoundError as exc:
            LOGGER.warning("Could not rename collection: %s", exc)
            return False
        return True

    def add_tag(self, name: str | None = None, parent_id: str | None = None) -> Tag | None:
        try:
            return self.tree.add_tag(name or self.config.hierarchy.new_tag_name, parent_id)
        except NotFoundError as exc:
            LOGGER.warning("Could not create tag: %s", exc)
            return None

    def remove_tag(self, tag_id: str) -> Tag | None:
        try:
            tag = self.tree.remove_tag(tag_id)
        except NotFoundError as exc:
            LOGGER.warning("Could not remove tag: %s", exc)
            return None
        self._strip_tags_from_files((tag_id,))
        if self.selection.deselect_tag(tag_id):
            self._spawn(self._refresh_files())
        return tag

    def move_tag(self, tag_id: str, new_parent_id: str, index: int | None = None) -> int | None:
        try:
            return self.tree.move_tag(tag_id, new_parent_id, index)
        except NotFoundError as exc:
            LOGGER.error("Could not move tag: %s", exc)
            return None

    def rename_tag(self, tag_id: str, name: str) -> bool:
        try:
            self.tree.rename_tag(tag_id, name)
        except NotFoundError as exc:
            LOGGER.warning("Could not rename tag: %s", exc)
            return False
        return True

    def expand_all(self, collection_id: str | None = None) -> None:
        self.expand.set_expanded_recursive(self.tree, collection_id or self.tree.root_id, True)

    def collapse_all(self, collection_id: str | None = None) -> None:
        self.expand.set_expanded_recursive(self.tree, collection_id or self.tree.root_id, False)

    # ------------------------------------------------------------------ #
    # Selection and files                                                #
    # ------------------------------------------------------------------ #

    async def toggle_tag(self, tag_id: str) -> list[str] | None:
        try:
            return await self.aggregator.toggle_tag(tag_id)
        except NotFoundError as exc:
            LOGGER.warning("Could not select tag: %s", exc)
            return None

    async def toggle_collection(self, collection_id: str) -> list[str] | None:
        try:
            return await self.aggregator.toggle_collection(collection_id)
        except NotFoundError as exc:
            LOGGER.warning("Could not select collection: %s", exc)
            return None

    async def clear_selection(self) -> list[str]:
        return await self.aggregator.clear()

    async def add_file(self, path: str | Path) -> ClientFile:
        return await self.files.add_file(path)

    async def remove_files(self, file_ids: Sequence[str]) -> list[str]:
        return await self.files.remove_files_by_id(file_ids)

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _replace_tree(self, tree: TagCollectionTree) -> None:
        self.tree.changes.dispose()
        self.tree = tree
        self.aggregator = SelectionAggregator(self.tree, self.selection, self.files)

    def _strip_tags_from_files(self, tag_ids: Sequence[str]) -> None:
        for client in self.files.files:
            for tag_id in tag_ids:
                client.remove_tag(tag_id)

    async def _refresh_files(self) -> None:
        await self.files.fetch_files_by_tag_ids(self.selection.tag_ids())

    def _persist_hierarchy(self, changes: Sequence[Change]) -> None:
        self._pending_snapshot = self.tree.snapshot()
        if not self._saving:
            self._saving = True
            self._spawn(self._flush_hierarchy())

    async def _flush_hierarchy(self) -> None:
        try:
            while self._pending_snapshot is not None:
                snapshot, self._pending_snapshot = self._pending_snapshot, None
                try:
                    await self.backend.save_hierarchy(snapshot)
                except Exception as exc:
                    LOGGER.error("Could not save the tag hierarchy: %s", exc)
        finally:
            self._saving = False

    def _spawn(self, coroutine: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coroutine)
        self._background.add(task)
        task.add_done_callback(self._background.discard)


@asynccontextmanager
async def open_store(
    config: TagShelfConfig, backend: Backend | None = None
) -> AsyncIterator[RootStore]:
    """Yield an initialized store and dispose it on exit."""
    store = RootStore(config, backend) if backend is not None else RootStore.from_config(config)
    await store.init()
    try:
        yield store
    finally:
        await store.dispose()


__all__ = ["RootStore", "open_store"]
