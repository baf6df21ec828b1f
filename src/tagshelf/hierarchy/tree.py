"""Tag collection tree with explicit parent indexes.

Collections and tags live in arenas keyed by id. Two parent-pointer indexes
(child collection -> parent, tag -> owning collection) are updated together with
every membership list, so parent lookups never scan the tree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator

from tagshelf.errors import CycleDetectedError, InvalidOperationError, NotFoundError
from tagshelf.ids import ROOT_COLLECTION_ID
from tagshelf.models import HierarchySnapshot, Tag, TagCollection
from tagshelf.observable import Change, Notifier

LOGGER = logging.getLogger(__name__)

DEFAULT_ROOT_NAME = "Hierarchy"


@dataclass(frozen=True, slots=True)
class RemovedSubtree:
    """Ids evicted by ``TagCollectionTree.remove_collection``.

    Attributes:
        collection_ids: Removed collection and its descendants, in pre-order.
        tag_ids: Tags that belonged to the removed collections, in pre-order.
    """

    collection_ids: tuple[str, ...]
    tag_ids: tuple[str, ...]


class TagCollectionTree:
    """Own the parent/child structure of collections and tag membership."""

    def __init__(self, root_name: str = DEFAULT_ROOT_NAME) -> None:
        self._root_id = ROOT_COLLECTION_ID
        self._collections: dict[str, TagCollection] = {
            self._root_id: TagCollection(id=self._root_id, name=root_name)
        }
        self._tags: dict[str, Tag] = {}
        self._collection_parent: dict[str, str] = {}
        self._tag_parent: dict[str, str] = {}
        self.changes = Notifier()

    @classmethod
    def from_snapshot(
        cls,
        snapshot: HierarchySnapshot,
        *,
        root_name: str = DEFAULT_ROOT_NAME,
    ) -> "TagCollectionTree":
        """Build a tree from persisted records, validating the tree invariant.

        Dangling member ids are dropped and tags that belong to no collection are
        attached to the root. Shared membership and collections unreachable from
        the root are rejected.

        Args:
            snapshot: Persisted hierarchy.
            root_name: Name used when the snapshot carries no root record.

        Returns:
            TagCollectionTree: Tree populated from the snapshot.

        Raises:
            InvalidOperationError: If an id is a member of two collections or a
                collection cannot be reached from the root.
        """
        tree = cls(root_name=root_name)
        tree._tags = {tag.id: tag.model_copy(deep=True) for tag in snapshot.tags}
        records = {record.id: record.model_copy(deep=True) for record in snapshot.collections}
        if snapshot.root_id in records:
            root = records.pop(snapshot.root_id)
            root.id = tree._root_id
        else:
            root = tree._collections[tree._root_id]
        records = {tree._root_id: root, **records}
        tree._collections = records

        for collection in records.values():
            kept_tags = []
            for tag_id in collection.tag_ids:
                if tag_id not in tree._tags:
                    LOGGER.warning(
                        "Dropping unknown tag %s from collection %s", tag_id, collection.id
                    )
                    continue
                if tag_id in tree._tag_parent:
                    raise InvalidOperationError(
                        f"Tag {tag_id} is a member of both "
                        f"{tree._tag_parent[tag_id]} and {collection.id}."
                    )
                tree._tag_parent[tag_id] = collection.id
                kept_tags.append(tag_id)
            collection.tag_ids = kept_tags

            kept_children = []
            for child_id in collection.sub_collection_ids:
                if child_id not in records or child_id == tree._root_id:
                    LOGGER.warning(
                        "Dropping invalid sub-collection %s from collection %s",
                        child_id,
                        collection.id,
                    )
                    continue
                if child_id in tree._collection_parent:
                    raise InvalidOperationError(
                        f"Collection {child_id} has two parents: "
                        f"{tree._collection_parent[child_id]} and {collection.id}."
                    )
                tree._collection_parent[child_id] = collection.id
                kept_children.append(child_id)
            collection.sub_collection_ids = kept_children

        reachable = set(tree._walk_collections(tree._root_id))
        unreachable = sorted(set(records) - reachable)
        if unreachable:
            raise InvalidOperationError(
                f"Collections not reachable from the root: {', '.join(unreachable)}."
            )

        for tag_id in tree._tags:
            if tag_id not in tree._tag_parent:
                LOGGER.info("Attaching orphaned tag %s to the root collection", tag_id)
                root.tag_ids.append(tag_id)
                tree._tag_parent[tag_id] = tree._root_id
        return tree

    # ------------------------------------------------------------------ #
    # Read-only projection                                               #
    # ------------------------------------------------------------------ #

    @property
    def root_id(self) -> str:
        return self._root_id

    def root(self) -> TagCollection:
        return self.get_collection(self._root_id)

    def has_collection(self, collection_id: str) -> bool:
        return collection_id in self._collections

    def has_tag(self, tag_id: str) -> bool:
        return tag_id in self._tags

    def get_collection(self, collection_id: str) -> TagCollection:
        """Return a copy of the collection record.

        Raises:
            NotFoundError: If the id does not resolve.
        """
        return self._collection(collection_id).model_copy(deep=True)

    def get_tag(self, tag_id: str) -> Tag:
        """Return a copy of the tag record.

        Raises:
            NotFoundError: If the id does not resolve.
        """
        return self._tag(tag_id).model_copy(deep=True)

    def collections(self) -> Iterator[TagCollection]:
        """Yield copies of every collection in pre-order from the root."""
        for collection_id in self._walk_collections(self._root_id):
            yield self._collections[collection_id].model_copy(deep=True)

    def tags(self) -> Iterator[Tag]:
        """Yield copies of every tag in hierarchy order."""
        for tag_id in self.descendant_tag_ids(self._root_id):
            yield self._tags[tag_id].model_copy(deep=True)

    def parent_of(self, collection_id: str) -> str | None:
        """Return the parent id of a collection, or None for the root."""
        self._collection(collection_id)
        return self._collection_parent.get(collection_id)

    def collection_of_tag(self, tag_id: str) -> str:
        """Return the id of the collection owning ``tag_id``."""
        self._tag(tag_id)
        try:
            return self._tag_parent[tag_id]
        except KeyError as exc:
            raise NotFoundError(f"Tag {tag_id} is not a member of any collection.") from exc

    def ancestors(self, collection_id: str) -> list[str]:
        """Return the ancestor ids of a collection, nearest first."""
        self._collection(collection_id)
        result: list[str] = []
        current = self._collection_parent.get(collection_id)
        while current is not None:
            result.append(current)
            current = self._collection_parent.get(current)
        return result

    def descendant_tag_ids(self, collection_id: str) -> list[str]:
        """Return every tag under a collection in pre-order.

        The collection's own tags come first, followed by the tags of each
        sub-collection in listed order.

        Args:
            collection_id: Collection to expand.

        Returns:
            list[str]: Transitive tag ids without duplicates.
        """
        self._collection(collection_id)
        seen: set[str] = set()
        result: list[str] = []
        for current in self._walk_collections(collection_id):
            for tag_id in self._collections[current].tag_ids:
                if tag_id not in seen:
                    seen.add(tag_id)
                    result.append(tag_id)
        return result

    def descendant_collection_ids(self, collection_id: str) -> list[str]:
        """Return descendant collection ids in pre-order, excluding the collection itself."""
        self._collection(collection_id)
        return list(self._walk_collections(collection_id))[1:]

    def snapshot(self) -> HierarchySnapshot:
        """Return the persisted form of the tree."""
        return HierarchySnapshot(
            root_id=self._root_id,
            tags=list(self.tags()),
            collections=list(self.collections()),
        )

    # ------------------------------------------------------------------ #
    # Mutation                                                           #
    # ------------------------------------------------------------------ #

    def add_collection(self, name: str, parent_id: str) -> TagCollection:
        """Create a collection and append it to ``parent_id``.

        Raises:
            NotFoundError: If the parent does not exist.
        """
        parent = self._collection(parent_id)
        collection = TagCollection(name=name)
        self._collections[collection.id] = collection
        parent.sub_collection_ids.append(collection.id)
        self._collection_parent[collection.id] = parent_id
        self.changes.publish(Change("add", (collection.id,), {"parent": parent_id}))
        return collection.model_copy(deep=True)

    def remove_collection(self, collection_id: str) -> RemovedSubtree:
        """Detach a collection and evict its subtree from the tree.

        Persisted tags of the removed subtree are left to the caller.

        Raises:
            InvalidOperationError: If ``collection_id`` is the root.
            NotFoundError: If the collection does not exist.
        """
        if collection_id == self._root_id:
            raise InvalidOperationError("The root collection cannot be removed.")
        self._collection(collection_id)
        removed_collections = tuple(self._walk_collections(collection_id))
        removed_tags = tuple(self.descendant_tag_ids(collection_id))

        parent_id = self._collection_parent.pop(collection_id)
        self._collections[parent_id].sub_collection_ids.remove(collection_id)
        for removed_id in removed_collections:
            del self._collections[removed_id]
            self._collection_parent.pop(removed_id, None)
        for tag_id in removed_tags:
            del self._tags[tag_id]
            self._tag_parent.pop(tag_id, None)

        self.changes.publish(
            Change("remove", removed_collections, {"parent": parent_id, "tags": removed_tags})
        )
        return RemovedSubtree(collection_ids=removed_collections, tag_ids=removed_tags)

    def move_collection(self, collection_id: str, new_parent_id: str) -> None:
        """Reparent a collection, appending it to the new parent's children.

        Moving a collection to its current parent moves it to the end of the list.

        Raises:
            InvalidOperationError: If ``collection_id`` is the root.
            NotFoundError: If either id does not resolve or the collection has no parent.
            CycleDetectedError: If the new parent is the collection or one of its descendants.
        """
        if collection_id == self._root_id:
            raise InvalidOperationError("The root collection cannot be moved.")
        self._collection(collection_id)
        new_parent = self._collection(new_parent_id)
        old_parent_id = self._collection_parent.get(collection_id)
        if old_parent_id is None:
            raise NotFoundError(f"Collection {collection_id} has no parent to move it from.")
        if new_parent_id == collection_id or collection_id in self.ancestors(new_parent_id):
            raise CycleDetectedError(
                f"Cannot move collection {collection_id} into its own subtree ({new_parent_id})."
            )

        self._collections[old_parent_id].sub_collection_ids.remove(collection_id)
        new_parent.sub_collection_ids.append(collection_id)
        self._collection_parent[collection_id] = new_parent_id
        self.changes.publish(
            Change("move", (collection_id,), {"from": old_parent_id, "to": new_parent_id})
        )

    def add_tag(self, name: str, parent_id: str | None = None) -> Tag:
        """Create a tag and append it to a collection (the root by default).

        Raises:
            NotFoundError: If the collection does not exist.
        """
        target_id = parent_id or self._root_id
        parent = self._collection(target_id)
        tag = Tag(name=name)
        self._tags[tag.id] = tag
        parent.tag_ids.append(tag.id)
        self._tag_parent[tag.id] = target_id
        self.changes.publish(Change("add", (tag.id,), {"parent": target_id, "tag": True}))
        return tag.model_copy(deep=True)

    def remove_tag(self, tag_id: str) -> Tag:
        """Remove a tag from its collection and from the tree."""
        tag = self._tag(tag_id)
        parent_id = self._tag_parent.pop(tag_id, None)
        if parent_id is not None:
            self._collections[parent_id].tag_ids.remove(tag_id)
        del self._tags[tag_id]
        self.changes.publish(Change("remove", (tag_id,), {"parent": parent_id, "tag": True}))
        return tag.model_copy(deep=True)

    def move_tag(self, tag_id: str, new_parent_id: str, index: int | None = None) -> int:
        """Move a tag into ``new_parent_id`` at ``index``.

        The tag is detached first and then inserted, so afterwards
        ``new_parent.tag_ids[index] == tag_id`` for any index within bounds.
        Out-of-range indexes are clamped and ``None`` appends.

        Returns:
            int: Final position of the tag within the new parent.

        Raises:
            NotFoundError: If the tag, the collection, or the tag's current owner is unknown.
        """
        self._tag(tag_id)
        new_parent = self._collection(new_parent_id)
        old_parent_id = self._tag_parent.get(tag_id)
        if old_parent_id is None:
            raise NotFoundError(f"Tag {tag_id} is not a member of any collection.")

        self._collections[old_parent_id].tag_ids.remove(tag_id)
        if index is None:
            position = len(new_parent.tag_ids)
        else:
            position = max(0, min(index, len(new_parent.tag_ids)))
        new_parent.tag_ids.insert(position, tag_id)
        self._tag_parent[tag_id] = new_parent_id
        self.changes.publish(
            Change(
                "move",
                (tag_id,),
                {"from": old_parent_id, "to": new_parent_id, "index": position, "tag": True},
            )
        )
        return position

    def drop_tag_on(self, tag_id: str, target_tag_id: str) -> int:
        """Move ``tag_id`` to the position ``target_tag_id`` occupies when dropped on it."""
        target_parent_id = self.collection_of_tag(target_tag_id)
        index = self._collections[target_parent_id].tag_ids.index(target_tag_id)
        return self.move_tag(tag_id, target_parent_id, index)

    def rename_tag(self, tag_id: str, name: str) -> None:
        self._tag(tag_id).name = name
        self.changes.publish(Change("update", (tag_id,), {"name": name, "tag": True}))

    def rename_collection(self, collection_id: str, name: str) -> None:
        self._collection(collection_id).name = name
        self.changes.publish(Change("update", (collection_id,), {"name": name}))

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _collection(self, collection_id: str) -> TagCollection:
        try:
            return self._collections[collection_id]
        except KeyError as exc:
            raise NotFoundError(f"Unknown collection: {collection_id}") from exc

    def _tag(self, tag_id: str) -> Tag:
        try:
            return self._tags[tag_id]
        except KeyError as exc:
            raise NotFoundError(f"Unknown tag: {tag_id}") from exc

    def _walk_collections(self, collection_id: str) -> Iterator[str]:
        """Yield ``collection_id`` and its descendants in pre-order."""
        stack = [collection_id]
        while stack:
            current = stack.pop()
            yield current
            children = self._collections[current].sub_collection_ids
            stack.extend(reversed(children))


__all__ = ["TagCollectionTree", "RemovedSubtree", "DEFAULT_ROOT_NAME"]
