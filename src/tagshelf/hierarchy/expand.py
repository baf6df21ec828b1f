"""Ephemeral expand/collapse state for the collection hierarchy."""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping

from tagshelf.ids import ROOT_COLLECTION_ID, SYSTEM_TAGS_ID
from tagshelf.observable import Change, Notifier

from .tree import TagCollectionTree

DEFAULT_EXPANDED = (ROOT_COLLECTION_ID, SYSTEM_TAGS_ID)


def set_expanded_recursively(
    tree: TagCollectionTree,
    collection_id: str,
    value: bool,
    state: Mapping[str, bool],
) -> dict[str, bool]:
    """Return a new mapping with ``collection_id`` and its descendants set to ``value``.

    Sub-collections are written before their parent so the collection's own
    entry is always the last one written.

    Args:
        tree: Hierarchy to traverse.
        collection_id: Collection whose subtree should change.
        value: Expanded flag to apply.
        state: Current mapping; left untouched.

    Returns:
        dict[str, bool]: Updated copy of ``state``.
    """
    updated = dict(state)

    def _visit(current: str) -> None:
        for child_id in tree.get_collection(current).sub_collection_ids:
            _visit(child_id)
        updated[current] = value

    _visit(collection_id)
    return updated


class ExpandState:
    """Track which collections are expanded.

    Every update swaps in a new mapping, so observers comparing ``mapping`` by
    identity see each change.
    """

    def __init__(self, expanded: Iterable[str] = DEFAULT_EXPANDED) -> None:
        self._state: dict[str, bool] = {collection_id: True for collection_id in expanded}
        self.changes = Notifier()

    @property
    def mapping(self) -> Mapping[str, bool]:
        """Read-only view of the current mapping."""
        return MappingProxyType(self._state)

    def is_expanded(self, collection_id: str) -> bool:
        return self._state.get(collection_id, False)

    def set_expanded(self, collection_id: str, value: bool) -> None:
        self._apply({**self._state, collection_id: value}, (collection_id,))

    def toggle(self, collection_id: str) -> bool:
        value = not self.is_expanded(collection_id)
        self.set_expanded(collection_id, value)
        return value

    def set_expanded_recursive(
        self, tree: TagCollectionTree, collection_id: str, value: bool
    ) -> None:
        """Expand or collapse a collection together with all of its descendants."""
        updated = set_expanded_recursively(tree, collection_id, value, self._state)
        self._apply(updated, (collection_id,))

    def evict(self, known_ids: Iterable[str]) -> list[str]:
        """Drop entries whose ids are not in ``known_ids``.

        Returns:
            list[str]: Evicted ids.
        """
        keep = set(known_ids)
        evicted = [collection_id for collection_id in self._state if collection_id not in keep]
        if evicted:
            remaining = {key: value for key, value in self._state.items() if key in keep}
            self._apply(remaining, tuple(evicted))
        return evicted

    def _apply(self, updated: dict[str, bool], ids: tuple[str, ...]) -> None:
        self._state = updated
        self.changes.publish(Change("update", ids))


__all__ = ["ExpandState", "set_expanded_recursively", "DEFAULT_EXPANDED"]
