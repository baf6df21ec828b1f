"""Tag hierarchy: collection tree and expand state."""

from .expand import DEFAULT_EXPANDED, ExpandState, set_expanded_recursively
from .tree import DEFAULT_ROOT_NAME, RemovedSubtree, TagCollectionTree

__all__ = [
    "TagCollectionTree",
    "RemovedSubtree",
    "DEFAULT_ROOT_NAME",
    "ExpandState",
    "set_expanded_recursively",
    "DEFAULT_EXPANDED",
]
