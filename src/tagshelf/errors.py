"""Error taxonomy shared by the tree, selection, and file layers."""


class TagShelfError(Exception):
    """Base exception for tagshelf operations."""


class NotFoundError(TagShelfError):
    """Raised when a tag, collection, or file id does not resolve."""


class InvalidOperationError(TagShelfError):
    """Raised when an action is structurally disallowed."""


class CycleDetectedError(InvalidOperationError):
    """Raised when reparenting would make a collection its own ancestor."""


class BackendUnavailableError(TagShelfError):
    """Raised when a backend call fails."""


class StaleFileError(TagShelfError):
    """Describes a file record whose path no longer exists.

    Reconciliation collects these instead of raising them; the stale record is
    pruned from the backend and the in-memory list.
    """

    def __init__(self, file_id: str, path: str) -> None:
        super().__init__(f"{path} does not exist (file {file_id})")
        self.file_id = file_id
        self.path = path


__all__ = [
    "TagShelfError",
    "NotFoundError",
    "InvalidOperationError",
    "CycleDetectedError",
    "BackendUnavailableError",
    "StaleFileError",
]
