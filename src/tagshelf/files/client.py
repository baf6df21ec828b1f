"""In-memory file objects held by the file store."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Sequence

from tagshelf.models import FileRecord
from tagshelf.observable import Change, ObservableList, Subscription

ChangeHandler = Callable[["ClientFile"], None]


class ClientFile:
    """Live view of a file record.

    Edits to ``tag_ids`` are reported to ``on_change`` so the owner can persist
    them. ``dispose`` releases that subscription; a disposed file never reports
    again.
    """

    def __init__(self, record: FileRecord, *, on_change: Optional[ChangeHandler] = None) -> None:
        self.id = record.id
        self.path = record.path
        self.date_added: datetime = record.date_added
        self.tag_ids: ObservableList[str] = ObservableList(record.tag_ids)
        self.disposed = False
        self._on_change = on_change
        self._syncing = False
        self._subscription: Optional[Subscription] = None
        if on_change is not None:
            self._subscription = self.tag_ids.changes.subscribe(self._handle_change)

    @classmethod
    def new(cls, path: str | Path, *, on_change: Optional[ChangeHandler] = None) -> "ClientFile":
        """Create a file object for a path that has not been persisted yet."""
        return cls(FileRecord(path=str(path)), on_change=on_change)

    def __repr__(self) -> str:
        return f"ClientFile(id={self.id!r}, path={self.path!r})"

    @property
    def name(self) -> str:
        return Path(self.path).name

    def add_tag(self, tag_id: str) -> bool:
        if tag_id in self.tag_ids:
            return False
        self.tag_ids.append(tag_id)
        return True

    def remove_tag(self, tag_id: str) -> bool:
        return self.tag_ids.remove(tag_id)

    def update_from_record(self, record: FileRecord) -> "ClientFile":
        """Overwrite local fields with backend data without reporting a change."""
        self._syncing = True
        try:
            self.path = record.path
            self.date_added = record.date_added
            if list(self.tag_ids) != list(record.tag_ids):
                self.tag_ids.replace(record.tag_ids)
        finally:
            self._syncing = False
        return self

    def to_record(self) -> FileRecord:
        return FileRecord(
            id=self.id,
            path=self.path,
            tag_ids=list(self.tag_ids),
            date_added=self.date_added,
        )

    def dispose(self) -> None:
        """Release change subscriptions held by this file."""
        if self._subscription is not None:
            self._subscription.dispose()
            self._subscription = None
        self.tag_ids.changes.dispose()
        self.disposed = True

    def _handle_change(self, changes: Sequence[Change]) -> None:
        if self._syncing or self.disposed or self._on_change is None:
            return
        self._on_change(self)


__all__ = ["ClientFile", "ChangeHandler"]
