"""Publish-on-mutate containers used by the tree, selection, and file layers.

Mutation and notification are separate steps: containers change first and then
publish a ``Change`` to their ``Notifier``. Wrapping several mutations in
``Notifier.batch`` delivers every change from the block in a single callback
invocation once the block exits.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, Iterator, Sequence, TypeVar, overload

from .errors import InvalidOperationError

T = TypeVar("T")

Listener = Callable[[Sequence["Change"]], None]


@dataclass(frozen=True, slots=True)
class Change:
    """Single mutation published by an observable container.

    Attributes:
        kind: Mutation category (``add``, ``remove``, ``replace``, ``clear``, ``update``).
        items: Items affected by the mutation.
        detail: Optional free-form context such as the affected id.
    """

    kind: str
    items: tuple[Any, ...] = ()
    detail: dict[str, Any] = field(default_factory=dict)


class Subscription:
    """Handle returned by ``Notifier.subscribe``; disposing it stops delivery."""

    def __init__(self, notifier: "Notifier", listener: Listener) -> None:
        self._notifier = notifier
        self.listener = listener
        self.active = True

    def dispose(self) -> None:
        if not self.active:
            return
        self.active = False
        self._notifier._discard(self)


class Notifier:
    """Fan out change notifications to subscribed listeners."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._batch_depth = 0
        self._pending: list[Change] = []
        self._dispatching = False

    @property
    def dispatching(self) -> bool:
        """Return whether listeners are currently being invoked."""
        return self._dispatching

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, listener: Listener) -> Subscription:
        """Register ``listener`` and return a disposable subscription.

        Args:
            listener: Callable receiving the sequence of changes per dispatch.

        Returns:
            Subscription: Handle used to stop receiving notifications.
        """
        subscription = Subscription(self, listener)
        self._subscriptions.append(subscription)
        return subscription

    def publish(self, change: Change) -> None:
        """Deliver ``change`` now, or queue it while a batch is open."""
        if self._batch_depth:
            self._pending.append(change)
            return
        self._dispatch([change])

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Collect changes published inside the block and deliver them once."""
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._pending:
                pending, self._pending = self._pending, []
                self._dispatch(pending)

    def dispose(self) -> None:
        """Drop every subscription; used at shutdown."""
        for subscription in list(self._subscriptions):
            subscription.active = False
        self._subscriptions.clear()
        self._pending.clear()

    def _discard(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass

    def _dispatch(self, changes: Sequence[Change]) -> None:
        self._dispatching = True
        try:
            for subscription in list(self._subscriptions):
                if subscription.active:
                    subscription.listener(tuple(changes))
        finally:
            self._dispatching = False


class ObservableList(Generic[T]):
    """Ordered container that publishes a ``Change`` after every mutation.

    Listeners may read the list but must not mutate it while they are being
    notified; doing so raises ``InvalidOperationError``.
    """

    def __init__(self, items: Iterable[T] = ()) -> None:
        self._items: list[T] = list(items)
        self.changes = Notifier()

    # Read-only projection ---------------------------------------------

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(tuple(self._items))

    def __contains__(self, item: object) -> bool:
        return item in self._items

    @overload
    def __getitem__(self, index: int) -> T: ...

    @overload
    def __getitem__(self, index: slice) -> list[T]: ...

    def __getitem__(self, index):
        return self._items[index]

    def __repr__(self) -> str:
        return f"ObservableList({self._items!r})"

    def index(self, item: T) -> int:
        return self._items.index(item)

    def snapshot(self) -> tuple[T, ...]:
        """Return an immutable copy of the current items."""
        return tuple(self._items)

    # Mutation ---------------------------------------------------------

    def append(self, item: T) -> None:
        self._guard()
        self._items.append(item)
        self.changes.publish(Change("add", (item,), {"index": len(self._items) - 1}))

    def extend(self, items: Iterable[T]) -> None:
        self._guard()
        added = tuple(items)
        if not added:
            return
        self._items.extend(added)
        self.changes.publish(Change("add", added))

    def insert(self, index: int, item: T) -> None:
        self._guard()
        position = max(0, min(index, len(self._items)))
        self._items.insert(position, item)
        self.changes.publish(Change("add", (item,), {"index": position}))

    def remove(self, item: T) -> bool:
        """Remove ``item`` if present.

        Returns:
            bool: True when the item was found and removed.
        """
        self._guard()
        try:
            self._items.remove(item)
        except ValueError:
            return False
        self.changes.publish(Change("remove", (item,)))
        return True

    def replace(self, items: Iterable[T]) -> None:
        self._guard()
        self._items = list(items)
        self.changes.publish(Change("replace", tuple(self._items)))

    def clear(self) -> None:
        self._guard()
        if not self._items:
            return
        removed = tuple(self._items)
        self._items.clear()
        self.changes.publish(Change("clear", removed))

    def _guard(self) -> None:
        if self.changes.dispatching:
            raise InvalidOperationError("Cannot mutate a list while its listeners are running.")


__all__ = ["Change", "Subscription", "Notifier", "ObservableList", "Listener"]
