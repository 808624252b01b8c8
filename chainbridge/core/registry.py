"""Handler registry keyed by event name."""

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class Registration:
    """A single handler registration.

    Compared by identity so registering the same callback twice yields two
    independently removable registrations.
    """

    event: str
    callback: Callable[..., Any]


class HandlerRegistry:
    """Ordered per-event lists of handler callbacks."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Registration]] = defaultdict(list)

    def register(self, event: str, callback: Callable[..., Any]) -> Callable[[], None]:
        """Add a handler and return a function removing exactly that registration.

        Raises:
            TypeError: If event is not a string or callback is not callable.
            ValueError: If event is the empty string.
        """
        if not isinstance(event, str):
            raise TypeError(f"event must be a str, got {type(event).__name__}: {event!r}")
        if not event:
            raise ValueError("event must not be empty")
        if not callable(callback):
            raise TypeError(f"handler for {event!r} must be callable, got {type(callback).__name__}")

        registration = Registration(event=event, callback=callback)
        self._handlers[registration.event].append(registration)

        def unregister() -> None:
            self._remove(registration)

        return unregister

    def _remove(self, registration: Registration) -> None:
        handlers = self._handlers.get(registration.event)
        if not handlers:
            return
        for i, existing in enumerate(handlers):
            if existing is registration:
                del handlers[i]
                break
        if not handlers:
            del self._handlers[registration.event]

    def handlers_for(self, event: str) -> tuple[Callable[..., Any], ...]:
        """Return a snapshot of the callbacks for an event in registration order."""
        return tuple(r.callback for r in self._handlers.get(event, ()))

    def count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))

    def events(self) -> list[str]:
        return list(self._handlers)

    def __contains__(self, event: object) -> bool:
        return bool(self._handlers.get(event)) if isinstance(event, str) else False
