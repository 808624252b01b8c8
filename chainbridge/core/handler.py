"""StepHandler base class for class-based chain handlers."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, ClassVar

Next = Callable[..., None]


class StepHandler(ABC):
    """Base class for handlers that react to chain steps.

    A StepHandler declares the event names it handles via the `listens_to`
    class attribute. The engine registers the handler once for every name
    in that list.

    Note: Validation of `listens_to` happens in the Engine during
    registration, not in the handler itself.
    """

    listens_to: ClassVar[list[str]] = []

    def __init__(self, name: str | None = None) -> None:
        """Initialize the handler.

        Args:
            name: Optional name for the handler. Defaults to the class name.
        """
        self.name = name or self.__class__.__name__

    @abstractmethod
    def handle(self, payload: dict[str, Any], next: Next) -> None | Awaitable[None]:
        """Handle one dispatched step.

        Args:
            payload: The step's payload with the previous result under ``prev``.
            next: Continuation to call, exactly once, with this step's result.

        Returns:
            None, or an awaitable the engine schedules on the running loop.
        """
        ...

    def __call__(self, payload: dict[str, Any], next: Next) -> None | Awaitable[None]:
        return self.handle(payload, next)
