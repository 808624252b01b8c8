"""ShowNotification handler: notification.show -> context bus + output."""

from collections.abc import Callable
from typing import Any

from chainbridge.context.bus import ContextBus
from chainbridge.core.engine import Continuation
from chainbridge.core.handler import StepHandler


class ShowNotification(StepHandler):
    """Handles notification.show steps.

    The notification is published on the context bus under the
    ``notifications`` key and written through `output_callback`.
    """

    listens_to = ["notification.show"]

    def __init__(
        self,
        bus: ContextBus,
        name: str | None = None,
        output_callback: Callable[..., Any] | None = None,
    ):
        """Initialize ShowNotification.

        Args:
            bus: Context bus the notification is published on.
            name: Optional name for the handler.
            output_callback: Optional callback for output (useful for testing).
        """
        super().__init__(name)
        self._bus = bus
        self._output_callback = output_callback or print
        self.last_output: str | None = None

    def handle(self, payload: dict[str, Any], next: Continuation) -> None:
        message = payload.get("message", "")
        chart = payload.get("prev", {}).get("chart")

        context_id = self._bus.add_context(
            {
                "name": "notification",
                "from": "notifications",
                "type": "notification",
                "title": chart["title"] if chart else None,
                "content": message,
                "data": {"chart": chart},
            }
        )

        output = f"[notification] {message}"
        if chart:
            output += f" ({chart['type']} chart: {chart['title']})"
        self.last_output = output
        self._output_callback(output)

        next({"notification_id": context_id, "message": message})
