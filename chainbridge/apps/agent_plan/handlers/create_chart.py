"""CreateChart handler: chart.create -> chart description."""

import asyncio
from typing import Any

from chainbridge.core.engine import Continuation
from chainbridge.core.handler import StepHandler


class CreateChart(StepHandler):
    """Handles chart.create steps using the analysis carried in ``prev``.

    Rendering is simulated with a short asynchronous pause, so this handler
    completes its step from a task rather than inline.
    """

    listens_to = ["chart.create"]

    def __init__(self, name: str | None = None, render_time: float = 0.0) -> None:
        super().__init__(name)
        self._render_time = render_time

    async def handle(self, payload: dict[str, Any], next: Continuation) -> None:
        analysis = payload.get("prev", {})
        await asyncio.sleep(self._render_time)
        next(
            {
                "chart": {
                    "type": payload.get("type", "bar"),
                    "title": payload.get("title", "Untitled"),
                    "series": analysis.get("series", []),
                    "rows": analysis.get("rows", 0),
                }
            }
        )
