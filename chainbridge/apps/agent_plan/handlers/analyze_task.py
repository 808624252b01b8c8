"""AnalyzeTask handler: task.analyze -> analysis summary."""

from typing import Any

from chainbridge.core.engine import Continuation
from chainbridge.core.handler import StepHandler


class AnalyzeTask(StepHandler):
    """Handles task.analyze steps and passes a summary of the dataset on."""

    listens_to = ["task.analyze"]

    def handle(self, payload: dict[str, Any], next: Continuation) -> None:
        """Pretend to analyze the referenced data source.

        Args:
            payload: The task.analyze payload with the ``data`` source name.
            next: Continuation receiving the analysis summary.
        """
        source = payload.get("data", "unknown.csv")
        stem = source.rsplit(".", 1)[0]
        next(
            {
                "source": source,
                "series": [stem.replace("_", " "), "total"],
                "rows": len(source) * 10,
            }
        )
