"""Agent plan demo application entrypoint.

An agent hands the engine a serialized plan; the engine walks it step by
step, pausing where the plan asks for it:

    task.analyze → sleep → chart.create → sleep → notification.show

Every step's result is also published on a context bus so other parts of an
application can follow along.

Usage:
    python -m chainbridge.apps.agent_plan.main
"""

import asyncio
from collections.abc import Callable
from typing import Any

from chainbridge.apps.agent_plan.handlers import AnalyzeTask, CreateChart, ShowNotification
from chainbridge.context.bus import ContextBus
from chainbridge.core.engine import Engine, EngineStats

DEFAULT_PLAN: list[dict[str, Any]] = [
    {"event": "task.analyze", "props": {"data": "sales_report.csv"}},
    {"event": "sleep", "props": {"duration": 500}},
    {"event": "chart.create", "props": {"type": "bar", "title": "Sales Analysis"}},
    {"event": "sleep", "props": {"duration": 300}},
    {"event": "notification.show", "props": {"message": "Analysis complete"}},
]


async def run_agent_plan(
    plan: list[dict[str, Any]] | None = None,
    output_callback: Callable[..., Any] | None = None,
    engine: Engine | None = None,
    bus: ContextBus | None = None,
) -> tuple[EngineStats, ContextBus]:
    """Run an agent plan to completion and return the engine stats and bus."""
    engine = engine or Engine()
    bus = bus or ContextBus()
    output = output_callback or print

    unregister = [
        engine.register_handler(AnalyzeTask()),
        engine.register_handler(CreateChart()),
        engine.register_handler(ShowNotification(bus, output_callback=output)),
    ]

    def log_step(event: str) -> Callable[..., None]:
        def handler(payload: dict[str, Any], next: Any) -> None:
            bus.add_context(
                {"name": event, "from": "agent.log", "type": "step", "data": payload},
                keep_alive=True,
            )

        return handler

    unregister += [
        engine.on(event, log_step(event))
        for event in ("task.analyze", "chart.create", "notification.show")
    ]

    try:
        engine.batch(plan if plan is not None else DEFAULT_PLAN)
        await engine.wait_idle()
    finally:
        for remove in unregister:
            remove()

    return engine.get_stats(), bus


def main() -> None:
    """Main entry point for the agent plan demo."""
    print("Running agent plan...\n")
    stats, bus = asyncio.run(run_agent_plan())
    print(f"\nPlan complete: {stats.steps_dispatched} steps dispatched")
    for record in bus.get("agent.log"):
        print(f"  - {record.name}")


if __name__ == "__main__":
    main()
