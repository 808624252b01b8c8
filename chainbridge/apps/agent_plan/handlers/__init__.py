"""Handlers for the agent plan demo application."""

from chainbridge.apps.agent_plan.handlers.analyze_task import AnalyzeTask
from chainbridge.apps.agent_plan.handlers.create_chart import CreateChart
from chainbridge.apps.agent_plan.handlers.show_notification import ShowNotification

__all__ = ["AnalyzeTask", "CreateChart", "ShowNotification"]
