"""
Steward Triggers Module - Background tasks on cron and named events

Example usage:
    from steward.triggers import BackgroundTaskScheduler, EventBus

    scheduler = BackgroundTaskScheduler(pipeline, owners=directory)
    await scheduler.start()

    bus = EventBus(redis_url="redis://localhost:6379")
    await bus.initialize()
    await scheduler.attach_event_bus(bus)
    await workflows.attach_event_bus(bus)
"""

from .builtin import BUILTIN_TASKS
from .event_bus import STEWARD_SOURCE, WORKFLOW_WEBHOOK, Event, EventBus
from .models import BackgroundTaskDefinition, BackgroundTaskResult, TaskCall, TriggerType
from .schedule import is_valid_cron, next_fire_ms, resolve_timezone
from .scheduler import BackgroundTaskScheduler, TaskPlanner, default_planner

__all__ = [
    "BUILTIN_TASKS",
    "STEWARD_SOURCE",
    "BackgroundTaskDefinition",
    "BackgroundTaskResult",
    "BackgroundTaskScheduler",
    "Event",
    "EventBus",
    "TaskCall",
    "TaskPlanner",
    "TriggerType",
    "WORKFLOW_WEBHOOK",
    "default_planner",
    "is_valid_cron",
    "next_fire_ms",
    "resolve_timezone",
]
