"""
Fire-and-forget side effects of incident lifecycle transitions.

Inside a request, tasks are handed to FastAPI's BackgroundTasks and run after
the response has been sent. Outside a request they run as detached asyncio
tasks. Either way nobody awaits the outcome: failures are logged here and
dropped, and incident state is never touched on failure.
"""
import asyncio
import logging

from fastapi import BackgroundTasks

from uptimer.notifications import NewIncidentTask, NotificationTask, send_incident_email
from uptimer.ownership import ResourceKind
from uptimer.screenshots import capture_incident_screenshot

logger = logging.getLogger("uptimer.dispatcher")

# Strong references so detached tasks are not garbage collected mid-flight
_detached_tasks: set[asyncio.Task] = set()


async def run_task(task: NotificationTask) -> None:
    """Run every side effect of a task, each one independently."""
    try:
        await send_incident_email(task)
    except Exception as e:
        logger.error(
            f"Failed to send {type(task).__name__} email for incident {task.incident_id}: {e}"
        )

    if isinstance(task, NewIncidentTask) and task.kind == ResourceKind.monitor.value:
        try:
            await capture_incident_screenshot(task.incident_id)
        except Exception:
            logger.exception(f"Screenshot task crashed for incident {task.incident_id}")


class SideEffectDispatcher:
    def __init__(self, background_tasks: BackgroundTasks | None = None):
        self._background_tasks = background_tasks

    def schedule(self, task: NotificationTask) -> None:
        if self._background_tasks is not None:
            self._background_tasks.add_task(run_task, task)
            return
        detached = asyncio.get_running_loop().create_task(run_task(task))
        _detached_tasks.add(detached)
        detached.add_done_callback(_detached_tasks.discard)


def get_dispatcher(background_tasks: BackgroundTasks) -> SideEffectDispatcher:
    """FastAPI dependency: a dispatcher bound to the current response."""
    return SideEffectDispatcher(background_tasks)
