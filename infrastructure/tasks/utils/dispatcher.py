"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict

from ..config.celery import celery_app
from core.logging_config import get_logger

logger = get_logger(__name__)

EMAIL_TASK_PREFIX = "infrastructure.tasks.tasks.email"


class TaskDispatcher:
    """Internal facade used by the notification adapter to schedule tasks."""

    def enqueue(self, task_name: str, *, args: tuple | None = None, kwargs: Dict[str, Any] | None = None) -> None:
        """Schedule a task by name; eager mode runs registered tasks in-process."""
        if celery_app.conf.task_always_eager and task_name in celery_app.tasks:
            celery_app.tasks[task_name].apply(args=args or (), kwargs=kwargs or {})
            return
        celery_app.send_task(task_name, args=args or (), kwargs=kwargs or {})
        logger.debug("task_enqueued", task_name=task_name)

    def send_email_task(self, name: str, **kwargs: Any) -> None:
        self.enqueue(f"{EMAIL_TASK_PREFIX}.{name}", kwargs=kwargs)
