"""Cancelable timers for the payment channels.

Every timer is identified by a handle id. Scheduling returns the handle,
cancelling takes it back. In production the timers are Celery tasks
(``countdown`` + ``revoke``); a revoked task that still runs finds its
handle no longer stored on the attempt and does nothing.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog
from celery import current_app

logger = structlog.get_logger(__name__)


class ITimerScheduler(ABC):
    @abstractmethod
    def schedule(
        self,
        task_name: str,
        delay_s: float,
        kwargs: Dict[str, Any],
        handle_id: Optional[str] = None,
    ) -> str:
        """Run *task_name* after *delay_s* seconds; returns the handle id.

        The handle id is also passed to the task as ``handle_id``.
        """

    @abstractmethod
    def cancel(self, handle_id: str) -> None:
        """Stop a scheduled timer. Unknown or fired handles are ignored."""


class CeleryTimerScheduler(ITimerScheduler):
    def schedule(
        self,
        task_name: str,
        delay_s: float,
        kwargs: Dict[str, Any],
        handle_id: Optional[str] = None,
    ) -> str:
        handle_id = handle_id or str(uuid4())
        current_app.send_task(
            task_name,
            kwargs={**kwargs, "handle_id": handle_id},
            countdown=delay_s,
            task_id=handle_id,
        )
        logger.debug("timer.scheduled", task=task_name, handle_id=handle_id, delay_s=delay_s)
        return handle_id

    def cancel(self, handle_id: str) -> None:
        current_app.control.revoke(handle_id)
        logger.debug("timer.cancelled", handle_id=handle_id)


_scheduler: Optional[ITimerScheduler] = None


def get_scheduler() -> ITimerScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = CeleryTimerScheduler()
    return _scheduler


def set_scheduler(scheduler: Optional[ITimerScheduler]) -> None:
    """Swap the process-wide scheduler (``None`` restores the Celery one)."""
    global _scheduler
    _scheduler = scheduler
