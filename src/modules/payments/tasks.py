"""Timer tasks of the payment channels.

Scheduled by ``CeleryTimerScheduler`` with ``task_id`` equal to the
handle id. Both tasks swallow their own failures: a tick that breaks
must not be retried by Celery on top of the reconciler's own chaining.
"""

from __future__ import annotations

from celery import shared_task

from modules.payments.constants import POLL_TASK, SMS_EXPIRY_TASK
from modules.payments.factories import build_reconciler


@shared_task(name=POLL_TASK, ignore_result=True)
def poll_deposit_status(deposit_id: str, handle_id: str) -> str:
    return build_reconciler().poll_tick(deposit_id, handle_id)


@shared_task(name=SMS_EXPIRY_TASK, ignore_result=True)
def expire_sms_listener(deposit_id: str, handle_id: str) -> bool:
    return build_reconciler().expire_sms_listener(deposit_id, handle_id)
