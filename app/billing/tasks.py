"""
Celery tasks for scheduled subscription sweeps.

Scheduled via celery-beat (see migration 0002_subscription_sweep_schedule):
- process_expired_subscriptions: ACTIVE -> GRACE_PERIOD
- process_grace_period_expiry: GRACE_PERIOD -> EXPIRED
- send_expiry_notifications: 3-day/1-day warnings and expired notices

Each task holds a non-blocking DistributedLock so overlapping ticks never
run the same sweep twice; a tick that finds the lock held is skipped.

A sweep that fails with TRANSIENT_STORE_ERROR raises TransientSweepError
after releasing the lock, and Celery retries the task with backoff.

Usage:
    from billing.tasks import process_expired_subscriptions

    process_expired_subscriptions.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task

from billing.exceptions import ErrorCode, LockAcquisitionError, TransientSweepError
from billing.locks import DistributedLock
from billing.services import SubscriptionService

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SWEEP_LOCK_TTL = 30 * 60
MAX_SWEEP_RETRIES = 3


def _run_sweep(name: str, sweep, attempt: int = 0) -> dict:
    try:
        with DistributedLock(f"billing:sweep:{name}", ttl=SWEEP_LOCK_TTL, blocking=False):
            result = sweep()
    except LockAcquisitionError:
        logger.info("Sweep already running, skipping tick", extra={"sweep": name})
        return {"status": "skipped", "sweep": name}

    if not result.success:
        logger.error(
            "Sweep failed",
            extra={
                "sweep": name,
                "error": result.error,
                "error_code": result.error_code,
                "attempt": attempt,
            },
        )
        if result.error_code == ErrorCode.TRANSIENT_STORE_ERROR:
            raise TransientSweepError(result.error, details={"sweep": name})
        return {"status": "failed", "sweep": name, "error": result.error}

    return {"status": "completed", "sweep": name, "result": result.data}


# =============================================================================
# Subscription Sweeps
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(TransientSweepError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": MAX_SWEEP_RETRIES},
    acks_late=True,
)
def process_expired_subscriptions(self) -> dict:
    """
    Move ACTIVE subscriptions past end_date into GRACE_PERIOD.

    Scheduled every SUBSCRIPTION_EXPIRY_CHECK_INTERVAL_MINUTES.

    Returns:
        Dict with status and number of users updated
    """
    return _run_sweep(
        "expiry",
        SubscriptionService.process_expired_subscriptions,
        attempt=self.request.retries,
    )


@shared_task(
    bind=True,
    autoretry_for=(TransientSweepError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": MAX_SWEEP_RETRIES},
    acks_late=True,
)
def process_grace_period_expiry(self) -> dict:
    """Expire GRACE_PERIOD subscriptions past grace_period_end. Runs daily."""
    return _run_sweep(
        "grace_period",
        SubscriptionService.process_grace_period_expiry,
        attempt=self.request.retries,
    )


@shared_task(
    bind=True,
    autoretry_for=(TransientSweepError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": MAX_SWEEP_RETRIES},
)
def send_expiry_notifications(self) -> dict:
    """Send expiry warnings and expired notices, each once per subscription."""
    return _run_sweep(
        "notifications",
        SubscriptionService.send_expiry_notifications,
        attempt=self.request.retries,
    )
