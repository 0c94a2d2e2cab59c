"""
Subscription lifecycle: grace period, expiry, cancellation, activation.

The module has two layers:

1. Pure evaluation functions (evaluate_expiry, evaluate_grace_period_expiry,
   cancel, days_remaining). They take a user, that user's subscription rows
   and an explicit ``now``; they move the in-memory rows through their
   django-fsm transitions and never touch the database.

2. SubscriptionService, which loads rows, runs the evaluation and persists
   the result. Every write is a conditional update keyed by
   ``(user, subscription id, expected status)``; a write that matches no
   rows lost a race and is skipped (sweeps) or reported as CONFLICT
   (cancellation).

Usage:
    from billing.services import SubscriptionService

    # Periodic sweep
    result = SubscriptionService.process_expired_subscriptions()
    result.data  # number of users updated

    # User cancellation
    result = SubscriptionService.cancel_subscription(request.user)
    if not result.success and result.error_code == ErrorCode.NO_ACTIVE_SUBSCRIPTION:
        ...
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError, InterfaceError, OperationalError, transaction
from django.db.models import Count, F, Q, Sum
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from core.helpers import calculate_pagination
from core.services import BaseService, ServiceResult

from accounts.models import User
from billing.exceptions import ErrorCode, StaleRecordError
from billing.models import Payment, Service, Subscription, SubscriptionNotice
from billing.notifications import NotificationSender
from billing.state_machines import NoticeType, PaymentStatus, SubscriptionStatus

if TYPE_CHECKING:
    from collections.abc import Iterable


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

TRANSIENT_DB_ERRORS = (OperationalError, InterfaceError)

# days_remaining() values that trigger a warning email for ACTIVE rows
EXPIRY_WARNINGS = {
    3: NoticeType.EXPIRY_WARNING_3_DAYS,
    1: NoticeType.EXPIRY_WARNING_1_DAY,
}


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class LifecycleEvaluation:
    """
    Outcome of evaluating one user's subscriptions at an instant.

    Attributes:
        user: The user aggregate (is_premium may have been recomputed)
        subscriptions: Every row that was evaluated, in input order
        changed: Rows whose status moved, with the status they moved from
        is_premium: Entitlement flag after evaluation
        needs_write: Whether anything must be persisted
    """

    user: User
    subscriptions: list[Subscription]
    changed: list[tuple[Subscription, str]] = field(default_factory=list)
    is_premium: bool = False

    @property
    def needs_write(self) -> bool:
        return bool(self.changed) or self.is_premium != self.user.is_premium


@dataclass
class SubscriptionSnapshot:
    """Read model of one subscription as shown to users and admins."""

    id: str
    service: str
    status: str
    start_date: datetime
    end_date: datetime
    days_remaining: int | None
    is_in_grace_period: bool
    grace_period_end: datetime | None
    cancelled_at: datetime | None
    source_payment_id: str | None
    created_at: datetime

    @classmethod
    def from_subscription(
        cls, subscription: Subscription, now: datetime
    ) -> SubscriptionSnapshot:
        payment = subscription.source_payment
        return cls(
            id=str(subscription.id),
            service=subscription.service,
            status=subscription.status,
            start_date=subscription.start_date,
            end_date=subscription.end_date,
            days_remaining=days_remaining(subscription.end_date, now),
            is_in_grace_period=subscription.is_in_grace_period,
            grace_period_end=subscription.grace_period_end,
            cancelled_at=subscription.cancelled_at,
            source_payment_id=payment.payment_id if payment else None,
            created_at=subscription.created_at,
        )


@dataclass
class SubscriptionHistory:
    subscriptions: list[SubscriptionSnapshot]
    count: int


@dataclass
class SubscriptionPage:
    items: list[Subscription]
    pagination: dict


@dataclass
class SubscriptionAnalytics:
    """Admin dashboard counters. Revenue is in smallest currency unit."""

    total: int
    active: int
    grace_period: int
    expired: int
    cancelled: int
    total_revenue: int
    average_length_days: float
    recent: list[Subscription]


# =============================================================================
# Pure Evaluation
# =============================================================================


def _is_entitled(subscriptions: Iterable[Subscription]) -> bool:
    return any(sub.status in SubscriptionStatus.entitled() for sub in subscriptions)


def evaluate_expiry(
    user: User,
    subscriptions: list[Subscription],
    now: datetime,
    grace_period_hours: int,
) -> LifecycleEvaluation:
    """
    Move every ACTIVE subscription whose end_date has passed into GRACE_PERIOD.

    grace_period_end is computed from end_date exactly once, on the
    transition. Rows already in GRACE_PERIOD are left alone, so calling this
    again with a later ``now`` changes nothing.

    Example:
        end_date=2025-01-10T00:00Z, now=2025-01-11T00:00Z, 48 hours
        -> GRACE_PERIOD with grace_period_end=2025-01-12T00:00Z
    """
    evaluation = LifecycleEvaluation(
        user=user, subscriptions=subscriptions, is_premium=user.is_premium
    )
    grace = timedelta(hours=grace_period_hours)

    for subscription in subscriptions:
        if subscription.status != SubscriptionStatus.ACTIVE:
            continue
        if subscription.end_date is None:
            logger.warning(
                "Skipping subscription without end date",
                extra={"subscription_id": str(subscription.id), "user_id": str(user.pk)},
            )
            continue
        if now > subscription.end_date:
            subscription.enter_grace_period(subscription.end_date + grace)
            evaluation.changed.append((subscription, SubscriptionStatus.ACTIVE))

    return evaluation


def evaluate_grace_period_expiry(
    user: User,
    subscriptions: list[Subscription],
    now: datetime,
) -> LifecycleEvaluation:
    """
    Expire GRACE_PERIOD subscriptions whose grace_period_end has passed.

    Also recomputes is_premium as "any subscription is ACTIVE or
    GRACE_PERIOD", which repairs a drifted flag even when no row moves.
    """
    evaluation = LifecycleEvaluation(user=user, subscriptions=subscriptions)

    for subscription in subscriptions:
        if subscription.status != SubscriptionStatus.GRACE_PERIOD:
            continue
        if subscription.grace_period_end is None:
            logger.warning(
                "Skipping grace period subscription without grace_period_end",
                extra={"subscription_id": str(subscription.id), "user_id": str(user.pk)},
            )
            continue
        if now > subscription.grace_period_end:
            subscription.expire()
            evaluation.changed.append((subscription, SubscriptionStatus.GRACE_PERIOD))

    evaluation.is_premium = _is_entitled(subscriptions)
    return evaluation


def cancel(
    user: User,
    subscriptions: list[Subscription],
    now: datetime,
) -> ServiceResult[Subscription]:
    """
    Cancel the first ACTIVE or GRACE_PERIOD subscription.

    On success the in-memory user has is_premium=False. Fails with
    NO_ACTIVE_SUBSCRIPTION when nothing can be cancelled.
    """
    for subscription in subscriptions:
        if subscription.status in SubscriptionStatus.entitled():
            subscription.cancel(now)
            user.is_premium = False
            return ServiceResult.success(subscription)

    return ServiceResult.failure(
        "No active subscription to cancel",
        error_code=ErrorCode.NO_ACTIVE_SUBSCRIPTION,
    )


def days_remaining(end_date: datetime | str | None, now: datetime) -> int | None:
    """
    Whole days left until end_date, rounded up, never negative.

    Accepts a datetime or an ISO-8601 string. Returns None for anything that
    cannot be parsed. Naive values are taken as UTC.
    """
    if isinstance(end_date, str):
        try:
            end_date = parse_datetime(end_date.strip())
        except ValueError:
            end_date = None
    if not isinstance(end_date, datetime):
        return None

    if timezone.is_naive(end_date):
        end_date = end_date.replace(tzinfo=dt_timezone.utc)
    if timezone.is_naive(now):
        now = now.replace(tzinfo=dt_timezone.utc)

    seconds = (end_date - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


# =============================================================================
# Subscription Service
# =============================================================================


class SubscriptionService(BaseService):
    """
    Persists lifecycle transitions and serves subscription reads.

    Sweeps iterate users one at a time; each user is written in its own
    transaction, so a sweep that fails halfway keeps what it already wrote.
    """

    # =========================================================================
    # Sweeps
    # =========================================================================

    @classmethod
    def process_expired_subscriptions(
        cls, now: datetime | None = None
    ) -> ServiceResult[int]:
        """
        Move overdue ACTIVE subscriptions into GRACE_PERIOD for every user.

        Returns:
            ServiceResult with the number of users written
        """
        now = now or timezone.now()
        grace_hours = settings.SUBSCRIPTION_GRACE_PERIOD_HOURS

        def evaluate(user, subscriptions):
            return evaluate_expiry(user, subscriptions, now, grace_hours)

        users = User.objects.filter(
            subscriptions__status=SubscriptionStatus.ACTIVE,
            subscriptions__end_date__lt=now,
        ).distinct()
        return cls._sweep("expiry", users, evaluate, now)

    @classmethod
    def process_grace_period_expiry(
        cls, now: datetime | None = None
    ) -> ServiceResult[int]:
        """
        Expire GRACE_PERIOD subscriptions past grace_period_end.

        Users flagged premium without any entitled subscription are swept too
        so their flag gets corrected.
        """
        now = now or timezone.now()

        def evaluate(user, subscriptions):
            return evaluate_grace_period_expiry(user, subscriptions, now)

        entitled = Q(subscriptions__status__in=SubscriptionStatus.entitled())
        users = User.objects.filter(
            Q(
                subscriptions__status=SubscriptionStatus.GRACE_PERIOD,
                subscriptions__grace_period_end__lt=now,
            )
            | (Q(is_premium=True) & ~entitled)
        ).distinct()
        return cls._sweep("grace_period_expiry", users, evaluate, now)

    @classmethod
    def _sweep(cls, name, users, evaluate, now: datetime) -> ServiceResult[int]:
        logger = cls.get_logger()
        updated = 0
        skipped = 0

        try:
            for user in users.iterator():
                subscriptions = list(user.subscriptions.order_by("created_at"))
                evaluation = evaluate(user, subscriptions)
                if not evaluation.needs_write:
                    continue
                if cls._persist_evaluation(evaluation, now):
                    updated += 1
                else:
                    skipped += 1
        except TRANSIENT_DB_ERRORS as e:
            return cls.handle_exception(
                e, f"{name} sweep", error_code=ErrorCode.TRANSIENT_STORE_ERROR
            )

        logger.info(
            f"Subscription {name} sweep finished",
            extra={"users_updated": updated, "users_skipped": skipped},
        )
        return ServiceResult.success(updated)

    @classmethod
    def _persist_evaluation(cls, evaluation: LifecycleEvaluation, now: datetime) -> bool:
        """
        Write one user's evaluation. Returns False if every row lost its race.
        """
        user = evaluation.user
        written = 0

        with transaction.atomic():
            for subscription, expected_status in evaluation.changed:
                if cls._compare_and_swap(subscription, expected_status, now):
                    written += 1
                else:
                    cls.get_logger().info(
                        "Subscription changed concurrently, skipping",
                        extra={
                            "subscription_id": str(subscription.id),
                            "expected_status": expected_status,
                        },
                    )

            if evaluation.changed and written == 0:
                return False

            if written == len(evaluation.changed):
                is_premium = evaluation.is_premium
            else:
                is_premium = Subscription.objects.filter(
                    user=user, status__in=SubscriptionStatus.entitled()
                ).exists()

            if is_premium != user.is_premium:
                User.objects.filter(pk=user.pk).update(is_premium=is_premium)
                user.is_premium = is_premium

        return True

    @staticmethod
    def _compare_and_swap(
        subscription: Subscription, expected_status: str, now: datetime
    ) -> bool:
        """Persist the in-memory state of subscription iff the row still has expected_status."""
        rows = Subscription.objects.filter(
            pk=subscription.pk,
            user_id=subscription.user_id,
            status=expected_status,
        ).update(
            status=subscription.status,
            grace_period_end=subscription.grace_period_end,
            cancelled_at=subscription.cancelled_at,
            version=F("version") + 1,
            updated_at=now,
        )
        return rows == 1

    # =========================================================================
    # Cancellation
    # =========================================================================

    @classmethod
    def cancel_subscription(
        cls, user: User, now: datetime | None = None
    ) -> ServiceResult[Subscription]:
        """
        Cancel the user's entitled subscription.

        The cancellation email is queued for after commit; a failure to send
        it does not affect the result.
        """
        now = now or timezone.now()
        logger = cls.get_logger()

        try:
            subscriptions = list(user.subscriptions.order_by("created_at"))
            previous = {sub.pk: sub.status for sub in subscriptions}
            was_premium = user.is_premium

            result = cancel(user, subscriptions, now)
            if not result.success:
                logger.info(
                    "Cancellation rejected: no active subscription",
                    extra={"user_id": str(user.pk)},
                )
                return result

            subscription = result.data
            with transaction.atomic():
                if not cls._compare_and_swap(subscription, previous[subscription.pk], now):
                    raise StaleRecordError(
                        "Subscription changed while cancelling, please retry",
                        details={"subscription_id": str(subscription.id)},
                    )
                User.objects.filter(pk=user.pk).update(is_premium=False)

                email = user.email
                service = subscription.service
                transaction.on_commit(
                    lambda: NotificationSender.notify_subscription_cancelled(
                        email, service, now
                    )
                )
        except StaleRecordError as e:
            logger.warning(
                "Cancellation lost a race",
                extra={"user_id": str(user.pk), **e.details},
            )
            user.is_premium = was_premium
            return ServiceResult.failure(e.message, error_code=e.error_code)
        except TRANSIENT_DB_ERRORS as e:
            return cls.handle_exception(
                e, "cancel subscription", error_code=ErrorCode.TRANSIENT_STORE_ERROR
            )

        logger.info(
            "Subscription cancelled",
            extra={
                "user_id": str(user.pk),
                "subscription_id": str(subscription.id),
                "previous_status": previous[subscription.pk],
            },
        )
        return ServiceResult.success(subscription)

    @classmethod
    def cancel_user_subscription(
        cls,
        email: str,
        admin_email: str,
        now: datetime | None = None,
    ) -> ServiceResult[Subscription]:
        """Admin cancellation by user email."""
        email = (email or "").strip()
        if not email:
            return ServiceResult.failure(
                "Email is required", error_code=ErrorCode.VALIDATION_ERROR
            )

        user = User.objects.filter(email__iexact=email).first()
        if user is None:
            return ServiceResult.failure(
                f"User {email} not found", error_code=ErrorCode.NOT_FOUND
            )

        cls.get_logger().info(
            "Admin cancelling subscription",
            extra={"user_email": email, "admin_email": admin_email},
        )
        return cls.cancel_subscription(user, now=now)

    # =========================================================================
    # Activation
    # =========================================================================

    @classmethod
    def activate_from_payment(
        cls,
        user: User,
        payment: Payment,
        now: datetime,
        service: Service,
    ) -> Subscription:
        """
        Start a new entitlement window of ``service`` for a confirmed payment.

        Any ACTIVE subscription is superseded (EXPIRED, ending now). Must be
        called inside the caller's transaction.
        """
        superseded = 0
        for previous in Subscription.objects.filter(
            user=user, status=SubscriptionStatus.ACTIVE
        ).select_for_update():
            previous.supersede(now)
            if cls._compare_and_swap(previous, SubscriptionStatus.ACTIVE, now):
                superseded += 1

        subscription = Subscription.objects.create(
            user=user,
            source_payment=payment,
            service=service.code,
            start_date=now,
            end_date=service.period_end(now),
        )
        User.objects.filter(pk=user.pk).update(is_premium=True)
        user.is_premium = True

        cls.get_logger().info(
            "Subscription activated",
            extra={
                "user_id": str(user.pk),
                "subscription_id": str(subscription.id),
                "payment_id": payment.payment_id,
                "superseded": superseded,
            },
        )
        return subscription

    # =========================================================================
    # Expiry Notices
    # =========================================================================

    @classmethod
    def send_expiry_notifications(
        cls, now: datetime | None = None
    ) -> ServiceResult[dict[str, int]]:
        """
        Send 3-day and 1-day expiry warnings and the expired notice.

        Each notice is recorded in SubscriptionNotice first, so it goes out at
        most once per subscription even if the sweep runs more often.
        """
        now = now or timezone.now()
        sent = {notice: 0 for notice in NoticeType.values}

        try:
            upcoming = Subscription.objects.select_related("user").filter(
                status=SubscriptionStatus.ACTIVE,
                end_date__gt=now,
                end_date__lte=now + timedelta(days=max(EXPIRY_WARNINGS)),
            )
            for subscription in upcoming:
                remaining = days_remaining(subscription.end_date, now)
                notice_type = EXPIRY_WARNINGS.get(remaining)
                if notice_type and cls._record_notice(subscription, notice_type):
                    NotificationSender.notify_expiry_warning(
                        subscription.user.email, remaining, subscription.end_date
                    )
                    sent[notice_type] += 1

            in_grace = Subscription.objects.select_related("user").filter(
                status=SubscriptionStatus.GRACE_PERIOD
            )
            for subscription in in_grace:
                if cls._record_notice(subscription, NoticeType.EXPIRED):
                    NotificationSender.notify_expired(
                        subscription.user.email, subscription.grace_period_end
                    )
                    sent[NoticeType.EXPIRED] += 1
        except TRANSIENT_DB_ERRORS as e:
            return cls.handle_exception(
                e, "expiry notifications", error_code=ErrorCode.TRANSIENT_STORE_ERROR
            )

        cls.get_logger().info("Expiry notifications sent", extra={"sent": sent})
        return ServiceResult.success(sent)

    @staticmethod
    def _record_notice(subscription: Subscription, notice_type: str) -> bool:
        try:
            with transaction.atomic():
                _, created = SubscriptionNotice.objects.get_or_create(
                    subscription=subscription, notice_type=notice_type
                )
        except IntegrityError:
            return False
        return created

    # =========================================================================
    # Reads
    # =========================================================================

    @classmethod
    def get_subscription_status(
        cls, user: User, now: datetime | None = None
    ) -> ServiceResult[SubscriptionSnapshot]:
        now = now or timezone.now()
        latest = (
            user.subscriptions.select_related("source_payment")
            .order_by("-created_at")
            .first()
        )
        if latest is None:
            return ServiceResult.failure(
                "No subscription found", error_code=ErrorCode.NO_SUBSCRIPTION
            )
        return ServiceResult.success(SubscriptionSnapshot.from_subscription(latest, now))

    @classmethod
    def get_subscription_history(
        cls, user: User, now: datetime | None = None
    ) -> ServiceResult[SubscriptionHistory]:
        now = now or timezone.now()
        snapshots = [
            SubscriptionSnapshot.from_subscription(sub, now)
            for sub in user.subscriptions.select_related("source_payment").order_by(
                "-created_at"
            )
        ]
        return ServiceResult.success(
            SubscriptionHistory(subscriptions=snapshots, count=len(snapshots))
        )

    @classmethod
    def list_subscriptions(
        cls,
        status: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> ServiceResult[SubscriptionPage]:
        """Admin listing, newest first, with the source payment joined."""
        queryset = Subscription.objects.select_related("user", "source_payment")
        if status:
            if status not in SubscriptionStatus.values:
                return ServiceResult.failure(
                    f"Unknown status: {status}",
                    error_code=ErrorCode.VALIDATION_ERROR,
                )
            queryset = queryset.filter(status=status)

        pagination = calculate_pagination(queryset.count(), page, page_size)
        offset = pagination["offset"]
        items = list(queryset.order_by("-created_at")[offset : offset + page_size])
        return ServiceResult.success(SubscriptionPage(items=items, pagination=pagination))

    @classmethod
    def get_subscription_analytics(cls) -> ServiceResult[SubscriptionAnalytics]:
        counts = Subscription.objects.aggregate(
            total=Count("id"),
            active=Count("id", filter=Q(status=SubscriptionStatus.ACTIVE)),
            grace_period=Count("id", filter=Q(status=SubscriptionStatus.GRACE_PERIOD)),
            expired=Count("id", filter=Q(status=SubscriptionStatus.EXPIRED)),
            cancelled=Count("id", filter=Q(status=SubscriptionStatus.CANCELLED)),
        )
        revenue = (
            Payment.objects.filter(status=PaymentStatus.VERIFIED).aggregate(
                total=Sum("amount")
            )["total"]
            or 0
        )

        lengths = [
            (end - start).total_seconds() / 86400
            for start, end in Subscription.objects.values_list("start_date", "end_date")
        ]
        average = round(sum(lengths) / len(lengths), 2) if lengths else 0.0

        recent = list(
            Subscription.objects.select_related("user", "source_payment").order_by(
                "-created_at"
            )[:10]
        )
        return ServiceResult.success(
            SubscriptionAnalytics(
                total_revenue=revenue,
                average_length_days=average,
                recent=recent,
                **counts,
            )
        )
