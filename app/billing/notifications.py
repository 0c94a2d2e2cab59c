"""
Best-effort user notifications for billing events.

NotificationSender is the boundary to the mail system. Every method
returns True/False and never raises: a failed notification is logged and
must never undo the state change that triggered it. Services call these
from ``transaction.on_commit`` so a rolled-back change never notifies.

Configuration:
    Django email settings (EMAIL_BACKEND, DEFAULT_FROM_EMAIL).

Usage:
    from billing.notifications import NotificationSender

    NotificationSender.notify_refund_status(
        user_email="user@example.com",
        refund_id="rfnd_123",
        amount=5000,
        currency="INR",
        payment_id="pay_123",
        status=RefundStatus.PROCESSED,
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.mail import EmailMultiAlternatives

from billing.state_machines import RefundStatus

if TYPE_CHECKING:
    from datetime import datetime

logger = logging.getLogger(__name__)


def format_amount(amount: int, currency: str = "INR") -> str:
    """Render minor units as ``"INR 50.00"`` without float arithmetic."""
    major, minor = divmod(int(amount), 100)
    return f"{currency.upper()} {major:,}.{minor:02d}"


REFUND_SUBJECTS = {
    RefundStatus.PENDING: "Your refund has been initiated",
    RefundStatus.PROCESSED: "Your refund has been processed",
    RefundStatus.FAILED: "Your refund could not be processed",
}


class NotificationSender:
    """Sends billing emails. All methods are fire-and-forget."""

    @staticmethod
    def _send(to: str, subject: str, body: str, kind: str) -> bool:
        if not to:
            logger.warning("Notification skipped: no recipient", extra={"kind": kind})
            return False

        message = EmailMultiAlternatives(
            subject=subject,
            body=body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=[to],
        )
        try:
            message.send(fail_silently=False)
        except Exception:
            logger.exception(
                "Failed to send notification",
                extra={"kind": kind, "recipient": to},
            )
            return False

        logger.info("Notification sent", extra={"kind": kind, "recipient": to})
        return True

    @classmethod
    def notify_refund_status(
        cls,
        user_email: str,
        refund_id: str,
        amount: int,
        payment_id: str,
        status: str,
        currency: str = "INR",
    ) -> bool:
        subject = REFUND_SUBJECTS.get(status, "Refund update")
        lines = [
            subject + ".",
            "",
            f"Refund ID: {refund_id}",
            f"Payment ID: {payment_id}",
            f"Amount: {format_amount(amount, currency)}",
        ]
        if status == RefundStatus.PENDING:
            lines.append("We will email you again once your bank confirms it.")
        elif status == RefundStatus.FAILED:
            lines.append("Our team has been alerted and will contact you.")
        return cls._send(user_email, subject, "\n".join(lines), f"refund_{status.lower()}")

    @classmethod
    def notify_subscription_cancelled(
        cls,
        user_email: str,
        service: str,
        cancelled_at: datetime,
    ) -> bool:
        body = (
            f"Your {service} subscription was cancelled on "
            f"{cancelled_at:%d %b %Y}. Premium features are no longer available."
        )
        return cls._send(
            user_email, "Your subscription was cancelled", body, "subscription_cancelled"
        )

    @classmethod
    def notify_expiry_warning(
        cls,
        user_email: str,
        days_remaining: int,
        end_date: datetime,
    ) -> bool:
        plural = "s" if days_remaining > 1 else ""
        body = (
            f"Your premium subscription expires in {days_remaining} day{plural} "
            f"({end_date:%d %b %Y}). Renew now to keep your premium features."
        )
        return cls._send(
            user_email, "Your subscription is about to expire", body, "expiry_warning"
        )

    @classmethod
    def notify_expired(cls, user_email: str, grace_period_end: datetime | None) -> bool:
        body = "Your premium subscription has expired."
        if grace_period_end is not None:
            body += (
                f" Premium access stays on until {grace_period_end:%d %b %Y %H:%M} UTC;"
                " renew before then to avoid interruption."
            )
        return cls._send(user_email, "Your subscription has expired", body, "expired")
