"""
Read-only financial rollups over payments and refunds.

Money stays in integer minor units; only the refund rate is a Decimal.
Nothing here writes, so every method is safe to call at any frequency.

Usage:
    from billing.services import FinancialService

    metrics = FinancialService.get_financial_metrics().data
    metrics.net_revenue
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from django.db import InterfaceError, OperationalError
from django.db.models import Count, Sum
from django.db.models.functions import TruncMonth
from django.utils import timezone

from core.helpers import add_months, month_start
from core.services import BaseService, ServiceResult

from billing.exceptions import ErrorCode
from billing.models import Payment, Refund
from billing.state_machines import PaymentStatus, RefundSpeed, RefundStatus

if TYPE_CHECKING:
    from datetime import datetime

    from django.db.models import QuerySet


CHART_MONTHS = 12


@dataclass
class FinancialMetrics:
    total_revenue: int
    monthly_revenue: int
    total_payments: int
    total_refunds: int
    monthly_refunds: int
    refund_rate: Decimal
    net_revenue: int
    revenue_chart: list[dict] = field(default_factory=list)


@dataclass
class RefundMetrics:
    total_refunds: int
    monthly_refunds: int
    refund_rate: Decimal
    total_refund_count: int
    monthly_refund_count: int
    count_by_status: dict[str, int]
    count_by_speed: dict[str, int]
    average_processing_hours: float
    refund_chart: list[dict] = field(default_factory=list)


def refund_rate(total_refunds: int, total_revenue: int) -> Decimal:
    """``total_refunds / total_revenue * 100`` to 2 places; 0 when there is no revenue."""
    if total_revenue <= 0:
        return Decimal("0.00")
    rate = Decimal(total_refunds) * 100 / Decimal(total_revenue)
    return rate.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _chart_months(now: datetime) -> list[datetime]:
    current = month_start(now)
    return [add_months(current, -offset) for offset in range(CHART_MONTHS - 1, -1, -1)]


def _monthly_totals(queryset: QuerySet, date_field: str, since: datetime) -> dict[str, dict]:
    rows = (
        queryset.filter(**{f"{date_field}__gte": since})
        .annotate(month=TruncMonth(date_field))
        .values("month")
        .annotate(amount=Sum("amount"), count=Count("id"))
    )
    return {
        row["month"].strftime("%Y-%m"): {"amount": row["amount"] or 0, "count": row["count"]}
        for row in rows
        if row["month"] is not None
    }


class FinancialService(BaseService):
    """Revenue and refund reporting."""

    @staticmethod
    def _verified_payments() -> QuerySet:
        return Payment.objects.filter(status=PaymentStatus.VERIFIED)

    @staticmethod
    def _processed_refunds() -> QuerySet:
        return Refund.objects.filter(status=RefundStatus.PROCESSED)

    @classmethod
    def get_financial_metrics(
        cls, now: datetime | None = None
    ) -> ServiceResult[FinancialMetrics]:
        """
        Revenue, refunds, refund rate and net revenue.

        The revenue chart covers the last twelve calendar months including the
        current one; months without payments are 0.
        """
        now = now or timezone.now()
        current_month = month_start(now)
        months = _chart_months(now)

        try:
            payments = cls._verified_payments()
            revenue = payments.aggregate(total=Sum("amount"), count=Count("id"))
            monthly_revenue = (
                payments.filter(created_at__gte=current_month).aggregate(
                    total=Sum("amount")
                )["total"]
                or 0
            )
            by_month = _monthly_totals(payments, "created_at", months[0])

            refunds = cls._processed_refunds()
            total_refunds = refunds.aggregate(total=Sum("amount"))["total"] or 0
            monthly_refunds = (
                refunds.filter(processed_at__gte=current_month).aggregate(
                    total=Sum("amount")
                )["total"]
                or 0
            )
        except (OperationalError, InterfaceError) as e:
            return cls.handle_exception(
                e, "financial metrics", error_code=ErrorCode.TRANSIENT_STORE_ERROR
            )

        total_revenue = revenue["total"] or 0
        chart = []
        for month in months:
            key = month.strftime("%Y-%m")
            chart.append(
                {
                    "month": key,
                    "revenue": by_month.get(key, {}).get("amount", 0),
                    "payments": by_month.get(key, {}).get("count", 0),
                }
            )

        return ServiceResult.success(
            FinancialMetrics(
                total_revenue=total_revenue,
                monthly_revenue=monthly_revenue,
                total_payments=revenue["count"],
                total_refunds=total_refunds,
                monthly_refunds=monthly_refunds,
                refund_rate=refund_rate(total_refunds, total_revenue),
                net_revenue=total_revenue - total_refunds,
                revenue_chart=chart,
            )
        )

    @classmethod
    def get_refund_metrics(cls, now: datetime | None = None) -> ServiceResult[RefundMetrics]:
        now = now or timezone.now()
        current_month = month_start(now)
        months = _chart_months(now)

        try:
            processed = cls._processed_refunds()
            totals = processed.aggregate(total=Sum("amount"), count=Count("id"))
            monthly = processed.filter(processed_at__gte=current_month).aggregate(
                total=Sum("amount"), count=Count("id")
            )
            total_revenue = (
                cls._verified_payments().aggregate(total=Sum("amount"))["total"] or 0
            )

            count_by_status = {status: 0 for status in RefundStatus.values}
            for row in Refund.objects.values("status").annotate(count=Count("id")):
                count_by_status[row["status"]] = row["count"]

            count_by_speed = {speed: 0 for speed in RefundSpeed.values}
            for row in (
                processed.exclude(speed_processed__isnull=True)
                .values("speed_processed")
                .annotate(count=Count("id"))
            ):
                count_by_speed[row["speed_processed"]] = row["count"]

            durations = [
                (processed_at - created_at).total_seconds() / 3600
                for created_at, processed_at in processed.exclude(
                    processed_at__isnull=True
                ).values_list("created_at", "processed_at")
            ]
            by_month = _monthly_totals(processed, "processed_at", months[0])
        except (OperationalError, InterfaceError) as e:
            return cls.handle_exception(
                e, "refund metrics", error_code=ErrorCode.TRANSIENT_STORE_ERROR
            )

        total_refunds = totals["total"] or 0
        chart = [
            {
                "month": month.strftime("%Y-%m"),
                "refund_amount": by_month.get(month.strftime("%Y-%m"), {}).get("amount", 0),
                "refund_count": by_month.get(month.strftime("%Y-%m"), {}).get("count", 0),
            }
            for month in months
        ]

        return ServiceResult.success(
            RefundMetrics(
                total_refunds=total_refunds,
                monthly_refunds=monthly["total"] or 0,
                refund_rate=refund_rate(total_refunds, total_revenue),
                total_refund_count=totals["count"],
                monthly_refund_count=monthly["count"],
                count_by_status=count_by_status,
                count_by_speed=count_by_speed,
                average_processing_hours=(
                    round(sum(durations) / len(durations), 2) if durations else 0.0
                ),
                refund_chart=chart,
            )
        )
