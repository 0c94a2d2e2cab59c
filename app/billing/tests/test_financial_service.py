"""
Tests for FinancialService rollups.
"""

from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import pytest
from freezegun import freeze_time

from billing.services import FinancialService
from billing.services.financial_service import refund_rate
from billing.state_machines import PaymentStatus, RefundSpeed, RefundStatus
from billing.tests.factories import PaymentFactory, RefundFactory


class TestRefundRate:
    @pytest.mark.parametrize(
        "refunds,revenue,expected",
        [
            (0, 0, Decimal("0.00")),
            (500, 0, Decimal("0.00")),
            (2500, 10000, Decimal("25.00")),
            (1, 3, Decimal("33.33")),
            (2, 3, Decimal("66.67")),
            (10000, 10000, Decimal("100.00")),
        ],
    )
    def test_quantized(self, refunds, revenue, expected):
        assert refund_rate(refunds, revenue) == expected


@pytest.mark.django_db
class TestFinancialMetrics:
    def test_empty(self):
        metrics = FinancialService.get_financial_metrics().data

        assert metrics.total_revenue == 0
        assert metrics.total_payments == 0
        assert metrics.refund_rate == Decimal("0.00")
        assert len(metrics.revenue_chart) == 12
        assert all(point["revenue"] == 0 for point in metrics.revenue_chart)

    def test_totals_only_count_verified_and_processed(self):
        with freeze_time("2025-03-10 12:00:00"):
            paid = PaymentFactory(amount=10000)
            PaymentFactory(amount=5000)
            PaymentFactory(amount=99999, status=PaymentStatus.FAILED)

        with freeze_time("2025-03-12 12:00:00"):
            RefundFactory(
                payment=paid,
                amount=2500,
                status=RefundStatus.PROCESSED,
                processed_at=datetime(2025, 3, 12, 12, tzinfo=dt_timezone.utc),
            )
            RefundFactory(payment=paid, amount=1000)
            RefundFactory(payment=paid, amount=700, status=RefundStatus.FAILED)

        now = datetime(2025, 3, 20, tzinfo=dt_timezone.utc)
        metrics = FinancialService.get_financial_metrics(now=now).data

        assert metrics.total_revenue == 15000
        assert metrics.total_payments == 2
        assert metrics.monthly_revenue == 15000
        assert metrics.total_refunds == 2500
        assert metrics.monthly_refunds == 2500
        assert metrics.net_revenue == 12500
        assert metrics.refund_rate == Decimal("16.67")

    def test_revenue_chart_buckets_by_month(self):
        with freeze_time("2025-01-15 09:00:00"):
            PaymentFactory(amount=4000)
        with freeze_time("2025-03-01 00:30:00"):
            PaymentFactory(amount=6000)
            PaymentFactory(amount=1000)

        now = datetime(2025, 3, 20, tzinfo=dt_timezone.utc)
        metrics = FinancialService.get_financial_metrics(now=now).data

        chart = {point["month"]: point for point in metrics.revenue_chart}
        assert metrics.revenue_chart[0]["month"] == "2024-04"
        assert metrics.revenue_chart[-1]["month"] == "2025-03"
        assert chart["2025-01"] == {"month": "2025-01", "revenue": 4000, "payments": 1}
        assert chart["2025-02"]["revenue"] == 0
        assert chart["2025-03"] == {"month": "2025-03", "revenue": 7000, "payments": 2}
        assert metrics.monthly_revenue == 7000


@pytest.mark.django_db
class TestRefundMetrics:
    def test_breakdown(self):
        with freeze_time("2025-03-10 10:00:00"):
            payment = PaymentFactory(amount=20000)
            RefundFactory(
                payment=payment,
                amount=3000,
                status=RefundStatus.PROCESSED,
                speed_processed=RefundSpeed.OPTIMUM,
                processed_at=datetime(2025, 3, 10, 16, tzinfo=dt_timezone.utc),
            )
            RefundFactory(
                payment=payment,
                amount=1000,
                status=RefundStatus.PROCESSED,
                speed_processed=RefundSpeed.NORMAL,
                processed_at=datetime(2025, 3, 11, 0, tzinfo=dt_timezone.utc),
            )
            RefundFactory(payment=payment, amount=500)
            RefundFactory(payment=payment, amount=500, status=RefundStatus.FAILED)

        now = datetime(2025, 3, 20, tzinfo=dt_timezone.utc)
        metrics = FinancialService.get_refund_metrics(now=now).data

        assert metrics.total_refunds == 4000
        assert metrics.total_refund_count == 2
        assert metrics.monthly_refund_count == 2
        assert metrics.refund_rate == Decimal("20.00")
        assert metrics.count_by_status == {
            RefundStatus.PENDING: 1,
            RefundStatus.PROCESSED: 2,
            RefundStatus.FAILED: 1,
        }
        assert metrics.count_by_speed[RefundSpeed.OPTIMUM] == 1
        assert metrics.count_by_speed[RefundSpeed.NORMAL] == 1
        # 6h and 14h
        assert metrics.average_processing_hours == 10.0

        chart = {point["month"]: point for point in metrics.refund_chart}
        assert chart["2025-03"]["refund_amount"] == 4000
        assert chart["2025-03"]["refund_count"] == 2

    def test_previous_month_not_monthly(self):
        with freeze_time("2025-02-10 10:00:00"):
            RefundFactory(
                amount=1500,
                status=RefundStatus.PROCESSED,
                processed_at=datetime(2025, 2, 10, 12, tzinfo=dt_timezone.utc)
                + timedelta(hours=1),
            )

        now = datetime(2025, 3, 5, tzinfo=dt_timezone.utc)
        metrics = FinancialService.get_refund_metrics(now=now).data

        assert metrics.total_refunds == 1500
        assert metrics.monthly_refunds == 0
        assert metrics.monthly_refund_count == 0
