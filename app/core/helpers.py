"""
Helper functions for common infrastructure operations.

- Pagination metadata
- Calendar month arithmetic for monthly rollups and entitlement periods
- HTTP request helpers (client IP extraction)

Usage:
    from core.helpers import calculate_pagination, get_client_ip

    pagination = calculate_pagination(total=100, page=3, per_page=20)
    ip = get_client_ip(request)
"""

from __future__ import annotations

import calendar
import math
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from django.http import HttpRequest


def calculate_pagination(total: int, page: int, per_page: int) -> dict:
    """
    Calculate pagination metadata.

    ``page`` is clamped into ``[1, total_pages]``.

    Example:
        calculate_pagination(total=100, page=3, per_page=20)
        # {"total": 100, "page": 3, "per_page": 20, "total_pages": 5,
        #  "has_next": True, "has_previous": True, "offset": 40}
    """
    total_pages = math.ceil(total / per_page) if per_page > 0 else 0
    page = max(1, min(page, total_pages or 1))

    return {
        "total": total,
        "page": page,
        "per_page": per_page,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_previous": page > 1,
        "offset": (page - 1) * per_page,
    }


def month_start(value: datetime) -> datetime:
    """Midnight on the first day of value's month, keeping its tzinfo."""
    return value.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def add_months(value: datetime, months: int) -> datetime:
    """
    Shift a month-start datetime by ``months`` (may be negative).

    Only meaningful for values produced by month_start(); the day is kept.
    """
    index = value.year * 12 + (value.month - 1) + months
    return value.replace(year=index // 12, month=index % 12 + 1)


def get_client_ip(request: HttpRequest) -> str:
    """
    Extract client IP from request, handling proxies.

    The first address in X-Forwarded-For wins; then X-Real-IP; then
    REMOTE_ADDR.
    """
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip()
    return request.META.get("HTTP_X_REAL_IP") or request.META.get("REMOTE_ADDR", "")


def shift_months(value: datetime, months: int) -> datetime:
    """
    Move ``value`` by whole calendar months, clamping the day to the target month.

    Example:
        shift_months(datetime(2025, 1, 31), 1) -> datetime(2025, 2, 28)
    """
    index = value.year * 12 + (value.month - 1) + months
    year, month = index // 12, index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)
