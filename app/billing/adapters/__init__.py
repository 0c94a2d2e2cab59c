"""
Gateway adapters.

All outbound payment-gateway calls go through these adapters so errors,
logging and response parsing stay in one place.
"""

from billing.adapters.razorpay_adapter import (
    RazorpayAdapter,
    RazorpayOrderResult,
    RazorpayRefundResult,
    normalize_mapping,
)

__all__ = [
    "RazorpayAdapter",
    "RazorpayOrderResult",
    "RazorpayRefundResult",
    "normalize_mapping",
]
