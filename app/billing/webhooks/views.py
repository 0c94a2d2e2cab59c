"""
Webhook endpoint view for Razorpay.

The view hands the exact request bytes and the X-Razorpay-Signature
header to the ReconciliationEngine and turns its outcome into a plain
HttpResponse. Authenticated deliveries that change nothing (duplicates)
still get 200 so the gateway stops retrying.
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from billing.services import ReconciliationEngine
from billing.signatures import SIGNATURE_HEADER


logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def razorpay_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and apply a Razorpay refund webhook.

    Returns:
        HttpResponse with status:
        - 200: Applied, duplicate, or non-refund event acknowledged
        - 400: Malformed payload
        - 401: Missing or invalid signature
        - 404: Unknown refund
        - 409: Would revert a terminal refund (logged for review)
        - 500: Unexpected error
    """
    payload = request.body
    signature = request.META.get(SIGNATURE_HEADER)

    if not signature:
        logger.warning("Webhook received without X-Razorpay-Signature header")

    outcome = ReconciliationEngine.handle(payload, signature)

    logger.info(
        "Razorpay webhook handled",
        extra={
            "stage": outcome.stage.value,
            "http_status": outcome.http_status,
            "refund_id": outcome.refund_id,
            "applied": outcome.applied,
        },
    )
    return HttpResponse(outcome.message, status=outcome.http_status)
