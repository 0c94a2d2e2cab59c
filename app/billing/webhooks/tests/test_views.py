"""
Tests for the Razorpay webhook view.

Tests cover:
- Signature verification against the raw body
- Refund status application and idempotent replays
- Status codes returned to the gateway
"""

import json
from unittest.mock import patch

import pytest
from django.test import RequestFactory
from django.urls import reverse
from django.utils import timezone

from billing.signatures import sign
from billing.state_machines import RefundStatus
from billing.tests.factories import RefundFactory
from billing.webhooks.views import razorpay_webhook


# =============================================================================
# Setup
# =============================================================================


@pytest.fixture
def rf():
    """Request factory for creating test requests."""
    return RequestFactory()


def refund_event(refund_id: str, event: str = "refund.processed", status: str = "processed") -> bytes:
    return json.dumps(
        {
            "entity": "event",
            "event": event,
            "payload": {
                "refund": {
                    "entity": {
                        "id": refund_id,
                        "amount": 2500,
                        "payment_id": "pay_test",
                        "status": status,
                        "speed_processed": "normal",
                        "notes": [],
                        "acquirer_data": [],
                    }
                }
            },
        }
    ).encode()


def make_webhook_request(rf, body: bytes, signature: str | None = None):
    """Create a POST request signed with the test webhook secret."""
    headers = {}
    if signature is None:
        signature = sign(body, "test_webhook_secret")
    if signature:
        headers["HTTP_X_RAZORPAY_SIGNATURE"] = signature
    return rf.post(
        "/api/v1/billing/webhooks/razorpay/",
        data=body,
        content_type="application/json",
        **headers,
    )


# =============================================================================
# Signature Verification Tests
# =============================================================================


class TestRazorpayWebhookSignature:
    def test_missing_signature_returns_401(self, rf, db):
        request = make_webhook_request(rf, refund_event("rfnd_x"), signature="")

        response = razorpay_webhook(request)

        assert response.status_code == 401
        assert b"Invalid signature" in response.content

    def test_invalid_signature_returns_401(self, rf, db):
        refund = RefundFactory()
        body = refund_event(refund.refund_id)

        response = razorpay_webhook(make_webhook_request(rf, body, signature="ab" * 32))

        assert response.status_code == 401
        refund.refresh_from_db()
        assert refund.status == RefundStatus.PENDING

    def test_get_not_allowed(self, rf, db):
        response = razorpay_webhook(rf.get("/api/v1/billing/webhooks/razorpay/"))

        assert response.status_code == 405


# =============================================================================
# Event Handling Tests
# =============================================================================


@pytest.mark.django_db
class TestRazorpayWebhookEvents:
    def test_processed_event_applied(self, rf, mailoutbox, django_capture_on_commit_callbacks):
        refund = RefundFactory()

        with django_capture_on_commit_callbacks(execute=True):
            response = razorpay_webhook(make_webhook_request(rf, refund_event(refund.refund_id)))

        assert response.status_code == 200
        assert response.content == b"Processed"
        refund.refresh_from_db()
        assert refund.status == RefundStatus.PROCESSED
        assert len(mailoutbox) == 1

    def test_duplicate_acknowledged(self, rf, mailoutbox, django_capture_on_commit_callbacks):
        refund = RefundFactory()
        body = refund_event(refund.refund_id)

        with django_capture_on_commit_callbacks(execute=True):
            razorpay_webhook(make_webhook_request(rf, body))
            response = razorpay_webhook(make_webhook_request(rf, body))

        assert response.status_code == 200
        assert response.content == b"Already processed"
        assert len(mailoutbox) == 1

    def test_unknown_refund_returns_404(self, rf):
        response = razorpay_webhook(make_webhook_request(rf, refund_event("rfnd_unknown")))

        assert response.status_code == 404

    def test_reversion_returns_409(self, rf):
        refund = RefundFactory(status=RefundStatus.FAILED, failed_at=timezone.now())

        response = razorpay_webhook(make_webhook_request(rf, refund_event(refund.refund_id)))

        assert response.status_code == 409
        refund.refresh_from_db()
        assert refund.status == RefundStatus.FAILED

    def test_malformed_returns_400(self, rf):
        response = razorpay_webhook(make_webhook_request(rf, b'{"event": '))

        assert response.status_code == 400

    def test_non_refund_event_returns_200(self, rf):
        body = json.dumps({"event": "payment.captured", "payload": {}}).encode()

        response = razorpay_webhook(make_webhook_request(rf, body))

        assert response.status_code == 200

    def test_unexpected_error_returns_500(self, rf):
        refund = RefundFactory()

        with patch(
            "billing.services.reconciliation_service.RefundService.apply_webhook_event",
            side_effect=RuntimeError("boom"),
        ):
            response = razorpay_webhook(make_webhook_request(rf, refund_event(refund.refund_id)))

        assert response.status_code == 500

    def test_routed_through_urlconf(self, client):
        refund = RefundFactory()
        body = refund_event(refund.refund_id)

        response = client.post(
            reverse("billing:razorpay_webhook"),
            data=body,
            content_type="application/json",
            HTTP_X_RAZORPAY_SIGNATURE=sign(body, "test_webhook_secret"),
        )

        assert response.status_code == 200
