"""
Tests for HMAC signature helpers.
"""

import hashlib
import hmac

import pytest

from billing.signatures import (
    payment_confirmation_payload,
    sign,
    verify,
    verify_payment_confirmation,
    verify_webhook,
)

SECRET = "whsec_test"
BODY = b'{"event":"refund.processed","payload":{"refund":{"entity":{"id":"rfnd_1"}}}}'


class TestSign:
    def test_matches_hmac_sha256_hexdigest(self):
        expected = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()

        assert sign(BODY, SECRET) == expected

    def test_accepts_str_and_bytes_alike(self):
        assert sign(BODY.decode(), SECRET) == sign(BODY, SECRET.encode())

    def test_output_is_lowercase_hex(self):
        digest = sign(BODY, SECRET)

        assert len(digest) == 64
        assert digest == digest.lower()


class TestVerify:
    def test_round_trip(self):
        assert verify(sign(BODY, SECRET), BODY, SECRET) is True

    def test_surrounding_whitespace_is_ignored(self):
        assert verify(f"  {sign(BODY, SECRET)}\n", BODY, SECRET) is True

    def test_single_flipped_hex_digit_fails(self):
        digest = sign(BODY, SECRET)
        flipped = ("1" if digest[0] == "0" else "0") + digest[1:]

        assert verify(flipped, BODY, SECRET) is False

    def test_uppercase_digest_is_accepted(self):
        digest = sign(BODY, SECRET)
        if digest.upper() == digest:
            pytest.skip("digest has no letters")

        assert verify(digest.upper(), BODY, SECRET) is True

    def test_payment_confirmation_accepts_uppercase(self):
        signature = sign(payment_confirmation_payload("order_1", "pay_1"), SECRET).upper()

        assert verify_payment_confirmation("order_1", "pay_1", signature, SECRET) is True

    def test_body_changed_by_one_byte_fails(self):
        signature = sign(BODY, SECRET)

        assert verify(signature, BODY + b" ", SECRET) is False

    def test_wrong_secret_fails(self):
        assert verify(sign(BODY, SECRET), BODY, "other") is False

    @pytest.mark.parametrize("candidate", [None, "", "   "])
    def test_missing_candidate_fails(self, candidate):
        assert verify(candidate, BODY, SECRET) is False

    @pytest.mark.parametrize("secret", [None, ""])
    def test_missing_secret_fails(self, secret):
        assert verify(sign(BODY, "x"), BODY, secret) is False

    def test_non_ascii_candidate_fails_without_raising(self):
        assert verify("é" * 64, BODY, SECRET) is False


class TestPaymentConfirmation:
    def test_payload_is_order_pipe_payment(self):
        assert payment_confirmation_payload("order_1", "pay_1") == b"order_1|pay_1"

    def test_valid_confirmation(self):
        signature = sign("order_1|pay_1", "key_secret")

        assert verify_payment_confirmation("order_1", "pay_1", signature, "key_secret")

    def test_swapped_ids_fail(self):
        signature = sign("order_1|pay_1", "key_secret")

        assert not verify_payment_confirmation("pay_1", "order_1", signature, "key_secret")


class TestVerifyWebhook:
    def test_valid(self):
        assert verify_webhook(BODY, sign(BODY, SECRET), SECRET)

    def test_reserialized_body_fails(self):
        signature = sign(BODY, SECRET)
        reserialized = BODY.replace(b":", b": ")

        assert not verify_webhook(reserialized, signature, SECRET)
