"""Tests for webhook HMAC signing and verification."""

import hashlib
import hmac

from core.webhook_signing import (
    compute_signature,
    generate_webhook_secret,
    get_signature_header,
    verify_signature,
)

PAYLOAD = b'{"event": "order.paid", "amount": 120}'


class TestComputeSignature:
    """Signing a raw body."""

    def test_matches_hmac_sha256_hex(self):
        expected = hmac.new(b"secret", PAYLOAD, hashlib.sha256).hexdigest()
        assert compute_signature(PAYLOAD, "secret") == expected
        assert len(compute_signature(PAYLOAD, "secret")) == 64

    def test_different_secrets_different_signatures(self):
        assert compute_signature(PAYLOAD, "one") != compute_signature(PAYLOAD, "two")


class TestVerifySignature:
    """Inbound verification."""

    def test_valid_signature(self):
        assert verify_signature(PAYLOAD, compute_signature(PAYLOAD, "s3cret"), "s3cret") is True

    def test_prefix_and_case_tolerated(self):
        signature = compute_signature(PAYLOAD, "s3cret").upper()
        assert verify_signature(PAYLOAD, f"sha256={signature}", "s3cret") is True

    def test_tampered_body_rejected(self):
        signature = compute_signature(PAYLOAD, "s3cret")
        assert verify_signature(PAYLOAD + b" ", signature, "s3cret") is False

    def test_wrong_secret_rejected(self):
        assert verify_signature(PAYLOAD, compute_signature(PAYLOAD, "a"), "b") is False

    def test_garbage_rejected(self):
        assert verify_signature(PAYLOAD, "not-a-signature", "s3cret") is False
        assert verify_signature(PAYLOAD, "", "s3cret") is False


class TestSignatureHeader:
    """Header lookup."""

    def test_primary_header_wins(self):
        headers = {"x-webhook-signature": "aaa", "x-signature": "bbb"}
        assert get_signature_header(headers) == "aaa"

    def test_fallback_header(self):
        assert get_signature_header({"x-signature": "bbb"}) == "bbb"

    def test_absent(self):
        assert get_signature_header({"content-type": "application/json"}) is None


class TestGenerateWebhookSecret:
    def test_prefix_and_uniqueness(self):
        first, second = generate_webhook_secret(), generate_webhook_secret()
        assert first.startswith("whsec_")
        assert first != second
