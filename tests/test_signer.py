"""Tests for webhook payload signing."""
import hashlib
import hmac

from webhook_dispatch.services.signer import sign_payload, verify_signature


def test_signature_is_prefixed_hex_hmac():
    body = b'{"event":"call.completed","timestamp":"2026-01-01T00:00:00.000Z","data":{"callId":"c1"}}'

    signature = sign_payload(body, "s3cret")

    expected = hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()
    assert signature == f"sha256={expected}"


def test_signature_is_deterministic():
    body = b'{"a":1}'
    assert sign_payload(body, "k") == sign_payload(body, "k")


def test_signature_depends_on_exact_bytes():
    # Same JSON value, different serialization
    assert sign_payload(b'{"a":1}', "k") != sign_payload(b'{"a": 1}', "k")


def test_missing_secret_gives_empty_signature():
    assert sign_payload(b"{}", None) == ""
    assert sign_payload(b"{}", "") == ""


def test_verify_signature():
    body = b'{"event":"lead.created"}'
    header = sign_payload(body, "s3cret")

    assert verify_signature(body, "s3cret", header)
    assert not verify_signature(body, "other", header)
    assert not verify_signature(body + b" ", "s3cret", header)
