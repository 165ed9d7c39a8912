import zlib

import httpx
import pytest

from marketplace.errors import SignatureVerificationError
from marketplace.webhooks import signature

BODY = b'{"id":"WH-EVT-1","event_type":"MERCHANT.ONBOARDING.COMPLETED"}'


def test_crc32_is_unsigned_decimal():
    assert signature.crc32(BODY) == zlib.crc32(BODY) & 0xFFFFFFFF
    assert signature.crc32(b"\xff" * 8) >= 0
    assert signature.expected_message("t", "time", "WH", BODY) == f"t|time|WH|{signature.crc32(BODY)}".encode()


def test_valid_signature_passes(sign_webhook):
    signature.verify_signature(sign_webhook(BODY), BODY, "WH-123")


def test_tampered_body_is_rejected(sign_webhook):
    headers = sign_webhook(BODY)
    with pytest.raises(SignatureVerificationError):
        signature.verify_signature(headers, BODY + b" ", "WH-123")


def test_other_webhook_id_is_rejected(sign_webhook):
    with pytest.raises(SignatureVerificationError):
        signature.verify_signature(sign_webhook(BODY), BODY, "WH-OTHER")


def test_missing_headers_or_webhook_id_are_rejected(sign_webhook):
    headers = sign_webhook(BODY)
    del headers["PAYPAL-TRANSMISSION-SIG"]
    with pytest.raises(SignatureVerificationError):
        signature.verify_signature(headers, BODY, "WH-123")
    with pytest.raises(SignatureVerificationError):
        signature.verify_signature(sign_webhook(BODY), BODY, "")


def test_headers_are_case_insensitive(sign_webhook):
    headers = {k.lower(): v for k, v in sign_webhook(BODY).items()}
    signature.verify_signature(headers, BODY, "WH-123")


@pytest.mark.parametrize(
    "url",
    [
        "http://api.paypal.com/cert",
        "https://paypal.com.evil.test/cert",
        "https://evil.test/paypal.com",
        "https://notpaypal.com/cert",
    ],
)
def test_untrusted_cert_urls(url):
    assert not signature.is_trusted_cert_url(url)
    with pytest.raises(SignatureVerificationError):
        signature.fetch_certificate(url)


def test_certificate_downloaded_once_then_cached(monkeypatch, paypal_cert, kv):
    _, pem = paypal_cert
    url = "https://api.paypal.com/v1/notifications/certs/CERT-dl"
    calls = []

    def fake_get(u, timeout=None):
        calls.append(u)
        return httpx.Response(200, text=pem, request=httpx.Request("GET", u))

    monkeypatch.setattr(signature.httpx, "get", fake_get)
    signature.fetch_certificate(url)
    signature.fetch_certificate(url)
    assert calls == [url]


def test_certificate_download_failure_is_rejected(monkeypatch):
    url = "https://api.paypal.com/v1/notifications/certs/CERT-404"
    monkeypatch.setattr(
        signature.httpx, "get", lambda u, timeout=None: httpx.Response(404, request=httpx.Request("GET", u))
    )
    with pytest.raises(SignatureVerificationError):
        signature.fetch_certificate(url)
