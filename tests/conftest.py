import os

# Avant tout import de marketplace (config lu à l'import)
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")
os.environ.setdefault("USE_FAKE_REDIS_FOR_TESTS", "1")

import pytest
import fakeredis
from typing import Generator, Dict, Any
from unittest.mock import MagicMock
from fastapi.testclient import TestClient

from marketplace.app import app as fastapi_app
from marketplace.infra import kv_store
from marketplace.utils.security import require_user

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

@pytest.fixture()
def fake_user() -> Dict[str, Any]:
    return {"id": "buyer-1", "email": "buyer@example.com", "token": "fake-token"}

# Simuler un utilisateur authentifié pour les endpoints protégés
@pytest.fixture(autouse=True)
def _override_require_user(app, fake_user):
    app.dependency_overrides[require_user] = lambda: fake_user
    try:
        yield
    finally:
        app.dependency_overrides.pop(require_user, None)

# Store clé-valeur vierge à chaque test
@pytest.fixture(autouse=True)
def kv(monkeypatch):
    r = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(kv_store, "_redis", r)
    return r

# Aucun accès Supabase réel
@pytest.fixture(autouse=True)
def mock_db_dependency(monkeypatch):
    monkeypatch.setattr("marketplace.infra.supabase_client.get_supabase", lambda: MagicMock())
    monkeypatch.setattr("marketplace.infra.supabase_client.get_service_supabase", lambda: MagicMock())

# Configuration PayPal de test
@pytest.fixture(autouse=True)
def paypal_config(monkeypatch):
    monkeypatch.setattr("marketplace.config.PAYPAL_CLIENT_ID", "client-id")
    monkeypatch.setattr("marketplace.config.PAYPAL_SECRET", "client-secret")
    monkeypatch.setattr("marketplace.config.PAYPAL_PARTNER_ID", "PARTNER123")
    monkeypatch.setattr("marketplace.config.PAYPAL_PLATFORM_MERCHANT_ID", "PLATFORM-M")
    monkeypatch.setattr("marketplace.config.PAYPAL_BN_CODE", "SOUNDMARKET_SP")
    monkeypatch.setattr("marketplace.config.PAYPAL_WEBHOOK_ID", "WH-123")
    monkeypatch.setattr("marketplace.config.PAYPAL_WEBHOOK_VERIFY_DISABLED", False)
    monkeypatch.setattr("marketplace.config.PAYMENT_CURRENCY", "USD")

# Certificat auto-signé + signature PayPal simulée (webhooks)
CERT_URL = "https://api.sandbox.paypal.com/v1/notifications/certs/CERT-test"

@pytest.fixture(scope="session")
def paypal_cert():
    import datetime
    from cryptography import x509
    from cryptography.x509.oid import NameOID
    from cryptography.hazmat.primitives import hashes, serialization
    from cryptography.hazmat.primitives.asymmetric import rsa

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "messageverificationcerts.paypal.com")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    return key, cert.public_bytes(serialization.Encoding.PEM).decode("utf-8")

@pytest.fixture()
def sign_webhook(paypal_cert, kv):
    """Retourne une fonction (body, transmission_id) -> en-têtes PayPal signés; certificat pré-chargé en cache."""
    import base64
    from cryptography.hazmat.primitives import hashes
    from cryptography.hazmat.primitives.asymmetric import padding
    from marketplace.webhooks import signature

    key, pem = paypal_cert
    kv.set(signature._cert_cache_key(CERT_URL), pem)

    def _sign(body: bytes, transmission_id: str = "tx-1", webhook_id: str = "WH-123") -> Dict[str, str]:
        transmission_time = "2024-01-01T00:00:00Z"
        message = signature.expected_message(transmission_id, transmission_time, webhook_id, body)
        sig = key.sign(message, padding.PKCS1v15(), hashes.SHA256())
        return {
            "PAYPAL-TRANSMISSION-ID": transmission_id,
            "PAYPAL-TRANSMISSION-TIME": transmission_time,
            "PAYPAL-CERT-URL": CERT_URL,
            "PAYPAL-TRANSMISSION-SIG": base64.b64encode(sig).decode("ascii"),
            "PAYPAL-AUTH-ALGO": "SHA256withRSA",
        }
    return _sign
