"""
Vérification de signature des webhooks PayPal (sans appel à l'API verify-webhook-signature).

Message signé: "{transmission_id}|{transmission_time}|{webhook_id}|{crc32(body)}"
(CRC32 du corps brut, décimal non signé), signature base64 RSA PKCS#1 v1.5 / SHA-256
vérifiée avec la clé publique du certificat indiqué par PAYPAL-CERT-URL.

- Seuls les certificats servis en https par un hôte *.paypal.com sont acceptés
- Certificat mis en cache dans le store clé-valeur (TTL)
- Toute anomalie lève SignatureVerificationError
"""
import base64
import binascii
import hashlib
import logging
import zlib
from datetime import datetime, timezone
from typing import Mapping
from urllib.parse import urlparse

import httpx
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from marketplace import config
from marketplace.errors import SignatureVerificationError
from marketplace.infra import kv_store

logger = logging.getLogger(__name__)

TRANSMISSION_ID = "paypal-transmission-id"
TRANSMISSION_TIME = "paypal-transmission-time"
CERT_URL = "paypal-cert-url"
TRANSMISSION_SIG = "paypal-transmission-sig"
AUTH_ALGO = "paypal-auth-algo"

SUPPORTED_ALGO = "SHA256withRSA"
CERT_CACHE_TTL_SECONDS = 6 * 3600


def crc32(body: bytes) -> int:
    return zlib.crc32(body) & 0xFFFFFFFF


def expected_message(transmission_id: str, transmission_time: str, webhook_id: str, body: bytes) -> bytes:
    return f"{transmission_id}|{transmission_time}|{webhook_id}|{crc32(body)}".encode("utf-8")


def is_trusted_cert_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    host = (parsed.hostname or "").lower()
    return parsed.scheme == "https" and (host == "paypal.com" or host.endswith(".paypal.com"))


def _cert_cache_key(url: str) -> str:
    return "paypal:cert:" + hashlib.sha256(url.encode("utf-8")).hexdigest()


def fetch_certificate(url: str) -> x509.Certificate:
    if not is_trusted_cert_url(url):
        raise SignatureVerificationError(f"untrusted certificate url: {url}")

    pem = kv_store.kv_get(_cert_cache_key(url))
    if not pem:
        try:
            resp = httpx.get(url, timeout=config.PAYPAL_TIMEOUT_SECONDS)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise SignatureVerificationError(f"certificate download failed: {e}") from e
        pem = resp.text
        kv_store.kv_set(_cert_cache_key(url), pem, CERT_CACHE_TTL_SECONDS)

    try:
        cert = x509.load_pem_x509_certificate(pem.encode("utf-8"))
    except ValueError as e:
        kv_store.kv_delete(_cert_cache_key(url))
        raise SignatureVerificationError("invalid certificate") from e

    now = datetime.now(timezone.utc)
    if not (cert.not_valid_before_utc <= now <= cert.not_valid_after_utc):
        raise SignatureVerificationError("certificate not valid at current time")
    return cert


def verify_signature(headers: Mapping[str, str], body: bytes, webhook_id: str) -> None:
    """
    Vérifie la signature d'une livraison webhook.
    - headers: en-têtes HTTP (insensible à la casse)
    - body: corps brut, tel que reçu
    """
    h = {str(k).lower(): v for k, v in headers.items()}
    transmission_id = h.get(TRANSMISSION_ID)
    transmission_time = h.get(TRANSMISSION_TIME)
    cert_url = h.get(CERT_URL)
    signature = h.get(TRANSMISSION_SIG)
    if not (transmission_id and transmission_time and cert_url and signature):
        raise SignatureVerificationError("missing transmission headers")
    if not webhook_id:
        raise SignatureVerificationError("webhook id not configured")

    algo = h.get(AUTH_ALGO)
    if algo and algo != SUPPORTED_ALGO:
        raise SignatureVerificationError(f"unsupported auth algo: {algo}")

    try:
        raw_signature = base64.b64decode(signature, validate=True)
    except (binascii.Error, ValueError) as e:
        raise SignatureVerificationError("signature is not valid base64") from e

    public_key = fetch_certificate(cert_url).public_key()
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise SignatureVerificationError("certificate key is not RSA")

    try:
        public_key.verify(
            raw_signature,
            expected_message(transmission_id, transmission_time, webhook_id, body),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
    except InvalidSignature as e:
        raise SignatureVerificationError("signature mismatch") from e
