"""
Adaptateur PayPal REST: centralise les appels et la configuration PayPal.
- Jeton OAuth2 client_credentials mis en cache dans le store clé-valeur (TTL = expires_in - 60)
- Orders v2: création, capture (standard / multiparty), lecture
- Partner Referrals: création du lien d'onboarding vendeur, statut marchand
- Un client httpx partagé (base_url + timeout PAYPAL_TIMEOUT_SECONDS)

Erreurs: toute réponse non-2xx, tout timeout ou incident de transport lève ProcessorError
(status_code, issue, debug_id); identifiants absents => PaymentConfigurationError.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from marketplace import config
from marketplace.errors import PaymentConfigurationError, ProcessorError
from marketplace.infra import kv_store

logger = logging.getLogger(__name__)

_client: Optional[httpx.Client] = None


@dataclass
class PartnerReferral:
    tracking_id: str
    action_url: str


@dataclass
class MerchantStatus:
    merchant_id: Optional[str] = None
    tracking_id: Optional[str] = None
    payments_receivable: bool = False
    primary_email_confirmed: bool = False


# module marketplace.payments.paypal_client
def require_paypal() -> None:
    """Vérifie la présence des identifiants REST; sinon PaymentConfigurationError (journalisée, jamais exposée)."""
    if not (config.is_configured(config.PAYPAL_CLIENT_ID) and config.is_configured(config.PAYPAL_SECRET)):
        logger.error("payments.paypal_client credentials missing")
        raise PaymentConfigurationError("PAYPAL_CLIENT_ID / PAYPAL_SECRET manquants")


def get_http_client() -> httpx.Client:
    global _client
    if _client is None:
        _client = httpx.Client(
            base_url=config.PAYPAL_API_BASE_URL,
            timeout=config.PAYPAL_TIMEOUT_SECONDS,
        )
    return _client


def _error_from_response(resp: httpx.Response) -> ProcessorError:
    """
    Corps d'erreur PayPal: {"name": "...", "details": [{"issue": "..."}], "debug_id": "..."}
    (OAuth: {"error": "...", "error_description": "..."}).
    """
    issue = None
    debug_id = None
    try:
        body = resp.json()
    except ValueError:
        body = {}
    if isinstance(body, dict):
        details = body.get("details") or []
        if details and isinstance(details[0], dict):
            issue = details[0].get("issue")
        issue = issue or body.get("name") or body.get("error")
        debug_id = body.get("debug_id")
    return ProcessorError(
        f"PayPal HTTP {resp.status_code}",
        status_code=resp.status_code,
        issue=issue,
        debug_id=debug_id,
    )


def _send(method: str, path: str, **kwargs) -> Dict[str, Any]:
    try:
        resp = get_http_client().request(method, path, **kwargs)
    except httpx.TimeoutException as e:
        logger.error("payments.paypal_client timeout %s %s", method, path)
        raise ProcessorError(f"PayPal timeout on {path}", timeout=True) from e
    except httpx.HTTPError as e:
        logger.error("payments.paypal_client transport error %s %s: %s", method, path, e)
        raise ProcessorError(f"PayPal transport error on {path}") from e

    if resp.status_code >= 400:
        err = _error_from_response(resp)
        logger.warning(
            "payments.paypal_client %s %s failed status=%s issue=%s debug_id=%s",
            method, path, err.status_code, err.issue, err.debug_id,
        )
        raise err
    if not resp.content:
        return {}
    try:
        return resp.json()
    except ValueError as e:
        raise ProcessorError(f"PayPal invalid JSON on {path}", status_code=resp.status_code) from e


def _token_cache_key() -> str:
    return f"paypal:access_token:{config.PAYPAL_CLIENT_ID}"


def get_access_token() -> str:
    """
    Jeton d'accès OAuth2 (client_credentials).
    Mis en cache dans le store partagé, pas en mémoire du process.
    """
    require_paypal()
    cached = kv_store.kv_get(_token_cache_key())
    if cached:
        return cached

    data = _send(
        "POST",
        "/v1/oauth2/token",
        data={"grant_type": "client_credentials"},
        auth=(config.PAYPAL_CLIENT_ID, config.PAYPAL_SECRET),
        headers={"Accept": "application/json"},
    )
    token = data.get("access_token")
    if not token:
        raise ProcessorError("PayPal token response without access_token")
    expires_in = int(data.get("expires_in") or 0)
    if expires_in > 60:
        kv_store.kv_set(_token_cache_key(), token, expires_in - 60)
    return token


def _headers(*, partner: bool = False, representation: bool = False) -> Dict[str, str]:
    headers = {
        "Authorization": f"Bearer {get_access_token()}",
        "Content-Type": "application/json",
    }
    if partner and config.PAYPAL_BN_CODE:
        headers["PayPal-Partner-Attribution-Id"] = config.PAYPAL_BN_CODE
    if representation:
        headers["Prefer"] = "return=representation"
    return headers


def create_order(payload: Dict[str, Any], *, partner: bool = False) -> Dict[str, Any]:
    """
    Crée une commande Orders v2.
    - partner=True pour les commandes à paiement partagé (attribution partenaire)
    Retour: dict commande ({"id": "...", "status": "CREATED", "links": [...]})
    """
    return _send(
        "POST",
        "/v2/checkout/orders",
        content=json.dumps(payload),
        headers=_headers(partner=partner, representation=True),
    )


def capture_order(external_order_id: str) -> Dict[str, Any]:
    """Capture standard (mode Standard uniquement)."""
    return _send(
        "POST",
        f"/v2/checkout/orders/{external_order_id}/capture",
        headers=_headers(),
    )


def capture_multiparty_order(external_order_id: str) -> Dict[str, Any]:
    """
    Capture multiparty (modes split): envoyée avec l'attribution partenaire et
    Prefer: return=representation pour que la répartition des frais soit honorée.
    """
    return _send(
        "POST",
        f"/v2/checkout/orders/{external_order_id}/capture",
        headers=_headers(partner=True, representation=True),
    )


def get_order(external_order_id: str) -> Dict[str, Any]:
    return _send(
        "GET",
        f"/v2/checkout/orders/{external_order_id}",
        headers=_headers(partner=True),
    )


def approval_url(order: Dict[str, Any]) -> Optional[str]:
    for link in order.get("links") or []:
        if link.get("rel") in ("approve", "payer-action"):
            return link.get("href")
    return None


def create_partner_referral(tracking_id: str) -> PartnerReferral:
    """
    Crée un lien d'onboarding vendeur (Partner Referrals v2).
    Le lien de retour porte le tracking_id pour la complétion directe.
    """
    base = config.RETURN_BASE_URL
    payload = {
        "tracking_id": tracking_id,
        "partner_config_override": {
            "return_url": f"{base}/manage-account?seller_onboarding=complete&tracking_id={tracking_id}",
            "return_url_description": f"Retour vers {config.BRAND_NAME} pour terminer l'inscription vendeur.",
            "action_renewal_url": f"{base}/manage-account?seller_onboarding=renew&tracking_id={tracking_id}",
        },
        "operations": [
            {
                "operation": "API_INTEGRATION",
                "api_integration_preference": {
                    "rest_api_integration": {
                        "integration_method": "PAYPAL",
                        "integration_type": "THIRD_PARTY",
                        "third_party_details": {"features": ["PAYMENT", "REFUND", "PARTNER_FEE"]},
                    }
                },
            }
        ],
        "products": ["EXPRESS_CHECKOUT"],
        "legal_consents": [{"type": "SHARE_DATA_CONSENT", "granted": True}],
    }
    data = _send(
        "POST",
        "/v2/customer/partner-referrals",
        content=json.dumps(payload),
        headers=_headers(partner=True, representation=True),
    )
    for link in data.get("links") or []:
        if link.get("rel") == "action_url" and link.get("href"):
            return PartnerReferral(tracking_id=tracking_id, action_url=link["href"])
    raise ProcessorError("PayPal partner referral without action_url")


def _parse_merchant_status(data: Dict[str, Any]) -> MerchantStatus:
    return MerchantStatus(
        merchant_id=data.get("merchant_id") or None,
        tracking_id=data.get("tracking_id") or None,
        payments_receivable=bool(data.get("payments_receivable")),
        primary_email_confirmed=bool(data.get("primary_email_confirmed")),
    )


def _require_partner_id() -> str:
    if not config.is_configured(config.PAYPAL_PARTNER_ID):
        logger.error("payments.paypal_client PAYPAL_PARTNER_ID missing")
        raise PaymentConfigurationError("PAYPAL_PARTNER_ID manquant")
    return config.PAYPAL_PARTNER_ID


def get_merchant_status_by_tracking_id(tracking_id: str) -> MerchantStatus:
    partner_id = _require_partner_id()
    data = _send(
        "GET",
        f"/v1/customer/partners/{partner_id}/merchant-integrations",
        params={"tracking_id": tracking_id},
        headers=_headers(partner=True),
    )
    return _parse_merchant_status(data)


def get_merchant_status(merchant_id: str) -> MerchantStatus:
    partner_id = _require_partner_id()
    data = _send(
        "GET",
        f"/v1/customer/partners/{partner_id}/merchant-integrations/{merchant_id}",
        headers=_headers(partner=True),
    )
    return _parse_merchant_status(data)
