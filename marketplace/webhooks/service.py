"""
Passerelle d'ingestion des webhooks PayPal.

1) Vérification de signature (seul motif de rejet avec le JSON invalide)
2) Déduplication par transmission id (store clé-valeur): réservation atomique (SET NX) puis 24 h
   après succès; en échec la réservation est libérée et la livraison reste rejouable
3) Dispatch:
   - MERCHANT.ONBOARDING.COMPLETED     -> événement Completed
   - MERCHANT.PARTNER-CONSENT.REVOKED  -> événement Revoked
   - autres                            -> {"status": "ignored"}
   Vendeur introuvable => {"status": "seller_not_found"} (acquitté, pas de nouvel envoi)
"""
import json
import logging
from typing import Any, Dict, Mapping

from marketplace import config
from marketplace.errors import WebhookPayloadError
from marketplace.infra import kv_store
from marketplace.payments.models import OnboardingStatus, SellerEligibilityEvent
from marketplace.sellers import eligibility
from marketplace.webhooks import signature

logger = logging.getLogger(__name__)

ONBOARDING_COMPLETED = "MERCHANT.ONBOARDING.COMPLETED"
CONSENT_REVOKED = "MERCHANT.PARTNER-CONSENT.REVOKED"

DEDUP_TTL_SECONDS = 24 * 3600
# Durée max d'un traitement en cours avant qu'un renvoi puisse le reprendre
CLAIM_TTL_SECONDS = 120


def _dedup_key(delivery_id: str) -> str:
    return f"paypal:webhook:{delivery_id}"


def parse_event(body: bytes) -> Dict[str, Any]:
    try:
        event = json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise WebhookPayloadError("invalid JSON") from e
    if not isinstance(event, dict):
        raise WebhookPayloadError("unexpected envelope")
    return event


def to_eligibility_event(event_type: str, resource: Mapping[str, Any]) -> SellerEligibilityEvent:
    status = OnboardingStatus.COMPLETED if event_type == ONBOARDING_COMPLETED else OnboardingStatus.REVOKED
    return SellerEligibilityEvent(
        source="webhook",
        status=status,
        tracking_id=resource.get("tracking_id") or None,
        merchant_id=resource.get("merchant_id") or None,
        payments_receivable=bool(resource.get("payments_receivable")),
        primary_email_confirmed=bool(resource.get("primary_email_confirmed")),
    )


def dispatch(event: Dict[str, Any]) -> Dict[str, Any]:
    event_type = event.get("event_type") or ""
    if event_type not in (ONBOARDING_COMPLETED, CONSENT_REVOKED):
        logger.info("webhooks.service ignored event_type=%s id=%s", event_type, event.get("id"))
        return {"status": "ignored", "event_type": event_type}

    resource = event.get("resource")
    if not isinstance(resource, dict):
        resource = {}
    outcome = eligibility.apply_eligibility_event(to_eligibility_event(event_type, resource))
    if outcome is None:
        logger.warning(
            "webhooks.service seller not found event_type=%s tracking_id=%s merchant_id=%s",
            event_type, resource.get("tracking_id"), resource.get("merchant_id"),
        )
        return {"status": "seller_not_found"}
    return {
        "status": "success",
        "seller_id": outcome.seller_id,
        "onboarding_status": outcome.status.value,
        "is_active": outcome.is_active,
    }


def handle_paypal_webhook(headers: Mapping[str, str], body: bytes) -> Dict[str, Any]:
    """
    Traite une livraison webhook.
    - SignatureVerificationError / WebhookPayloadError remontent à la vue (400)
    """
    if config.PAYPAL_WEBHOOK_VERIFY_DISABLED:
        logger.warning("webhooks.service signature verification DISABLED (local development only)")
    else:
        signature.verify_signature(headers, body, config.PAYPAL_WEBHOOK_ID)

    event = parse_event(body)

    h = {str(k).lower(): v for k, v in headers.items()}
    delivery_id = h.get(signature.TRANSMISSION_ID) or event.get("id")
    key = _dedup_key(delivery_id) if delivery_id else None
    # Réservation atomique: une livraison concurrente identique est acquittée sans traitement
    if key and not kv_store.kv_set_if_absent(key, "processing", CLAIM_TTL_SECONDS):
        logger.info("webhooks.service duplicate delivery id=%s", delivery_id)
        return {"status": "duplicate"}

    try:
        result = dispatch(event)
    except Exception:
        # Réservation libérée: le renvoi de PayPal sera traité
        if key:
            kv_store.kv_delete(key)
        raise

    if key:
        kv_store.kv_set(key, result.get("status", "processed"), DEDUP_TTL_SECONDS)
    return result
