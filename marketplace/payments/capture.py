"""
Moteur de capture / vérification.

- capture_payment(external_id, mode): Standard => capture standard,
  modes split => capture multiparty (jamais l'appel standard)
- verify_payment(external_id): lecture de la commande (client ayant déjà capturé)
- Résultat: CaptureResult (Captured / Declined / Indeterminate); ne lève jamais

Seul le statut littéral "COMPLETED" vaut succès. Les 5xx, timeouts, incidents de
transport et statuts non terminaux donnent Indeterminate (journalisé en ERROR pour
suivi manuel); la commande interne reste alors "Created".
"""
import logging
from typing import Any, Dict, Optional, Tuple

from marketplace.errors import PaymentConfigurationError, ProcessorError
from marketplace.payments import paypal_client
from marketplace.payments.models import CaptureOutcome, CaptureResult, PaymentMode

logger = logging.getLogger(__name__)

COMPLETED = "COMPLETED"

GENERIC_DECLINE: Tuple[str, str] = (
    "generic",
    "Paiement refusé. Veuillez réessayer ou utiliser un autre moyen de paiement.",
)

DECLINE_REASONS: Dict[str, Tuple[str, str]] = {
    "INSUFFICIENT_FUNDS": (
        "insufficient_funds",
        "Fonds insuffisants. Veuillez utiliser un autre moyen de paiement.",
    ),
    "CARD_EXPIRED": ("expired_instrument", "Moyen de paiement expiré. Veuillez le mettre à jour."),
    "EXPIRED_CARD": ("expired_instrument", "Moyen de paiement expiré. Veuillez le mettre à jour."),
    "CVV2_FAILURE": ("security_code_mismatch", "Code de sécurité invalide. Vérifiez le cryptogramme."),
    "INVALID_SECURITY_CODE": ("security_code_mismatch", "Code de sécurité invalide. Vérifiez le cryptogramme."),
    "PAYER_ACCOUNT_RESTRICTED": ("account_restricted", "Compte restreint. Contactez PayPal ou changez de compte."),
    "PAYER_ACCOUNT_LOCKED_OR_CLOSED": ("account_restricted", "Compte restreint. Contactez PayPal ou changez de compte."),
    "ACCOUNT_RESTRICTED": ("account_restricted", "Compte restreint. Contactez PayPal ou changez de compte."),
    "DUPLICATE_INVOICE_ID": ("duplicate_transaction", "Transaction en double détectée. Aucun nouveau débit n'a été effectué."),
    "DUPLICATE_TRANSACTION": ("duplicate_transaction", "Transaction en double détectée. Aucun nouveau débit n'a été effectué."),
}

INDETERMINATE_MESSAGE = "Le paiement n'a pas pu être confirmé. Veuillez réessayer dans un instant."


def declined(issue: Optional[str]) -> CaptureResult:
    reason, message = DECLINE_REASONS.get((issue or "").upper(), GENERIC_DECLINE)
    return CaptureResult(CaptureOutcome.DECLINED, reason=reason, message=message)


def indeterminate(reason: str) -> CaptureResult:
    return CaptureResult(CaptureOutcome.INDETERMINATE, reason=reason, message=INDETERMINATE_MESSAGE)


def _first_capture(order: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    for unit in order.get("purchase_units") or []:
        captures = (unit.get("payments") or {}).get("captures") or []
        if captures:
            return captures[0]
    return None


def map_order_status(order: Dict[str, Any]) -> CaptureResult:
    """Traduit la représentation PayPal d'une commande (capture ou lecture) en CaptureResult."""
    status = str(order.get("status") or "").upper()
    capture = _first_capture(order) or {}
    capture_status = str(capture.get("status") or "").upper()

    if capture_status == "DECLINED":
        return declined(None)
    if status == COMPLETED:
        return CaptureResult(CaptureOutcome.CAPTURED, capture_id=capture.get("id"))
    if status == "VOIDED":
        return declined(None)
    logger.error(
        "payments.capture non-terminal status order=%s status=%s capture_status=%s",
        order.get("id"), status, capture_status,
    )
    return indeterminate(f"status_{status.lower() or 'unknown'}")


def _map_processor_error(external_order_id: str, err: ProcessorError) -> CaptureResult:
    if err.status_code in (400, 422) and err.issue:
        if err.issue.upper() == "ORDER_ALREADY_CAPTURED":
            logger.info("payments.capture order already captured, verifying order=%s", external_order_id)
            return verify_payment(external_order_id)
        return declined(err.issue)
    if err.status_code in (400, 422):
        return declined(None)
    logger.error(
        "payments.capture indeterminate order=%s status=%s issue=%s debug_id=%s timeout=%s",
        external_order_id, err.status_code, err.issue, err.debug_id, err.timeout,
    )
    return indeterminate("timeout" if err.timeout else "processor_error")


def capture_payment(external_order_id: str, mode: PaymentMode) -> CaptureResult:
    try:
        if PaymentMode(mode).is_split:
            order = paypal_client.capture_multiparty_order(external_order_id)
        else:
            order = paypal_client.capture_order(external_order_id)
    except ProcessorError as e:
        return _map_processor_error(external_order_id, e)
    except PaymentConfigurationError:
        logger.error("payments.capture configuration missing order=%s", external_order_id)
        return indeterminate("configuration")
    return map_order_status(order)


def verify_payment(external_order_id: str) -> CaptureResult:
    """Vérifie une commande déjà capturée côté client: succès uniquement sur COMPLETED."""
    try:
        order = paypal_client.get_order(external_order_id)
    except ProcessorError as e:
        logger.error(
            "payments.capture verify failed order=%s status=%s issue=%s",
            external_order_id, e.status_code, e.issue,
        )
        return indeterminate("timeout" if e.timeout else "processor_error")
    except PaymentConfigurationError:
        logger.error("payments.capture configuration missing order=%s", external_order_id)
        return indeterminate("configuration")
    return map_order_status(order)
