"""
Cas d'usage 'sellers': onboarding vendeur via Partner Referrals.
- start_onboarding: crée le vendeur si besoin, génère le lien d'onboarding, statut Pending
- complete_onboarding: complétion directe (interrogation du statut marchand par tracking_id)
- stop_selling: le vendeur se retire (Revoked, inactif)
- get_seller_status: vue lecture
"""
import logging
import time
from typing import Any, Dict, Optional

from marketplace import config
from marketplace.errors import (
    EligibilityConflictError,
    OnboardingError,
    PaymentConfigurationError,
    ProcessorError,
    SellerNotFoundError,
)
from marketplace.payments import paypal_client
from marketplace.payments.models import OnboardingStatus, Seller, SellerEligibilityEvent
from marketplace.sellers import eligibility
from marketplace.sellers import repository as sellers_repo

logger = logging.getLogger(__name__)


def new_tracking_id(user_id: str) -> str:
    return f"SELLER-{user_id}-{time.time_ns()}"


def seller_view(seller: Seller) -> Dict[str, Any]:
    return {
        "seller_id": seller.id,
        "onboarding_status": seller.onboarding_status.value,
        "is_active": seller.is_active,
        "merchant_id": seller.merchant_id,
        "commission_rate": f"{seller.commission_rate}",
        "payments_receivable": seller.payments_receivable,
        "primary_email_confirmed": seller.primary_email_confirmed,
        "referral_url": seller.referral_url,
    }


def start_onboarding(user_id: str, display_name: Optional[str] = None) -> Dict[str, Any]:
    """
    Démarre (ou relance) un cycle d'onboarding.
    - Vendeur déjà actif => OnboardingError
    - Nouveau tracking_id à chaque cycle (sortie de Revoked incluse)
    Retour: {"seller_id", "tracking_id", "referral_url"}
    """
    seller = sellers_repo.get_seller_by_user_id(user_id)
    if seller and seller.is_active:
        raise OnboardingError("Compte vendeur déjà actif")
    if seller is None:
        seller = sellers_repo.create_seller(
            user_id=user_id,
            commission_rate=config.DEFAULT_COMMISSION_RATE,
            display_name=display_name,
        )
        if seller is None:
            raise OnboardingError("Création du compte vendeur impossible")

    tracking_id = new_tracking_id(user_id)
    referral = paypal_client.create_partner_referral(tracking_id)
    if not sellers_repo.start_onboarding_cycle(seller.id, tracking_id=tracking_id, referral_url=referral.action_url):
        raise OnboardingError("Enregistrement de l'onboarding impossible")

    logger.info("sellers.service onboarding started seller=%s tracking_id=%s", seller.id, tracking_id)
    return {"seller_id": seller.id, "tracking_id": tracking_id, "referral_url": referral.action_url}


def _status_event(tracking_id: str, status: paypal_client.MerchantStatus) -> SellerEligibilityEvent:
    return SellerEligibilityEvent(
        source="direct",
        status=OnboardingStatus.COMPLETED,
        tracking_id=tracking_id,
        merchant_id=status.merchant_id,
        payments_receivable=status.payments_receivable,
        primary_email_confirmed=status.primary_email_confirmed,
    )


def _lookup_status(seller: Seller, merchant_id_hint: Optional[str]) -> Optional[paypal_client.MerchantStatus]:
    """Statut marchand: par tracking_id, sinon par l'identifiant marchand de l'URL de retour."""
    try:
        status = paypal_client.get_merchant_status_by_tracking_id(seller.tracking_id)
        if status.merchant_id:
            return status
    except (ProcessorError, PaymentConfigurationError) as e:
        logger.warning("sellers.service merchant status by tracking_id unavailable seller=%s: %s", seller.id, e)
    if not merchant_id_hint:
        return None
    try:
        status = paypal_client.get_merchant_status(merchant_id_hint)
        if status.merchant_id:
            return status
    except (ProcessorError, PaymentConfigurationError) as e:
        logger.warning("sellers.service merchant status by merchant_id unavailable seller=%s: %s", seller.id, e)
    return None


def complete_onboarding(user_id: str, merchant_id_hint: Optional[str] = None) -> Dict[str, Any]:
    """
    Complétion directe au retour du vendeur.
    - Interroge PayPal (tracking_id puis merchant_id de retour) et applique le résultat comme événement 'direct'
    - Statut indisponible mais merchant_id fourni par l'URL de retour: l'identifiant est lié,
      drapeaux à False (le vendeur reste Pending, le webhook terminera)
    - Ni statut ni indice => OnboardingError
    """
    seller = sellers_repo.get_seller_by_user_id(user_id)
    if seller is None:
        raise SellerNotFoundError(user_id)
    if not seller.tracking_id:
        raise OnboardingError("Aucun onboarding en cours")

    status = _lookup_status(seller, merchant_id_hint)
    if status is not None:
        event = _status_event(seller.tracking_id, status)
    elif merchant_id_hint:
        event = SellerEligibilityEvent(
            source="direct",
            status=OnboardingStatus.COMPLETED,
            tracking_id=seller.tracking_id,
            merchant_id=merchant_id_hint,
        )
    else:
        raise OnboardingError("Statut marchand indisponible")

    eligibility.apply_eligibility_event(event)
    refreshed = sellers_repo.get_seller_by_id(seller.id) or seller
    return seller_view(refreshed)


def get_seller_status(user_id: str) -> Dict[str, Any]:
    seller = sellers_repo.get_seller_by_user_id(user_id)
    if seller is None:
        return {"onboarding_status": OnboardingStatus.NOT_STARTED.value, "is_active": False}
    return seller_view(seller)


def stop_selling(user_id: str) -> Dict[str, Any]:
    """
    Le vendeur quitte la place de marché: statut Revoked, inactif.
    - Ses articles sortent immédiatement du paiement partagé (routage vers Standard)
    - Un webhook de complétion rejoué ne le réactive pas; seul un nouvel onboarding le peut
    - Idempotent si déjà Revoked
    """
    for _ in range(eligibility.MAX_CAS_ATTEMPTS):
        seller = sellers_repo.get_seller_by_user_id(user_id)
        if seller is None:
            raise SellerNotFoundError(user_id)
        if seller.onboarding_status == OnboardingStatus.REVOKED and not seller.is_active:
            return seller_view(seller)
        if sellers_repo.deactivate_seller(seller.id, seller.onboarding_status):
            logger.info("sellers.service seller stopped selling seller=%s", seller.id)
            return seller_view(seller.model_copy(update={"onboarding_status": OnboardingStatus.REVOKED, "is_active": False}))
    raise EligibilityConflictError(f"stop selling conflict user_id={user_id}")
