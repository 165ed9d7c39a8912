"""
Accès aux données vendeurs (table 'sellers').
- Lectures: par id, user_id, tracking_id, merchant_id, lot d'ids
- Écritures: création, mise à jour conditionnelle de l'éligibilité (CAS sur onboarding_status),
  démarrage d'un cycle d'onboarding
Les vendeurs ne sont jamais supprimés.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional
from uuid import uuid4
import logging

import marketplace.infra.supabase_client as supabase_client
from marketplace.payments.models import OnboardingStatus, Seller

logger = logging.getLogger(__name__)

TABLE = "sellers"


def _to_seller(row: Dict[str, Any]) -> Seller:
    data = dict(row)
    if data.get("commission_rate") is not None:
        data["commission_rate"] = Decimal(str(data["commission_rate"]))
    return Seller(**{k: v for k, v in data.items() if k in Seller.model_fields})


def _select_one(column: str, value: str) -> Optional[Seller]:
    if not value:
        return None
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .select("*")
            .eq(column, value)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return _to_seller(rows[0]) if rows else None
    except Exception:
        logger.exception("sellers.repository select failed %s=%s", column, value)
        return None

# module marketplace.sellers.repository
def get_seller_by_id(seller_id: str) -> Optional[Seller]:
    return _select_one("id", seller_id)

def get_seller_by_user_id(user_id: str) -> Optional[Seller]:
    return _select_one("user_id", user_id)

def get_seller_by_tracking_id(tracking_id: str) -> Optional[Seller]:
    return _select_one("tracking_id", tracking_id)

def get_seller_by_merchant_id(merchant_id: str) -> Optional[Seller]:
    return _select_one("merchant_id", merchant_id)

def get_sellers_by_ids(ids: Iterable[str]) -> Dict[str, Seller]:
    """
    Retourne {id: Seller}; les ids inconnus sont absents du dict.
    - {} si ids vide ou en cas d'erreur (le routage retombe alors en Standard)
    """
    ids = [str(i) for i in ids if i]
    if not ids:
        return {}
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .select("*")
            .in_("id", ids)
            .execute()
        )
        sellers = [_to_seller(r) for r in (res.data or [])]
        return {s.id: s for s in sellers}
    except Exception:
        logger.exception("sellers.repository.get_sellers_by_ids failed ids=%s", ids)
        return {}

def create_seller(*, user_id: str, commission_rate: Decimal, display_name: Optional[str] = None) -> Optional[Seller]:
    """
    Crée l'enregistrement vendeur (statut NotStarted, inactif).
    - Un taux hors [0,1] est refusé par la validation du modèle Seller (ValueError)
    """
    seller = Seller(id=str(uuid4()), user_id=user_id, commission_rate=commission_rate)
    row = {
        "id": seller.id,
        "user_id": user_id,
        "display_name": display_name,
        "commission_rate": str(seller.commission_rate),
        "onboarding_status": seller.onboarding_status.value,
        "is_active": False,
        "payments_receivable": False,
        "primary_email_confirmed": False,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    try:
        supabase_client.get_service_supabase().table(TABLE).insert(row).execute()
        return seller
    except Exception:
        logger.exception("sellers.repository.create_seller failed user_id=%s", user_id)
        return None

def update_eligibility(seller_id: str, expected_status: OnboardingStatus, changes: Dict[str, Any]) -> bool:
    """
    Mise à jour conditionnelle (CAS optimiste):
    UPDATE sellers SET ... WHERE id=? AND onboarding_status=<statut lu>
    - True si la ligne a été mise à jour, False si un autre écrivain est passé entre-temps
    """
    payload = dict(changes)
    if isinstance(payload.get("onboarding_status"), OnboardingStatus):
        payload["onboarding_status"] = payload["onboarding_status"].value
    payload["updated_at"] = datetime.now(timezone.utc).isoformat()
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .update(payload)
            .eq("id", seller_id)
            .eq("onboarding_status", OnboardingStatus(expected_status).value)
            .execute()
        )
        return bool(res.data)
    except Exception:
        logger.exception("sellers.repository.update_eligibility failed id=%s", seller_id)
        return False

def start_onboarding_cycle(seller_id: str, *, tracking_id: str, referral_url: str) -> bool:
    """
    Nouveau cycle d'onboarding: statut Pending, nouveau tracking_id, drapeaux remis à zéro.
    Seule sortie possible de l'état Revoked.
    """
    try:
        (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .update({
                "onboarding_status": OnboardingStatus.PENDING.value,
                "tracking_id": tracking_id,
                "referral_url": referral_url,
                "is_active": False,
                "payments_receivable": False,
                "primary_email_confirmed": False,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            })
            .eq("id", seller_id)
            .execute()
        )
        return True
    except Exception:
        logger.exception("sellers.repository.start_onboarding_cycle failed id=%s", seller_id)
        return False

def deactivate_seller(seller_id: str, expected_status: OnboardingStatus) -> bool:
    """
    Arrêt de la vente à l'initiative du vendeur: Revoked + inactif,
    conditionné au statut lu (même CAS que update_eligibility).
    """
    return update_eligibility(
        seller_id,
        expected_status,
        {"onboarding_status": OnboardingStatus.REVOKED, "is_active": False},
    )
