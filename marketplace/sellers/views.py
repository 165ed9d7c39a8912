import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from marketplace.errors import (
    EligibilityConflictError,
    OnboardingError,
    PaymentConfigurationError,
    ProcessorError,
    SellerNotFoundError,
)
from marketplace.sellers import service as sellers_service
from marketplace.utils.rate_limit import optional_rate_limit
from marketplace.utils.security import require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/sellers", tags=["Sellers API"])


class StartOnboardingRequest(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=120)


class CompleteOnboardingRequest(BaseModel):
    merchant_id: Optional[str] = Field(default=None, alias="merchantIdInPayPal")

    model_config = {"populate_by_name": True}


# module marketplace.sellers.views
@router.post("/onboarding", dependencies=[Depends(optional_rate_limit(times=5, seconds=60))])
async def start_onboarding(body: Optional[StartOnboardingRequest] = None, user: dict = Depends(require_user)):
    """
    Démarre l'onboarding vendeur et renvoie le lien PayPal (referral_url).
    - 400 si le compte vendeur est déjà actif
    """
    try:
        return sellers_service.start_onboarding(user["id"], body.display_name if body else None)
    except HTTPException:
        raise
    except PaymentConfigurationError:
        raise
    except OnboardingError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProcessorError as e:
        logger.error("sellers.views.start_onboarding processor error status=%s issue=%s", e.status_code, e.issue)
        raise HTTPException(status_code=502, detail="Création du lien d'onboarding impossible")
    except Exception:
        logger.exception("sellers.views.start_onboarding failed user=%s", user.get("id"))
        raise HTTPException(status_code=500, detail="Erreur lors de l'onboarding")


@router.post("/onboarding/complete", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def complete_onboarding(body: Optional[CompleteOnboardingRequest] = None, user: dict = Depends(require_user)):
    """
    Complétion directe au retour de PayPal.
    - body optionnel: {"merchant_id": "..."} (identifiant porté par l'URL de retour)
    """
    try:
        return sellers_service.complete_onboarding(user["id"], body.merchant_id if body else None)
    except HTTPException:
        raise
    except SellerNotFoundError:
        raise HTTPException(status_code=404, detail="Compte vendeur introuvable")
    except OnboardingError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except EligibilityConflictError:
        raise HTTPException(status_code=409, detail="Mise à jour concurrente, veuillez réessayer")
    except Exception:
        logger.exception("sellers.views.complete_onboarding failed user=%s", user.get("id"))
        raise HTTPException(status_code=500, detail="Erreur lors de la finalisation de l'onboarding")


@router.post("/stop-selling", dependencies=[Depends(optional_rate_limit(times=5, seconds=60))])
async def stop_selling(user: dict = Depends(require_user)):
    """Retrait du vendeur: ses articles ne sont plus payés en partagé (Revoked, inactif)."""
    try:
        return sellers_service.stop_selling(user["id"])
    except HTTPException:
        raise
    except SellerNotFoundError:
        raise HTTPException(status_code=404, detail="Compte vendeur introuvable")
    except EligibilityConflictError:
        raise HTTPException(status_code=409, detail="Mise à jour concurrente, veuillez réessayer")
    except Exception:
        logger.exception("sellers.views.stop_selling failed user=%s", user.get("id"))
        raise HTTPException(status_code=500, detail="Erreur lors de l'arrêt de la vente")


@router.get("/me")
async def get_my_seller_status(user: dict = Depends(require_user)):
    return sellers_service.get_seller_status(user["id"])
