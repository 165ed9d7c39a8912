import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from marketplace.errors import (
    EmptyCartError,
    OrderMismatchError,
    OrderNotFoundError,
    OrderOwnershipError,
    PaymentConfigurationError,
    ProcessorError,
)
from marketplace.notifications import service as notifications
from marketplace.payments import service as payments_service
from marketplace.payments.commission import format_amount
from marketplace.payments.models import CaptureOutcome
from marketplace.utils.rate_limit import optional_rate_limit
from marketplace.utils.security import require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/orders", tags=["Orders API"])


class CaptureRequest(BaseModel):
    external_order_id: str = Field(min_length=1)
    split_mode: Optional[bool] = None
    already_captured: bool = False


# module marketplace.payments.views
@router.post("", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def create_order(user: dict = Depends(require_user)):
    """
    Crée la commande PayPal pour le panier de l'utilisateur authentifié.
    - Sécurité: require_user + rate limit (10 req / 60s)
    - Retour: {order_id, external_order_id, payment_mode, total, currency, approval_url}
    - Erreurs: 400 panier vide, 502 processeur, 503 configuration paiement absente
    """
    try:
        return JSONResponse(payments_service.create_checkout_order(user["id"]), status_code=201)
    except HTTPException:
        raise
    except PaymentConfigurationError:
        raise
    except EmptyCartError:
        raise HTTPException(status_code=400, detail="Panier vide")
    except ProcessorError as e:
        logger.error("payments.views.create_order processor error status=%s issue=%s", e.status_code, e.issue)
        raise HTTPException(status_code=502, detail="Création de la commande PayPal impossible, veuillez réessayer")
    except Exception:
        logger.exception("payments.views.create_order failed user=%s", user.get("id"))
        raise HTTPException(status_code=500, detail="Erreur lors de la création de la commande")


@router.post("/{order_id}/capture", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def capture_order(
    order_id: str,
    body: CaptureRequest,
    background_tasks: BackgroundTasks,
    user: dict = Depends(require_user),
):
    """
    Capture (ou vérifie) le paiement d'une commande, une seule fois.
    - 200: {status: "completed", order_id, capture_id?, already_completed}
    - 402: paiement refusé {reason, message} (panier et commande conservés)
    - 502: résultat indéterminé (réessayer avec le même order_id)
    - 404 / 403: commande inconnue / d'un autre acheteur
    """
    try:
        outcome = payments_service.capture_order(
            user["id"],
            order_id,
            body.external_order_id,
            split_mode=body.split_mode,
            already_captured=body.already_captured,
        )
    except HTTPException:
        raise
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Commande introuvable")
    except OrderOwnershipError:
        raise HTTPException(status_code=403, detail="Accès interdit")
    except OrderMismatchError:
        raise HTTPException(status_code=400, detail="Identifiant de commande PayPal incohérent")
    except Exception:
        logger.exception("payments.views.capture_order failed order=%s", order_id)
        raise HTTPException(status_code=500, detail="Erreur lors de la capture")

    result = outcome.result
    if outcome.success:
        if outcome.fulfilled:
            background_tasks.add_task(
                notifications.send_purchase_confirmation,
                user["id"],
                {
                    "order_id": outcome.order.id,
                    "item_refs": outcome.order.item_refs,
                    "total": format_amount(outcome.order.total_amount),
                },
            )
        return {
            "status": "completed",
            "order_id": outcome.order.id,
            "capture_id": result.capture_id,
            "already_completed": outcome.already_completed,
        }
    if result.outcome == CaptureOutcome.DECLINED:
        return JSONResponse(
            status_code=402,
            content={"detail": result.message, "reason": result.reason, "message": result.message},
        )
    return JSONResponse(
        status_code=502,
        content={"detail": result.message, "reason": result.reason, "message": result.message},
    )
