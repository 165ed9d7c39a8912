import logging

from fastapi import APIRouter, HTTPException, Request

from marketplace.errors import EligibilityConflictError, SignatureVerificationError, WebhookPayloadError
from marketplace.webhooks import service as webhooks_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/webhooks", tags=["Webhooks"])

# module marketplace.webhooks.views
@router.post("/paypal")
async def paypal_webhook(request: Request):
    """
    Webhook PayPal (aucune authentification hormis la signature).
    - 400: signature invalide ou JSON illisible (PayPal renverra l'événement)
    - 200: traité, ignoré, doublon ou vendeur introuvable
    """
    body = await request.body()
    try:
        return webhooks_service.handle_paypal_webhook(request.headers, body)
    except SignatureVerificationError as e:
        logger.warning("webhooks.views signature rejected: %s", e)
        raise HTTPException(status_code=400, detail="Invalid webhook signature")
    except WebhookPayloadError:
        raise HTTPException(status_code=400, detail="Invalid JSON")
    except EligibilityConflictError:
        logger.warning("webhooks.views eligibility conflict, delivery left for retry")
        raise HTTPException(status_code=500, detail="Error processing webhook")
    except Exception:
        logger.exception("webhooks.views.paypal_webhook failed")
        raise HTTPException(status_code=500, detail="Error processing webhook")
