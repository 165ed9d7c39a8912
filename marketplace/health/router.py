from fastapi import APIRouter, Request

from marketplace import config
from marketplace.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root():
    return {"ok": True}

@router.get("/dependencies")
def health_dependencies(request: Request):
    """Présence de la configuration (jamais les valeurs) + état du rate limiting."""
    return {
        "supabase": {
            "url": bool(config.SUPABASE_URL),
            "service_key": config.is_configured(config.SUPABASE_SERVICE_KEY),
        },
        "paypal": {
            "api_base_url": config.PAYPAL_API_BASE_URL,
            "credentials": config.is_configured(config.PAYPAL_CLIENT_ID) and config.is_configured(config.PAYPAL_SECRET),
            "partner_id": config.is_configured(config.PAYPAL_PARTNER_ID),
            "platform_merchant_id": config.is_configured(config.PAYPAL_PLATFORM_MERCHANT_ID),
            "webhook_id": config.is_configured(config.PAYPAL_WEBHOOK_ID),
            "webhook_verification": not config.PAYPAL_WEBHOOK_VERIFY_DISABLED,
        },
        "rate_limit": rate_limit_health_info(request),
    }
