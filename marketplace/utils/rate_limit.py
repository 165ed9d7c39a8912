from typing import Dict, Any
from urllib.parse import urlparse
import hashlib
import logging

from fastapi import Request, Response, HTTPException

from marketplace import config
from marketplace.utils.security import COOKIE_NAME

logger = logging.getLogger(__name__)

def _user_key_from_request(req: Request) -> str:
    # Priorité: jeton (hashé, Bearer ou cookie) puis IP
    auth_header = req.headers.get("Authorization", "")
    token = auth_header[7:].strip() if auth_header.startswith("Bearer ") else req.cookies.get(COOKIE_NAME)
    path = req.url.path
    if token:
        h = hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]
        return f"user:{h}:{path}"
    ip = req.client.host if req.client else "local"
    return f"ip:{ip}:{path}"

def optional_rate_limit(times: int, seconds: int):
    """
    Dépendance de rate limiting (fastapi-limiter).
    - No-op si le limiter n'a pas été initialisé (app.state.rate_limit_enabled False)
    - 429 propagé; toute autre erreur du limiter est journalisée sans bloquer la requête
    """
    async def _dep(request: Request, response: Response):
        if getattr(request.app.state, "rate_limit_enabled", None) is not True:
            return

        from fastapi_limiter.depends import RateLimiter

        async def _identifier(req: Request) -> str:
            return _user_key_from_request(req)

        try:
            await RateLimiter(times=times, seconds=seconds, identifier=_identifier)(request, response)
        except HTTPException:
            raise
        except Exception as e:
            logger.warning("rate limiter unavailable, request allowed: %s", e)
    return _dep

def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    enabled = getattr(request.app.state, "rate_limit_enabled", None)

    from fastapi_limiter import FastAPILimiter
    limiter_ready = getattr(FastAPILimiter, "redis", None) is not None
    backend = "redis" if limiter_ready else None

    info: Dict[str, Any] = {
        "enabled": (bool(enabled) if enabled is not None else None),
        "ready": limiter_ready,
        "backend": backend,
    }
    if backend == "redis" and not config.USE_FAKE_REDIS_FOR_TESTS:
        p = urlparse(config.REDIS_URL)
        info["redis"] = {"scheme": p.scheme, "host": p.hostname, "port": p.port}
    return info
