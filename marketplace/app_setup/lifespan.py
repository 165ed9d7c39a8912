"""
Lifespan FastAPI: initialisation/arrêt des ressources partagées.
- Initialise FastAPILimiter (Redis asyncio) avec options de test (fakeredis).
- Ferme le client HTTP PayPal partagé à l'arrêt.
- Variables d'environnement supportées:
  - DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS=1: désactive complètement (tests)
  - USE_FAKE_REDIS_FOR_TESTS=1: utilise fakeredis (tests)
"""
import os
import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi_limiter import FastAPILimiter

from marketplace import config
from marketplace.payments import paypal_client

try:
    from fakeredis.aioredis import FakeRedis  # tests only
except ImportError:
    FakeRedis = None

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Configure le rate limiting.
    - En cas d'échec de Redis, le rate limiting est désactivé proprement (log WARNING).
    """
    logger = logging.getLogger("uvicorn.error")
    if os.getenv("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS") == "1":
        app.state.rate_limit_enabled = False
        logger.info("Rate limiting disabled by DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS")
    else:
        try:
            if config.USE_FAKE_REDIS_FOR_TESTS:
                if not FakeRedis:
                    raise RuntimeError("USE_FAKE_REDIS_FOR_TESTS=1 mais fakeredis n'est pas installé.")
                r = FakeRedis(decode_responses=True)
            else:
                r = aioredis.from_url(config.REDIS_URL, encoding="utf-8", decode_responses=True)
            await FastAPILimiter.init(r)
            app.state.rate_limit_enabled = True
            logger.info("Rate limiting enabled")
        except Exception as e:
            app.state.rate_limit_enabled = False
            logger.warning("Rate limiting disabled due to init error: %s", e)

    if not (config.is_configured(config.PAYPAL_CLIENT_ID) and config.is_configured(config.PAYPAL_SECRET)):
        logger.warning("PayPal credentials not configured: checkout endpoints will answer 503")

    yield

    if paypal_client._client is not None:
        paypal_client._client.close()
        paypal_client._client = None
