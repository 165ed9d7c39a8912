"""
Store clé-valeur partagé (Redis) avec TTL.
- Remplace tout état process-local: jetons d'accès PayPal, cache des certificats
  de webhook, déduplication des transmissions.
- USE_FAKE_REDIS_FOR_TESTS=1: utilise fakeredis (tests).
- Dégradation contrôlée: une panne Redis est journalisée et traitée comme un cache vide.
"""
import logging
from typing import Optional

import redis

from marketplace import config

try:
    import fakeredis  # tests only
except ImportError:
    fakeredis = None

logger = logging.getLogger(__name__)

_redis: Optional[redis.Redis] = None

def get_redis() -> redis.Redis:
    global _redis
    if _redis is None:
        if config.USE_FAKE_REDIS_FOR_TESTS:
            if not fakeredis:
                raise RuntimeError("USE_FAKE_REDIS_FOR_TESTS=1 mais fakeredis n'est pas installé.")
            _redis = fakeredis.FakeRedis(decode_responses=True)
        else:
            _redis = redis.Redis.from_url(
                config.REDIS_URL,
                decode_responses=True,
                socket_timeout=2,
                socket_connect_timeout=2,
            )
    return _redis

def kv_get(key: str) -> Optional[str]:
    try:
        return get_redis().get(key)
    except redis.RedisError:
        logger.warning("kv_store.get failed key=%s", key, exc_info=True)
        return None

def kv_set(key: str, value: str, ttl_seconds: int) -> bool:
    try:
        return bool(get_redis().set(key, value, ex=max(1, int(ttl_seconds))))
    except redis.RedisError:
        logger.warning("kv_store.set failed key=%s", key, exc_info=True)
        return False

def kv_set_if_absent(key: str, value: str, ttl_seconds: int) -> bool:
    """
    SET NX EX: True si la clé a été créée par cet appel.
    Panne Redis: True (clé traitée comme absente, même dégradation que kv_get).
    """
    try:
        return bool(get_redis().set(key, value, ex=max(1, int(ttl_seconds)), nx=True))
    except redis.RedisError:
        logger.warning("kv_store.set_if_absent failed key=%s", key, exc_info=True)
        return True

def kv_delete(key: str) -> None:
    try:
        get_redis().delete(key)
    except redis.RedisError:
        logger.warning("kv_store.delete failed key=%s", key, exc_info=True)
