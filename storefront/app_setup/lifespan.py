"""
Lifespan FastAPI: initialisation/arrêt des ressources partagées.
- Construit Services (Supabase, Stripe, repositories, moteur de réconciliation) sauf si déjà injectés
- Initialise FastAPILimiter (Redis) avec options de test (fakeredis)
- Variables d'environnement supportées:
  - DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS=1: désactive complètement le rate limiting (tests)
  - USE_FAKE_REDIS_FOR_TESTS=1: utilise fakeredis (tests)
  - LOCAL_RATE_LIMIT_FALLBACK=1: active un fallback local si l'init échoue
"""
import os
import logging
import redis.asyncio as redis
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi_limiter import FastAPILimiter

from storefront.config import load_settings
from .services import build_services

try:
    from fakeredis.aioredis import FakeRedis  # tests only
except ImportError:
    FakeRedis = None

logger = logging.getLogger("uvicorn.error")


def _init_services(app: FastAPI) -> None:
    if getattr(app.state, "services", None) is not None:
        logger.info("Services injected, skipping build")
        return
    try:
        app.state.services = build_services(load_settings())
        logger.info("Services ready")
    except RuntimeError as e:
        # Config incomplète: /health reste servi, les routes métier répondent 503
        app.state.services = None
        logger.error(f"Services unavailable: {e}")


async def _init_rate_limit(app: FastAPI) -> bool:
    """Retourne True si FastAPILimiter a été initialisé (à fermer à l'arrêt)."""
    if os.getenv("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS") == "1":
        app.state.rate_limit_enabled = False
        logger.info("Rate limiting disabled by DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS")
        return False
    try:
        if os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1":
            if not FakeRedis:
                raise RuntimeError("USE_FAKE_REDIS_FOR_TESTS=1 mais fakeredis n'est pas installé.")
            r = FakeRedis(decode_responses=True)
        else:
            redis_url = os.getenv("RATE_LIMIT_REDIS_URL", "redis://127.0.0.1:6379/0")
            r = redis.from_url(redis_url, encoding="utf-8", decode_responses=True)

        await FastAPILimiter.init(r)
        app.state.rate_limit_enabled = True
        logger.info("Rate limiting enabled")
        return True
    except Exception as e:
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            app.state.rate_limit_enabled = True
            logger.warning(f"Rate limiting falling back to local in-memory due to init error: {e}")
        else:
            app.state.rate_limit_enabled = False
            logger.warning(f"Rate limiting disabled due to init error: {e}")
        return False


@asynccontextmanager
async def lifespan(app: FastAPI):
    _init_services(app)
    limiter_started = await _init_rate_limit(app)
    yield
    if limiter_started:
        await FastAPILimiter.close()
