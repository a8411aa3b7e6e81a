"""
Factory d'application pour les entrypoints (storefront.asgi) et les tests.
Ordonne les étapes d'initialisation de manière lisible et testable.
"""
import logging
from typing import Optional

from fastapi import FastAPI
from .lifespan import lifespan
from .middlewares import register_basic_middlewares, register_security_middleware, register_no_cache_middleware
from .exceptions import register_exception_handlers
from .routers import register_routers
from .services import Services

def configure_logging(level: str = "INFO") -> None:
    # Le handler de uvicorn est conservé s'il existe déjà
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      - middlewares de base, sécurité/CSRF, no-cache
      - gestionnaires d'exceptions
      - tous les routers (API, admin, health)
    services: dépendances déjà construites (tests); sinon le lifespan les construit depuis l'environnement.
    """
    app = FastAPI(title="Storefront Checkout", lifespan=lifespan)
    app.state.services = services
    register_basic_middlewares(app)
    register_security_middleware(app)
    register_no_cache_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    return app
