"""
ASGI entrypoint: expose `app` pour les process managers / déploiements.

- En production, un process manager (ex: gunicorn + uvicorn workers) importe `storefront.asgi:app`.
- Toute la configuration FastAPI est centralisée dans storefront.app_setup.factory;
  ce fichier ne fait qu'exposer l'instance `app`.
"""
import os

from storefront.app_setup.factory import configure_logging, create_app

configure_logging(os.getenv("LOG_LEVEL", "info"))
app = create_app()
