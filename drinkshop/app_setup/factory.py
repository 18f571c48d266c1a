"""
Factory d'application pour les entrypoints (ex: drinkshop.asgi).
Ordonne les étapes d'initialisation de manière lisible et testable.
"""
from fastapi import FastAPI
from .lifespan import lifespan
from .log_config import configure_logging
from .middlewares import register_basic_middlewares, register_request_logging_middleware
from .exceptions import register_exception_handlers
from .routers import register_routers

def create_app() -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      - logs applicatifs (arbre 'drinkshop')
      - middlewares de base et journalisation des requêtes
      - gestionnaires d'exceptions
      - routers (payments, health)
    """
    configure_logging()
    app = FastAPI(title="Drink Shop API", lifespan=lifespan)
    register_basic_middlewares(app)
    register_request_logging_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    return app
