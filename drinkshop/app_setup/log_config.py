"""
Configuration des logs applicatifs.
- Arbre de loggers 'drinkshop' au niveau LOG_LEVEL, un seul StreamHandler (idempotent).
- Les loggers uvicorn restent gérés par uvicorn.
"""
import logging

from drinkshop.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

def configure_logging(level: str = LOG_LEVEL) -> logging.Logger:
    logger = logging.getLogger("drinkshop")
    logger.setLevel(getattr(logging, level, logging.INFO))
    if not any(getattr(h, "_drinkshop", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._drinkshop = True
        logger.addHandler(handler)
    return logger
