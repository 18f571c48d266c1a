"""
Nettoyage du panier après création d'une commande (best-effort).
- Invoqué uniquement quand la commande vient d'être créée.
- Un échec est journalisé mais ne remonte jamais: la commande n'est pas remise en cause.
"""
import logging
from typing import Optional

from drinkshop.cart import repository

logger = logging.getLogger(__name__)

def clear_cart_best_effort(user_id: Optional[str], *, order_ref: str = "") -> bool:
    if not user_id:
        return False
    try:
        removed = repository.delete_cart_items(user_id)
    except Exception:
        logger.warning("cart.clear failed user_id=%s order=%s", user_id, order_ref, exc_info=True)
        return False
    logger.info("cart.clear ok user_id=%s order=%s removed=%s", user_id, order_ref, removed)
    return True
