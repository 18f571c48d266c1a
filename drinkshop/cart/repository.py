"""
Accès au panier serveur (table 'carts', une ligne par article).
- Le schéma appartient au module panier; le pipeline ne fait que lire et vider.
"""
from typing import List
import logging
import drinkshop.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

def list_cart_items(user_id: str) -> List[dict]:
    """Lignes {product_id, pack, quantity} du panier de l'utilisateur ([] si erreur)."""
    if not user_id:
        return []
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("carts")
            .select("id, product_id, pack, quantity")
            .eq("user_id", user_id)
            .order("created_at")
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("cart.repository.list_cart_items failed user_id=%s", user_id)
        return []

def delete_cart_items(user_id: str) -> int:
    """Supprime toutes les lignes du panier; propage l'erreur à l'appelant."""
    res = (
        supabase_client.get_service_supabase()
        .table("carts")
        .delete()
        .eq("user_id", user_id)
        .execute()
    )
    return len(res.data or [])
