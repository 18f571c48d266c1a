"""
Accès au catalogue produits (table 'products').
- Les prix font foi côté serveur: chaque produit porte ses packs [{pack, price}].
- Une lecture impossible lève PersistenceFailure: jamais de prix client faute de catalogue.
  Seuls les IDs absents de la réponse sont traités en mode dégradé par le pipeline.
"""
from typing import Any, Dict, Iterable, List
import logging
import drinkshop.infra.supabase_client as supabase_client
from drinkshop.payments.errors import PersistenceFailure

logger = logging.getLogger(__name__)

def fetch_products_by_ids(ids: List[str]) -> List[dict]:
    """
    Récupère les produits par leurs IDs.
    - Retourne [] si ids vide.
    """
    if not ids:
        return []
    try:
        res = (
            supabase_client.get_supabase()
            .table("products")
            .select("id, name, image_url, price, packs")
            .in_("id", sorted({str(i) for i in ids}))
            .execute()
        )
    except Exception as e:
        logger.exception("catalog.repository.fetch_products_by_ids failed ids=%s", ids)
        raise PersistenceFailure("Catalog lookup failed") from e
    return res.data or []

def get_products_map(ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """Retourne un dict {id: produit} à partir d'une liste d'IDs."""
    products = fetch_products_by_ids(list(ids))
    return {str(p.get("id")): p for p in products}
