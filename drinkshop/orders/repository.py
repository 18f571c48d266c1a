"""
Persistance des commandes (table 'orders') et du compteur de numéros (table 'counters').
- insert_order_if_absent: insertion conditionnelle atomique, clé d'unicité payment_reference
  (upsert ignore-duplicates côté PostgREST), jamais "lire puis créer".
- next_order_number: incrément atomique via la fonction SQL next_counter_value.
- Toute erreur d'écriture est remontée en PersistenceFailure (la passerelle réessaiera).
"""
from typing import Any, Dict, Optional, Tuple
import logging
import drinkshop.infra.supabase_client as supabase_client
from drinkshop.payments.errors import PersistenceFailure

logger = logging.getLogger(__name__)

ORDER_COUNTER = "orderNumber"

def next_order_number(counter_name: str = ORDER_COUNTER) -> int:
    """Incrémente et lit le compteur en une seule opération SQL."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .rpc("next_counter_value", {"counter_name": counter_name})
            .execute()
        )
    except Exception as e:
        logger.exception("orders.repository.next_order_number failed counter=%s", counter_name)
        raise PersistenceFailure("Counter increment failed") from e
    data = res.data
    # Selon la version de PostgREST: scalaire ou [{"next_counter_value": n}]
    if isinstance(data, list) and data:
        data = data[0]
    if isinstance(data, dict):
        data = data.get("next_counter_value")
    try:
        return int(data)
    except (TypeError, ValueError) as e:
        raise PersistenceFailure(f"Unexpected counter value: {res.data!r}") from e

def get_order_by_reference(reference: str) -> Optional[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select("*")
            .eq("payment_reference", reference)
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.exception("orders.repository.get_order_by_reference failed reference=%s", reference)
        raise PersistenceFailure("Order lookup failed", reference=reference) from e
    rows = res.data or []
    return rows[0] if rows else None

def insert_order_if_absent(document: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
    """
    Insère la commande si aucune n'existe pour sa payment_reference.
    Retour: (commande, created). created=False => la commande existait déjà (doublon).
    """
    reference = document["payment_reference"]
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .upsert(document, on_conflict="payment_reference", ignore_duplicates=True)
            .execute()
        )
    except Exception as e:
        logger.exception("orders.repository.insert_order_if_absent failed reference=%s", reference)
        raise PersistenceFailure("Order insert failed", reference=reference) from e

    rows = res.data or []
    if rows:
        return rows[0], True
    existing = get_order_by_reference(reference)
    if existing is None:
        raise PersistenceFailure("Order neither inserted nor found", reference=reference)
    return existing, False
