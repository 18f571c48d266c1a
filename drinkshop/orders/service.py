"""
Matérialisation idempotente: une payment_reference => exactement une commande.
- Une commande déjà présente est renvoyée sans tirer de numéro (réessais de la passerelle).
- Sinon le numéro est tiré du compteur atomique avant l'insertion conditionnelle:
  deux premières livraisons concurrentes peuvent laisser un trou, jamais un numéro réutilisé.
- paymentStatus: "paid" (événement de débit réussi) ou "pending" (checkout manuel).
"""
import logging
from typing import Any, Dict

from drinkshop.orders import repository
from drinkshop.payments.models import PAYMENT_STATUSES, MaterializationResult, PricedOrder

logger = logging.getLogger(__name__)

DEFAULT_ORDER_STATUS = "confirmed"

def format_order_number(value: int) -> str:
    return f"{value:06d}"

def build_order_document(reference: str, priced: PricedOrder, *, payment_status: str, order_number: str) -> Dict[str, Any]:
    """Document 'orders': copies dénormalisées du client et des lignes (pas de références vivantes)."""
    return {
        "payment_reference": reference,
        "user_id": priced.user_id,
        "customer": priced.customer.model_dump(mode="json"),
        "items": [
            {**item.model_dump(mode="json"), "subtotal": str(item.subtotal)}
            for item in priced.items
        ],
        "total_amount": str(priced.total_amount),
        "total_items": priced.total_items,
        "delivery_date": priced.delivery_date.isoformat() if priced.delivery_date else None,
        "delivery_time": priced.delivery_time,
        "payment_status": payment_status,
        "order_status": DEFAULT_ORDER_STATUS,
        "order_number": order_number,
        "vendor": priced.vendor,
        "review_flags": list(priced.review_flags),
    }

def materialize_order(reference: str, priced: PricedOrder, *, payment_status: str = "paid") -> MaterializationResult:
    """
    Garantit l'existence d'une unique commande pour reference et la renvoie.
    - created=True uniquement pour l'appel qui a inséré la commande.
    - PersistenceFailure propagée telle quelle (réponse 5xx, réessai idempotent).
    """
    if payment_status not in PAYMENT_STATUSES:
        raise ValueError(f"payment_status invalide: {payment_status}")
    existing = repository.get_order_by_reference(reference)
    if existing is not None:
        logger.info("orders.materialize duplicate reference=%s order_number=%s", reference, existing.get("order_number"))
        return MaterializationResult(order=existing, created=False)
    order_number = format_order_number(repository.next_order_number())
    document = build_order_document(reference, priced, payment_status=payment_status, order_number=order_number)
    order, created = repository.insert_order_if_absent(document)
    if created:
        logger.info(
            "orders.materialize created reference=%s order_number=%s total=%s items=%s user_id=%s",
            reference, order.get("order_number"), priced.total_amount, priced.total_items, priced.user_id,
        )
    else:
        logger.info("orders.materialize duplicate reference=%s order_number=%s", reference, order.get("order_number"))
    return MaterializationResult(order=order, created=created, mismatch=priced.mismatch if created else None)
