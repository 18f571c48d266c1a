"""
Logique panier pure (pas de passerelle, pas de DB).
- Agrège les lignes du panier serveur en articles demandés.
- Construit le client à partir du body et du profil utilisateur.
- Sérialise les métadonnées envoyées à Paystack (formats imbriqué ET plat).
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from drinkshop.payments import metadata as meta
from drinkshop.payments.errors import MalformedPayload
from drinkshop.payments.models import Customer, Item, NormalizedOrderInput, RequestedItem

# module drinkshop.payments.cart
def aggregate_cart(rows: Iterable[Mapping[str, Any]]) -> List[RequestedItem]:
    """
    Agrège les lignes [{product_id, pack, quantity}] par (produit, pack).
    - Ignore les lignes invalides (produit vide, quantité <= 0).
    - Lève MalformedPayload si aucune ligne valide (panier vide).
    """
    quantities: Dict[Tuple[str, Optional[str]], int] = {}
    for row in rows or []:
        product_id = meta.unwrap_id(row.get("product_id"))
        try:
            qty = int(row.get("quantity") or 0)
        except (TypeError, ValueError):
            qty = 0
        if not product_id or qty <= 0:
            continue
        pack = meta.sanitize(row.get("pack")) or None
        quantities[(product_id, pack)] = quantities.get((product_id, pack), 0) + qty
    if not quantities:
        raise MalformedPayload("Cart is empty")
    return [RequestedItem(product_id=pid, pack=pack, quantity=qty) for (pid, pack), qty in quantities.items()]

def profile_fields(user: Mapping[str, Any]) -> Dict[str, Any]:
    """Champs client (format plat) issus du profil authentifié."""
    profile = user.get("metadata") or {}
    return {
        "fullName": profile.get("full_name") or profile.get("fullName"),
        "email": user.get("email"),
        "phone": profile.get("phone"),
        "address": profile.get("address"),
        "city": profile.get("city"),
        "country": profile.get("country"),
    }

def build_checkout_customer(body_customer: Optional[Mapping[str, Any]], user: Mapping[str, Any]) -> Customer:
    """Priorité: valeurs saisies au checkout, puis profil utilisateur, puis placeholders."""
    return meta.build_customer({"customer": dict(body_customer or {}), **profile_fields(user)})

def order_input_from_cart(
    rows: Iterable[Mapping[str, Any]],
    *,
    user_id: str,
    customer: Customer,
    extras: Optional[Mapping[str, Any]] = None,
) -> NormalizedOrderInput:
    extras = extras or {}
    return NormalizedOrderInput(
        user_id=user_id,
        customer=customer,
        items=tuple(aggregate_cart(rows)),
        delivery_date=meta.parse_delivery_date(meta.first_value(extras, meta.DELIVERY_DATE_KEYS)),
        delivery_time=meta.sanitize(meta.first_value(extras, meta.DELIVERY_TIME_KEYS)) or None,
        vendor=meta.normalize_vendor(extras.get("vendor")),
    )

def make_metadata(
    user_id: str,
    customer: Customer,
    items: Iterable[Item],
    *,
    extras: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Métadonnées Paystack: client imbriqué + clés plates (compat anciens consommateurs),
    articles au prix catalogue (indicatif: le webhook recalcule toujours).
    """
    extras = extras or {}
    nested = {
        "fullName": customer.full_name,
        "email": customer.email,
        "phone": customer.phone,
        "address": customer.address,
        "city": customer.city,
        "country": customer.country,
    }
    return {
        "userId": user_id,
        "customer": nested,
        "items": [
            {
                "drinkId": item.product_id,
                "name": item.name,
                "pack": item.pack,
                "price": str(item.price),
                "quantity": item.quantity,
                "image": item.image,
            }
            for item in items
        ],
        "email": customer.email,
        "fullName": customer.full_name,
        "phone": customer.phone,
        "address": customer.address,
        "deliveryDate": extras.get("deliveryDate"),
        "deliveryTime": extras.get("deliveryTime"),
        "vendor": extras.get("vendor") or "",
    }
