"""
Normalisation des métadonnées de paiement (toutes variantes de payload observées).
- Chaque champ canonique est lu depuis une liste ordonnée de clés sources, évaluée une fois.
- Items: première liste non vide parmi ITEM_LIST_KEYS (liste ou JSON sérialisé).
- Client: objet imbriqué > clés plates (ancien format) > champs natifs passerelle > placeholders.
- Aucun article exploitable => MalformedPayload.
"""
import json
import logging
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional

from drinkshop import config
from drinkshop.payments.errors import MalformedPayload
from drinkshop.payments.models import Customer, NormalizedOrderInput, PaymentEvent, RequestedItem

logger = logging.getLogger(__name__)

ITEM_LIST_KEYS = ("items", "cartItems", "cart_items", "cart", "products")
PRODUCT_ID_KEYS = ("drinkId", "productId", "product_id", "id", "_id")
ID_ENVELOPE_KEYS = ("_id", "$oid", "id")
PACK_KEYS = ("pack", "packSize", "variant")
QUANTITY_KEYS = ("quantity", "qty")
PRICE_KEYS = ("price", "unitPrice", "unit_price")
NAME_KEYS = ("name", "title")
IMAGE_KEYS = ("image", "imageUrl", "image_url")
USER_ID_KEYS = ("userId", "user_id")
DELIVERY_DATE_KEYS = ("deliveryDate", "delivery_date")
DELIVERY_TIME_KEYS = ("deliveryTime", "delivery_time")

CUSTOMER_FIELDS = {
    "full_name": ("fullName", "full_name", "name"),
    "email": ("email",),
    "phone": ("phone",),
    "address": ("address",),
    "city": ("city",),
    "country": ("country",),
}

DEFAULT_CUSTOMER_NAME = "Customer"
DEFAULT_ADDRESS = "Not provided"

# Littéraux produits par la sérialisation côté client (toujours en minuscules)
_PLACEHOLDER_RE = re.compile(r"\b(?:null|undefined)\b")
_VENDOR_RE = re.compile(r"^[a-zA-Z0-9\-_ ]+$")


def sanitize(value: Any) -> str:
    """Supprime les textes placeholder ('null', 'undefined') et normalise les espaces."""
    if value is None or isinstance(value, (dict, list)):
        return ""
    text = _PLACEHOLDER_RE.sub("", str(value))
    return " ".join(text.split())


def _as_mapping(value: Any) -> Dict[str, Any]:
    # Certains envois sérialisent les objets en JSON (metadata, customer)
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except ValueError:
            return {}
        return dict(parsed) if isinstance(parsed, Mapping) else {}
    return {}


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except ValueError:
            return []
        return parsed if isinstance(parsed, list) else []
    return []


def first_value(source: Mapping[str, Any], keys: Iterable[str]) -> Any:
    """Première valeur présente et non vide parmi keys (None si aucune)."""
    for key in keys:
        value = source.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not sanitize(value):
            continue
        return value
    return None


def unwrap_id(value: Any) -> Optional[str]:
    """Identifiant scalaire, éventuellement enveloppé ({"_id": ...}, {"$oid": ...}, {"id": ...})."""
    if isinstance(value, Mapping):
        for key in ID_ENVELOPE_KEYS:
            if key in value:
                return unwrap_id(value[key])
        return None
    if isinstance(value, bool):
        return None
    text = sanitize(value)
    return text or None


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount


def _to_quantity(value: Any) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        return 1
    try:
        return int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError):
        return 0


def parse_delivery_date(value: Any) -> Optional[date]:
    """Date de livraison ISO (date ou datetime); toute autre valeur => None."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = sanitize(value)
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        logger.debug("payments.metadata delivery date ignorée value=%r", value)
        return None


def extract_payment_event(body: Mapping[str, Any]) -> PaymentEvent:
    """
    Construit un PaymentEvent depuis {"event": ..., "data": {reference, amount, metadata, customer}}.
    - metadata peut être un objet ou une chaîne JSON.
    - Référence absente => MalformedPayload.
    """
    if not isinstance(body, Mapping):
        raise MalformedPayload("Payload must be a JSON object")
    data = _as_mapping(body.get("data"))
    reference = sanitize(data.get("reference"))
    if not reference:
        raise MalformedPayload("Missing payment reference")
    try:
        amount = int(data.get("amount") or 0)
    except (TypeError, ValueError):
        raise MalformedPayload("Invalid amount", reference=reference)
    return PaymentEvent(
        event=sanitize(body.get("event")),
        reference=reference,
        amount=amount,
        metadata=_as_mapping(data.get("metadata")),
        customer=_as_mapping(data.get("customer")),
    )


def _normalize_item(raw: Mapping[str, Any]) -> Optional[RequestedItem]:
    product_id = unwrap_id(first_value(raw, PRODUCT_ID_KEYS))
    quantity = _to_quantity(first_value(raw, QUANTITY_KEYS))
    if not product_id or quantity <= 0:
        return None
    pack = first_value(raw, PACK_KEYS)
    return RequestedItem(
        product_id=product_id,
        quantity=quantity,
        pack=sanitize(pack) or None,
        name=sanitize(first_value(raw, NAME_KEYS)) or None,
        image=sanitize(first_value(raw, IMAGE_KEYS)) or None,
        quoted_price=_to_decimal(first_value(raw, PRICE_KEYS)),
    )


def extract_items(metadata: Mapping[str, Any]) -> List[RequestedItem]:
    """Lit la première liste d'articles non vide et normalise chaque ligne exploitable."""
    raw_items: List[Any] = []
    for key in ITEM_LIST_KEYS:
        raw_items = _as_list(metadata.get(key))
        if raw_items:
            if key != ITEM_LIST_KEYS[0]:
                logger.debug("payments.metadata items lus depuis la clé alternative %s", key)
            break
    items = [item for item in (_normalize_item(r) for r in raw_items if isinstance(r, Mapping)) if item]
    return items


def _gateway_customer_fields(gateway_customer: Mapping[str, Any]) -> Dict[str, Any]:
    extra = _as_mapping(gateway_customer.get("metadata"))
    full_name = " ".join(
        part for part in (sanitize(gateway_customer.get("first_name")), sanitize(gateway_customer.get("last_name"))) if part
    )
    return {
        "full_name": full_name,
        "email": gateway_customer.get("email"),
        "phone": gateway_customer.get("phone"),
        "address": extra.get("address"),
        "city": extra.get("city"),
        "country": extra.get("country"),
    }


def build_customer(metadata: Mapping[str, Any], gateway_customer: Optional[Mapping[str, Any]] = None) -> Customer:
    """
    Fusionne les sources client par priorité: objet imbriqué, clés plates, passerelle.
    Placeholders: "Customer" (nom), "Not provided" (adresse), DEFAULT_COUNTRY (pays).
    """
    nested = _as_mapping(metadata.get("customer"))
    native = _gateway_customer_fields(gateway_customer or {})
    values: Dict[str, str] = {}
    for field, keys in CUSTOMER_FIELDS.items():
        value = first_value(nested, keys)
        if value is None:
            value = first_value(metadata, keys)
        if value is None:
            value = native.get(field)
        values[field] = sanitize(value)
    return Customer(
        full_name=values["full_name"] or DEFAULT_CUSTOMER_NAME,
        email=values["email"].lower(),
        phone=values["phone"],
        address=values["address"] or DEFAULT_ADDRESS,
        city=values["city"],
        country=values["country"] or config.DEFAULT_COUNTRY,
    )


def normalize_vendor(value: Any) -> str:
    vendor = sanitize(value)
    return vendor if vendor and _VENDOR_RE.match(vendor) else ""


def normalize_metadata(
    metadata: Mapping[str, Any],
    gateway_customer: Optional[Mapping[str, Any]] = None,
    *,
    reference: Optional[str] = None,
) -> NormalizedOrderInput:
    """
    Projette un payload hétérogène vers NormalizedOrderInput.
    - user_id absent: commande invitée (valide).
    - Date de livraison illisible: None (n'invalide pas l'événement).
    """
    metadata = _as_mapping(metadata)
    items = extract_items(metadata)
    if not items:
        raise MalformedPayload("No items in order", reference=reference)
    delivery_time = sanitize(first_value(metadata, DELIVERY_TIME_KEYS)) or None
    return NormalizedOrderInput(
        user_id=unwrap_id(first_value(metadata, USER_ID_KEYS)),
        customer=build_customer(metadata, gateway_customer),
        items=tuple(items),
        delivery_date=parse_delivery_date(first_value(metadata, DELIVERY_DATE_KEYS)),
        delivery_time=delivery_time,
        vendor=normalize_vendor(metadata.get("vendor")),
    )


def normalize_event(event: PaymentEvent) -> NormalizedOrderInput:
    return normalize_metadata(event.metadata, event.customer, reference=event.reference)
