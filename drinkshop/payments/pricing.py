"""
Réconciliation des prix: le catalogue fait foi, jamais le prix transmis par le client.
- Pack demandé comparé de façon tolérante (type/casse); à défaut, premier pack du produit.
- Produit introuvable: valeurs client conservées en mode dégradé, ligne marquée à revoir.
- total = Σ(prix unitaire × quantité); écart avec le montant débité > tolérance => AmountMismatch.
"""
import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Tuple

from drinkshop import config
from drinkshop.catalog import repository as catalog_repository
from drinkshop.payments.models import AmountMismatch, Item, NormalizedOrderInput, PricedOrder, RequestedItem

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
UNKNOWN_PRODUCT_NAME = "Unknown product"


def _money(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _pack_key(value: Any) -> str:
    text = str(value).strip().lower() if value is not None else ""
    try:
        return str(Decimal(text).normalize())
    except (InvalidOperation, ValueError):
        return text


def select_pack(product: Mapping[str, Any], requested: Optional[str]) -> Optional[Dict[str, Any]]:
    """Pack correspondant à requested (ex: 6 == "6" == "6.0"), sinon le premier pack défini."""
    packs = [p for p in (product.get("packs") or []) if isinstance(p, Mapping)]
    if not packs:
        return None
    if requested is not None:
        wanted = _pack_key(requested)
        for pack in packs:
            if _pack_key(pack.get("pack")) == wanted:
                return dict(pack)
        logger.debug("payments.pricing pack %r absent du produit %s, repli sur le premier", requested, product.get("id"))
    return dict(packs[0])


def resolve_item(requested: RequestedItem, product: Optional[Mapping[str, Any]]) -> Tuple[Item, List[str]]:
    """Construit la ligne finale et la liste des motifs de revue éventuels."""
    flags: List[str] = []
    if not product:
        logger.warning("payments.pricing produit introuvable product_id=%s: prix client conservé", requested.product_id)
        flags.append(f"product_not_found:{requested.product_id}")
        return Item(
            product_id=requested.product_id,
            name=requested.name or UNKNOWN_PRODUCT_NAME,
            pack=requested.pack,
            price=_money(requested.quoted_price) or Decimal("0.00"),
            quantity=requested.quantity,
            image=requested.image or "",
            needs_review=True,
        ), flags

    pack = select_pack(product, requested.pack)
    price = _money(pack.get("price")) if pack else _money(product.get("price"))
    needs_review = False
    if price is None:
        logger.warning("payments.pricing prix catalogue manquant product_id=%s", requested.product_id)
        flags.append(f"catalog_price_missing:{requested.product_id}")
        price = _money(requested.quoted_price) or Decimal("0.00")
        needs_review = True
    elif requested.quoted_price is not None and _money(requested.quoted_price) != price:
        logger.info(
            "payments.pricing prix client ignoré product_id=%s quoted=%s catalog=%s",
            requested.product_id, requested.quoted_price, price,
        )

    pack_label = pack.get("pack") if pack else requested.pack
    return Item(
        product_id=requested.product_id,
        name=str(product.get("name") or requested.name or UNKNOWN_PRODUCT_NAME),
        pack=str(pack_label) if pack_label is not None else None,
        price=price,
        quantity=requested.quantity,
        image=str(product.get("image_url") or product.get("image") or requested.image or ""),
        needs_review=needs_review,
    ), flags


def minor_to_major(amount_minor: int) -> Decimal:
    return (Decimal(amount_minor) / Decimal(config.CURRENCY_MINOR_UNITS)).quantize(CENT, rounding=ROUND_HALF_UP)


def major_to_minor(amount: Decimal) -> int:
    return int((amount * config.CURRENCY_MINOR_UNITS).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def check_amount(charged_minor: Optional[int], computed_total: Decimal) -> Optional[AmountMismatch]:
    """AmountMismatch si |débité - calculé| dépasse AMOUNT_TOLERANCE (unités majeures)."""
    if charged_minor is None:
        return None
    mismatch = AmountMismatch(charged=minor_to_major(charged_minor), computed=computed_total)
    if mismatch.difference > config.AMOUNT_TOLERANCE:
        return mismatch
    return None


def price_order(
    order_input: NormalizedOrderInput,
    *,
    charged_minor: Optional[int] = None,
    products: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> PricedOrder:
    """
    Produit la commande chiffrée à partir du catalogue.
    - products: carte {id: produit} déjà chargée (sinon lecture via le repository catalogue).
    - charged_minor: montant réellement débité (None pour un checkout sans montant passerelle).
    """
    if products is None:
        products = catalog_repository.get_products_map(i.product_id for i in order_input.items)

    items: List[Item] = []
    flags: List[str] = []
    for requested in order_input.items:
        item, item_flags = resolve_item(requested, products.get(requested.product_id))
        items.append(item)
        flags.extend(item_flags)

    total = sum((i.subtotal for i in items), Decimal("0.00")).quantize(CENT, rounding=ROUND_HALF_UP)
    mismatch = check_amount(charged_minor, total)
    if mismatch:
        flags.append("amount_mismatch")

    return PricedOrder(
        user_id=order_input.user_id,
        customer=order_input.customer,
        items=tuple(items),
        total_amount=total,
        total_items=sum(i.quantity for i in items),
        delivery_date=order_input.delivery_date,
        delivery_time=order_input.delivery_time,
        vendor=order_input.vendor,
        mismatch=mismatch,
        review_flags=tuple(flags),
    )
