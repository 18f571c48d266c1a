"""
Cas d'usage 'payments': orchestre normalisation, réconciliation, matérialisation.
Chemins d'entrée:
- handle_webhook: événement poussé par Paystack (signature déjà vérifiée par la vue).
- confirm_by_reference: repli synchrone via l'endpoint verify de Paystack.
- checkout_from_cart: checkout manuel depuis le panier serveur (paymentStatus "pending").
- initialize_checkout: création de la transaction Paystack à partir du panier serveur.
Effets post-commit (vidage panier, e-mails, alerte de rapprochement) planifiés via `schedule`
(ex: BackgroundTasks.add_task), uniquement quand la commande vient d'être créée.
"""
import logging
from typing import Any, Callable, Dict, Mapping, Optional

from drinkshop import config
from drinkshop.cart import repository as cart_repository
from drinkshop.cart.service import clear_cart_best_effort
from drinkshop.notifications.dispatcher import dispatch_amount_mismatch_alert, dispatch_order_notifications
from drinkshop.orders import repository as orders_repository
from drinkshop.orders import service as orders_service
from drinkshop.payments import cart
from drinkshop.payments import metadata as meta
from drinkshop.payments import paystack_client
from drinkshop.payments import pricing
from drinkshop.payments.errors import GatewayError, MalformedPayload, PaymentNotSuccessful
from drinkshop.payments.models import AmountMismatch, MaterializationResult, PaymentEvent

logger = logging.getLogger(__name__)

CHARGE_SUCCESS = "charge.success"

Scheduler = Callable[..., Any]


def after_order_created(order: Mapping[str, Any], mismatch: Optional[AmountMismatch] = None) -> None:
    """
    Effets post-commit, chacun isolé: un échec n'empêche pas les suivants.
    Exécuté en tâche détachée, après la réponse HTTP.
    """
    order_ref = str(order.get("order_number") or order.get("payment_reference") or "")
    clear_cart_best_effort(order.get("user_id"), order_ref=order_ref)
    try:
        results = dispatch_order_notifications(order)
        logger.info(
            "payments.post_commit notifications order=%s %s",
            order_ref,
            {kind: (r.status if r else "skipped") for kind, r in results.items()},
        )
    except Exception:
        logger.exception("payments.post_commit notifications crashed order=%s", order_ref)
    if mismatch is not None:
        try:
            dispatch_amount_mismatch_alert(order, mismatch)
        except Exception:
            logger.exception("payments.post_commit mismatch alert crashed order=%s", order_ref)


def _schedule_post_commit(result: MaterializationResult, schedule: Scheduler) -> None:
    if result.created:
        schedule(after_order_created, result.order, result.mismatch)


def process_payment_event(event: PaymentEvent, *, schedule: Scheduler) -> MaterializationResult:
    """normalize -> price -> materialize, puis planification des effets si création."""
    order_input = meta.normalize_event(event)
    priced = pricing.price_order(order_input, charged_minor=event.amount)
    if priced.mismatch:
        logger.warning(
            "payments.amount_mismatch reference=%s charged=%s computed=%s difference=%s",
            event.reference, priced.mismatch.charged, priced.mismatch.computed, priced.mismatch.difference,
        )
    result = orders_service.materialize_order(event.reference, priced, payment_status="paid")
    _schedule_post_commit(result, schedule)
    return result


def handle_webhook(body: Mapping[str, Any], *, schedule: Scheduler) -> Dict[str, Any]:
    """
    Traite un webhook authentifié.
    Réponses: {"status": "ignored"} (autre événement), "ok" (créée) ou "duplicate" (déjà traitée).
    """
    event_name = meta.sanitize(body.get("event"))
    if event_name != CHARGE_SUCCESS:
        logger.info("payments.webhook ignored event=%s", event_name)
        return {"status": "ignored", "event": event_name}

    event = meta.extract_payment_event(body)
    result = process_payment_event(event, schedule=schedule)
    return {
        "status": "ok" if result.created else "duplicate",
        "reference": event.reference,
        "order_number": result.order.get("order_number"),
    }


def confirm_by_reference(reference: str, *, schedule: Scheduler) -> MaterializationResult:
    """
    Repli sans webhook: si la commande existe déjà, simple confirmation (aucun appel passerelle);
    sinon vérification Paystack puis même pipeline que le webhook.
    """
    reference = meta.sanitize(reference)
    if not reference:
        raise MalformedPayload("Missing payment reference")

    existing = orders_repository.get_order_by_reference(reference)
    if existing is not None:
        logger.info("payments.verify already materialized reference=%s", reference)
        return MaterializationResult(order=existing, created=False)

    data = paystack_client.verify_transaction(reference)
    status = meta.sanitize(data.get("status"))
    if status != "success":
        logger.info("payments.verify not successful reference=%s status=%s", reference, status)
        raise PaymentNotSuccessful(f"Payment status is {status or 'unknown'}", reference=reference)

    event = meta.extract_payment_event({"event": CHARGE_SUCCESS, "data": {"reference": reference, **data}})
    if event.reference != reference:
        raise GatewayError("Reference mismatch in verify response", reference=reference)
    return process_payment_event(event, schedule=schedule)


def checkout_from_cart(
    user: Mapping[str, Any],
    reference: str,
    *,
    customer_fields: Optional[Mapping[str, Any]] = None,
    extras: Optional[Mapping[str, Any]] = None,
    schedule: Scheduler,
) -> MaterializationResult:
    """
    Matérialise directement depuis le panier serveur (sans métadonnées passerelle).
    - paymentStatus "pending": aucun montant débité n'est connu ici.
    - Référence déjà matérialisée: commande existante renvoyée avant toute lecture du panier
      (le panier a pu être vidé par le premier appel).
    """
    reference = meta.sanitize(reference)
    if not reference:
        raise MalformedPayload("Missing payment reference")
    existing = orders_repository.get_order_by_reference(reference)
    if existing is not None:
        logger.info("payments.checkout already materialized reference=%s", reference)
        return MaterializationResult(order=existing, created=False)
    user_id = str(user.get("id") or "")
    rows = cart_repository.list_cart_items(user_id)
    customer = cart.build_checkout_customer(customer_fields, user)
    order_input = cart.order_input_from_cart(rows, user_id=user_id, customer=customer, extras=extras)
    priced = pricing.price_order(order_input)
    result = orders_service.materialize_order(reference, priced, payment_status="pending")
    _schedule_post_commit(result, schedule)
    return result


def initialize_checkout(
    user: Mapping[str, Any],
    *,
    customer_fields: Optional[Mapping[str, Any]] = None,
    extras: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Prépare la transaction Paystack à partir du panier serveur (prix catalogue).
    Retour: {"success": True, "authorization_url": ..., "reference": ...}
    """
    user_id = str(user.get("id") or "")
    rows = cart_repository.list_cart_items(user_id)
    customer = cart.build_checkout_customer(customer_fields, user)
    if not customer.email:
        raise MalformedPayload("Email is required to initialize a payment")
    order_input = cart.order_input_from_cart(rows, user_id=user_id, customer=customer, extras=extras)
    priced = pricing.price_order(order_input)
    amount = pricing.major_to_minor(priced.total_amount)
    if amount <= 0:
        raise MalformedPayload("No valid items in cart")

    data = paystack_client.initialize_transaction({
        "email": customer.email,
        "amount": amount,
        "currency": config.CURRENCY,
        "callback_url": config.ORDERS_REDIRECT_URL,
        "metadata": cart.make_metadata(user_id, customer, priced.items, extras=extras),
    })
    logger.info("payments.initialize user_id=%s amount=%s reference=%s", user_id, amount, data.get("reference"))
    return {
        "success": True,
        "authorization_url": data.get("authorization_url"),
        "reference": data.get("reference"),
    }
