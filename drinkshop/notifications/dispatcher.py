"""
Dispatcher des notifications de commande (hors chemin critique).
- Confirmation client et alerte admin envoyées indépendamment: l'échec de l'une n'affecte pas l'autre.
- Alerte de rapprochement pour AmountMismatch.
- Appelé depuis une tâche d'arrière-plan: ne lève jamais.
"""
import logging
from typing import Any, Dict, Mapping, Optional

from drinkshop import config
from drinkshop.notifications import templates
from drinkshop.notifications.mailer import DeliveryResult, NotificationClient, get_notification_client
from drinkshop.payments.models import AmountMismatch

logger = logging.getLogger(__name__)


def _deliver(kind: str, build, client: NotificationClient, order_ref: str) -> Optional[DeliveryResult]:
    try:
        message = build()
        if message is None:
            logger.info("notifications.%s skipped order=%s: pas de destinataire", kind, order_ref)
            return None
        return client.send(message, order_ref=order_ref)
    except Exception:
        logger.exception("notifications.%s crashed order=%s", kind, order_ref)
        return DeliveryResult(status="exhausted", error="unexpected error")


def dispatch_order_notifications(
    order: Mapping[str, Any], *, client: Optional[NotificationClient] = None
) -> Dict[str, Optional[DeliveryResult]]:
    client = client or get_notification_client()
    order_ref = str(order.get("order_number") or order.get("payment_reference") or "")
    return {
        "customer": _deliver("customer", lambda: templates.customer_confirmation(order), client, order_ref),
        "admin": _deliver("admin", lambda: templates.admin_alert(order, config.ADMIN_EMAILS), client, order_ref),
    }


def dispatch_amount_mismatch_alert(
    order: Mapping[str, Any], mismatch: AmountMismatch, *, client: Optional[NotificationClient] = None
) -> Optional[DeliveryResult]:
    client = client or get_notification_client()
    order_ref = str(order.get("order_number") or order.get("payment_reference") or "")
    return _deliver(
        "amount_mismatch",
        lambda: templates.amount_mismatch_alert(order, mismatch, config.ADMIN_EMAILS),
        client,
        order_ref,
    )
