"""
Construction des messages (texte + HTML) à partir d'une commande persistée.
"""
import html
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, Dict, List, Mapping, Optional, Sequence

from drinkshop import config
from drinkshop.payments.models import AmountMismatch


def _money(value: Any) -> str:
    return f"{config.CURRENCY} {value}"


def _delivery_window(order: Mapping[str, Any]) -> str:
    parts = [str(p) for p in (order.get("delivery_date"), order.get("delivery_time")) if p]
    return " ".join(parts) or "Not scheduled"


def _item_lines(order: Mapping[str, Any]) -> List[str]:
    lines = []
    for item in order.get("items") or []:
        pack = f" ({item.get('pack')})" if item.get("pack") else ""
        lines.append(
            f"- {item.get('name')}{pack} x{item.get('quantity')} @ {_money(item.get('price'))}"
            f" = {_money(item.get('subtotal'))}"
        )
    return lines


def _summary_lines(order: Mapping[str, Any]) -> List[str]:
    return [
        f"Order number: {order.get('order_number')}",
        f"Payment reference: {order.get('payment_reference')}",
        "Items:",
        *_item_lines(order),
        f"Total items: {order.get('total_items')}",
        f"Total: {_money(order.get('total_amount'))}",
        f"Delivery: {_delivery_window(order)}",
    ]


def _build(subject: str, recipients: Sequence[str], lines: List[str]) -> EmailMessage:
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = formataddr((config.MAIL_FROM_NAME, config.MAIL_FROM))
    message["To"] = ", ".join(recipients)
    text = "\n".join(lines)
    message.set_content(text)
    body = "".join(f"<p>{html.escape(line)}</p>" for line in lines)
    message.add_alternative(f"<html><body>{body}</body></html>", subtype="html")
    return message


def customer_confirmation(order: Mapping[str, Any]) -> Optional[EmailMessage]:
    """Confirmation client; None si l'e-mail client est absent (commande créée malgré tout)."""
    customer: Dict[str, Any] = order.get("customer") or {}
    email = (customer.get("email") or "").strip()
    if not email:
        return None
    lines = [f"Hi {customer.get('full_name') or 'Customer'}, your order is confirmed.", *_summary_lines(order)]
    return _build(f"Your order {order.get('order_number')} is confirmed", [email], lines)


def admin_alert(order: Mapping[str, Any], recipients: Sequence[str]) -> Optional[EmailMessage]:
    if not recipients:
        return None
    customer: Dict[str, Any] = order.get("customer") or {}
    lines = [
        f"New order received from {customer.get('full_name')} <{customer.get('email') or 'no email'}>",
        f"Phone: {customer.get('phone') or '-'}",
        f"Address: {customer.get('address')}, {customer.get('city') or ''} {customer.get('country') or ''}".strip(),
        *_summary_lines(order),
    ]
    flags = order.get("review_flags") or []
    if flags:
        lines.append(f"Review flags: {', '.join(flags)}")
    return _build(f"New order {order.get('order_number')} received", list(recipients), lines)


def amount_mismatch_alert(
    order: Mapping[str, Any], mismatch: AmountMismatch, recipients: Sequence[str]
) -> Optional[EmailMessage]:
    if not recipients:
        return None
    lines = [
        "The amount charged by the gateway differs from the catalog total. Manual reconciliation required.",
        f"Charged: {_money(mismatch.charged)}",
        f"Computed: {_money(mismatch.computed)}",
        f"Difference: {_money(mismatch.difference)}",
        *_summary_lines(order),
    ]
    return _build(f"[Review] Amount mismatch on order {order.get('order_number')}", list(recipients), lines)
