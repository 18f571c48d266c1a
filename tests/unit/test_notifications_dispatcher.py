from decimal import Decimal

from drinkshop.notifications.dispatcher import dispatch_amount_mismatch_alert, dispatch_order_notifications
from drinkshop.notifications.mailer import DeliveryResult
from drinkshop.payments.models import AmountMismatch

ORDER = {
    "payment_reference": "REF-1",
    "order_number": "000007",
    "customer": {"full_name": "Ama <b>Mensah</b>", "email": "ama@example.com", "address": "5 Oxford St"},
    "items": [{"name": "Club Beer", "pack": "6", "price": "61.00", "quantity": 2, "subtotal": "122.00"}],
    "total_amount": "122.00",
    "total_items": 2,
    "delivery_date": "2026-10-21",
    "delivery_time": "14:00-16:00",
    "review_flags": ["product_not_found:p9"],
}


class SelectiveClient:
    """Échoue pour un destinataire donné, réussit pour les autres."""

    def __init__(self, failing_to=None, crash_to=None):
        self.failing_to = failing_to
        self.crash_to = crash_to
        self.sent = []

    def send(self, message, *, order_ref=""):
        if message["To"] == self.crash_to:
            raise RuntimeError("boom")
        if message["To"] == self.failing_to:
            return DeliveryResult(status="exhausted", transport="primary", attempts=3, error="timeout")
        self.sent.append(message)
        return DeliveryResult(status="sent", transport="primary", attempts=1)


def test_customer_and_admin_are_sent_independently():
    client = SelectiveClient(failing_to="ama@example.com")
    results = dispatch_order_notifications(ORDER, client=client)
    assert results["customer"].status == "exhausted"
    assert results["admin"].status == "sent"
    assert [m["To"] for m in client.sent] == ["admin@example.com"]


def test_crash_in_one_send_does_not_prevent_the_other():
    client = SelectiveClient(crash_to="admin@example.com")
    results = dispatch_order_notifications(ORDER, client=client)
    assert results["customer"].status == "sent"
    assert results["admin"].status == "exhausted"


def test_customer_without_email_is_skipped():
    order = {**ORDER, "customer": {"full_name": "Guest", "email": ""}}
    client = SelectiveClient()
    results = dispatch_order_notifications(order, client=client)
    assert results["customer"] is None
    assert results["admin"].status == "sent"


def test_messages_carry_summary_and_escape_html():
    client = SelectiveClient()
    dispatch_order_notifications(ORDER, client=client)
    customer_msg, admin_msg = client.sent
    text = customer_msg.get_body(preferencelist=("plain",)).get_content()
    html = customer_msg.get_body(preferencelist=("html",)).get_content()
    assert "000007" in customer_msg["Subject"]
    assert "Club Beer (6) x2" in text
    assert "2026-10-21 14:00-16:00" in text
    assert "&lt;b&gt;Mensah&lt;/b&gt;" in html
    assert "product_not_found:p9" in admin_msg.get_body(preferencelist=("plain",)).get_content()


def test_amount_mismatch_alert_goes_to_admins():
    client = SelectiveClient()
    mismatch = AmountMismatch(charged=Decimal("250.00"), computed=Decimal("122.00"))
    result = dispatch_amount_mismatch_alert(ORDER, mismatch, client=client)
    assert result.status == "sent"
    (message,) = client.sent
    assert message["To"] == "admin@example.com"
    assert "Amount mismatch" in message["Subject"]
    assert "128.00" in message.get_body(preferencelist=("plain",)).get_content()


def test_no_admin_recipients_skips_alert(monkeypatch):
    monkeypatch.setattr("drinkshop.config.ADMIN_EMAILS", [])
    mismatch = AmountMismatch(charged=Decimal("250.00"), computed=Decimal("122.00"))
    assert dispatch_amount_mismatch_alert(ORDER, mismatch, client=SelectiveClient()) is None
