import httpx
import pytest

from drinkshop.payments import paystack_client
from drinkshop.payments.errors import GatewayError


def _response(status_code, payload):
    return httpx.Response(status_code, json=payload, request=httpx.Request("GET", "https://api.paystack.co"))


def test_verify_transaction_returns_data(monkeypatch):
    calls = {}

    def fake_get(url, headers=None, timeout=None):
        calls["url"] = url
        calls["auth"] = headers["Authorization"]
        return _response(200, {"status": True, "data": {"status": "success", "reference": "R 1", "amount": 100}})

    monkeypatch.setattr(paystack_client.httpx, "get", fake_get)
    data = paystack_client.verify_transaction("R 1")
    assert data["status"] == "success"
    assert calls["url"].endswith("/transaction/verify/R%201")
    assert calls["auth"] == "Bearer sk_test_123"


def test_verify_transaction_error_envelope(monkeypatch):
    monkeypatch.setattr(
        paystack_client.httpx, "get",
        lambda url, headers=None, timeout=None: _response(404, {"status": False, "message": "Transaction reference not found"}),
    )
    with pytest.raises(GatewayError) as exc:
        paystack_client.verify_transaction("missing")
    assert "not found" in str(exc.value)
    assert exc.value.reference == "missing"


def test_transport_error_is_gateway_error(monkeypatch):
    def boom(*a, **kw):
        raise httpx.ConnectTimeout("timeout")

    monkeypatch.setattr(paystack_client.httpx, "post", boom)
    with pytest.raises(GatewayError):
        paystack_client.initialize_transaction({"email": "a@b.c", "amount": 100})


def test_missing_secret_key_is_gateway_error(monkeypatch):
    monkeypatch.setattr("drinkshop.config.PAYSTACK_SECRET_KEY", "")
    with pytest.raises(GatewayError):
        paystack_client.verify_transaction("R1")


def test_initialize_transaction_posts_payload(monkeypatch):
    sent = {}

    def fake_post(url, json=None, headers=None, timeout=None):
        sent["url"] = url
        sent["json"] = json
        return _response(200, {"status": True, "data": {"authorization_url": "https://checkout.test/x", "reference": "R9"}})

    monkeypatch.setattr(paystack_client.httpx, "post", fake_post)
    data = paystack_client.initialize_transaction({"email": "a@b.c", "amount": 17000})
    assert data["reference"] == "R9"
    assert sent["url"].endswith("/transaction/initialize")
    assert sent["json"]["amount"] == 17000
