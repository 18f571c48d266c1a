import os

os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

import json
import threading
from typing import Any, Dict, Generator, List
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from drinkshop.app import app as fastapi_app
from drinkshop.notifications.mailer import DeliveryResult
from drinkshop.payments.errors import PersistenceFailure
from drinkshop.payments.signature import compute_signature
from drinkshop.utils.security import require_user

WEBHOOK_SECRET = "whsec_test"

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "/tests/unit/" in nodeid or nodeid.startswith("tests/unit/"):
            item.add_marker(pytest.mark.unit)
        elif "/tests/integration/" in nodeid or nodeid.startswith("tests/integration/"):
            item.add_marker(pytest.mark.integration)

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

TEST_USER: Dict[str, Any] = {
    "id": "test-user",
    "email": "test@example.com",
    "metadata": {"full_name": "Test User", "phone": "0240000000", "address": "12 Ring Road", "city": "Accra"},
}

# Simuler un utilisateur authentifié pour les endpoints protégés
@pytest.fixture(autouse=True)
def _override_require_user(app):
    app.dependency_overrides[require_user] = lambda: dict(TEST_USER)
    try:
        yield
    finally:
        app.dependency_overrides.pop(require_user, None)

# Aucun accès réseau Supabase pendant les tests
@pytest.fixture(autouse=True)
def _stub_supabase(monkeypatch):
    fake = MagicMock(name="supabase")
    monkeypatch.setattr("drinkshop.infra.supabase_client.get_supabase", lambda: fake)
    monkeypatch.setattr("drinkshop.infra.supabase_client.get_service_supabase", lambda: fake)
    return fake

@pytest.fixture(autouse=True)
def _payments_config(monkeypatch):
    monkeypatch.setattr("drinkshop.config.PAYSTACK_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setattr("drinkshop.config.PAYSTACK_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr("drinkshop.config.ADMIN_EMAILS", ["admin@example.com"])
    monkeypatch.setattr("drinkshop.config.ORDERS_REDIRECT_URL", "http://front.test/orders")


class InMemoryStore:
    """
    Double des repositories (commandes, compteur, panier, catalogue).
    L'unicité de payment_reference est garantie sous verrou, comme la contrainte SQL.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.counter = 0
        self.carts: Dict[str, List[Dict[str, Any]]] = {}
        self.products: Dict[str, Dict[str, Any]] = {}
        self.fail_inserts = False
        self.fail_cart_delete = False
        self.fail_catalog_reads = False
        self.insert_calls = 0

    # orders
    def next_order_number(self, counter_name: str = "orderNumber") -> int:
        with self._lock:
            self.counter += 1
            return self.counter

    def get_order_by_reference(self, reference: str):
        return self.orders.get(reference)

    def insert_order_if_absent(self, document: Dict[str, Any]):
        reference = document["payment_reference"]
        if self.fail_inserts:
            raise PersistenceFailure("Order insert failed", reference=reference)
        # Aller-retour JSON: même forme que la ligne renvoyée par PostgREST
        row = json.loads(json.dumps(document))
        with self._lock:
            self.insert_calls += 1
            if reference in self.orders:
                return self.orders[reference], False
            row["id"] = f"order-{len(self.orders) + 1}"
            self.orders[reference] = row
            return row, True

    # carts
    def list_cart_items(self, user_id: str):
        return [dict(r) for r in self.carts.get(user_id, [])]

    def delete_cart_items(self, user_id: str) -> int:
        if self.fail_cart_delete:
            raise RuntimeError("carts table unavailable")
        return len(self.carts.pop(user_id, []))

    # catalog
    def get_products_map(self, ids):
        if self.fail_catalog_reads:
            raise PersistenceFailure("Catalog lookup failed")
        return {i: self.products[i] for i in ids if i in self.products}

    def add_product(self, product_id: str, name: str, packs: List[Dict[str, Any]], image_url: str = ""):
        self.products[product_id] = {"id": product_id, "name": name, "packs": packs, "image_url": image_url}


@pytest.fixture()
def store(monkeypatch) -> InMemoryStore:
    s = InMemoryStore()
    monkeypatch.setattr("drinkshop.orders.repository.next_order_number", s.next_order_number)
    monkeypatch.setattr("drinkshop.orders.repository.get_order_by_reference", s.get_order_by_reference)
    monkeypatch.setattr("drinkshop.orders.repository.insert_order_if_absent", s.insert_order_if_absent)
    monkeypatch.setattr("drinkshop.cart.repository.list_cart_items", s.list_cart_items)
    monkeypatch.setattr("drinkshop.cart.repository.delete_cart_items", s.delete_cart_items)
    monkeypatch.setattr("drinkshop.catalog.repository.get_products_map", s.get_products_map)
    return s


class RecordingNotificationClient:
    def __init__(self):
        self.sent = []

    def send(self, message, *, order_ref: str = ""):
        self.sent.append((message, order_ref))
        return DeliveryResult(status="sent", transport="memory", attempts=1)

    def subjects(self) -> List[str]:
        return [m["Subject"] for m, _ in self.sent]


@pytest.fixture()
def notifier(monkeypatch) -> RecordingNotificationClient:
    n = RecordingNotificationClient()
    monkeypatch.setattr("drinkshop.notifications.dispatcher.get_notification_client", lambda: n)
    return n


@pytest.fixture()
def catalog(store) -> InMemoryStore:
    """Catalogue de référence: deux boissons avec packs."""
    store.add_product(
        "64f1a2b3c4d5e6f7a8b9c0d1", "Club Beer",
        [{"pack": "6", "price": "61.00"}, {"pack": "12", "price": "118.00"}],
        image_url="https://cdn.test/club.png",
    )
    store.add_product("64f1a2b3c4d5e6f7a8b9c0d2", "Malta Guinness", [{"pack": "1", "price": "48.00"}])
    return store


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return compute_signature(body, secret)


def charge_body(reference: str = "TEST_0001", amount: int = 17000, **metadata_overrides) -> Dict[str, Any]:
    metadata = {
        "userId": "user-42",
        "customer": {
            "fullName": "Ama Mensah",
            "email": "Ama@Example.com",
            "phone": "0201234567",
            "address": "5 Oxford Street",
            "city": "Accra",
        },
        "items": [
            {"drinkId": "64f1a2b3c4d5e6f7a8b9c0d1", "pack": "6", "price": 61, "quantity": 2},
            {"drinkId": "64f1a2b3c4d5e6f7a8b9c0d2", "pack": "1", "price": 48, "quantity": 1},
        ],
        "deliveryDate": "2026-10-21",
        "deliveryTime": "14:00-16:00",
    }
    metadata.update(metadata_overrides)
    return {
        "event": "charge.success",
        "data": {
            "reference": reference,
            "amount": amount,
            "metadata": metadata,
            "customer": {"email": "ama@example.com", "first_name": "Ama", "last_name": "Mensah"},
        },
    }


@pytest.fixture()
def make_charge():
    return charge_body


@pytest.fixture()
def post_webhook(client):
    """Envoie un webhook signé (signature valide par défaut) et renvoie la réponse."""
    def _post(body: Dict[str, Any], *, signature: str | None = None, raw: bytes | None = None):
        payload = raw if raw is not None else json.dumps(body).encode("utf-8")
        headers = {
            "content-type": "application/json",
            "x-paystack-signature": signature if signature is not None else sign(payload),
        }
        return client.post("/api/v1/payments/webhook", content=payload, headers=headers)
    return _post
