"""
Types canoniques du pipeline (pydantic, immuables).
- PaymentEvent: événement passerelle transitoire (webhook ou vérification)
- NormalizedOrderInput: projection canonique produite par le normaliseur
- Item / PricedOrder: lignes et commande après réconciliation des prix
- AmountMismatch: signal non bloquant (montant débité != total calculé)
- MaterializationResult: {order, created} renvoyé par le matérialiseur
"""
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

PAYMENT_STATUSES = ("pending", "paid", "refunded")
ORDER_STATUSES = ("confirmed", "processing", "completed", "cancelled")


class PaymentEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    event: str
    reference: str
    amount: int = 0  # unités mineures
    metadata: Dict[str, Any] = Field(default_factory=dict)
    customer: Dict[str, Any] = Field(default_factory=dict)


class Customer(BaseModel):
    model_config = ConfigDict(frozen=True)

    full_name: str
    email: str = ""
    phone: str = ""
    address: str
    city: str = ""
    country: str = ""


class RequestedItem(BaseModel):
    """Ligne telle que demandée par le client: le prix n'est qu'indicatif."""
    model_config = ConfigDict(frozen=True)

    product_id: str
    quantity: int = Field(default=1, ge=1)
    pack: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None
    quoted_price: Optional[Decimal] = None


class Item(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: str
    name: str
    pack: Optional[str] = None
    price: Decimal
    quantity: int = Field(ge=1)
    image: str = ""
    needs_review: bool = False

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity


class NormalizedOrderInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    customer: Customer
    items: Tuple[RequestedItem, ...] = Field(min_length=1)
    delivery_date: Optional[date] = None
    delivery_time: Optional[str] = None
    vendor: str = ""


class AmountMismatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    charged: Decimal
    computed: Decimal

    @property
    def difference(self) -> Decimal:
        return abs(self.charged - self.computed)


class PricedOrder(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    customer: Customer
    items: Tuple[Item, ...] = Field(min_length=1)
    total_amount: Decimal
    total_items: int
    delivery_date: Optional[date] = None
    delivery_time: Optional[str] = None
    vendor: str = ""
    mismatch: Optional[AmountMismatch] = None
    review_flags: Tuple[str, ...] = ()


class MaterializationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    order: Dict[str, Any]
    created: bool
    mismatch: Optional[AmountMismatch] = None
