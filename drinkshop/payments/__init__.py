"""
Module 'payments' (feature-first): point d'entrée public.
Réunit signature webhook, normalisation des métadonnées, réconciliation des prix,
client Paystack et cas d'usage (drinkshop.payments.service).
Seuls les types feuilles sont ré-exportés ici: notifications et orders importent
drinkshop.payments.models, le service les importe en retour.
"""

from .errors import (
    PaymentError,
    AuthenticationFailed,
    MalformedPayload,
    PaymentNotSuccessful,
    GatewayError,
    PersistenceFailure,
)
from .models import (
    PaymentEvent,
    Customer,
    RequestedItem,
    Item,
    NormalizedOrderInput,
    AmountMismatch,
    PricedOrder,
    MaterializationResult,
)

__all__ = [
    # errors
    "PaymentError",
    "AuthenticationFailed",
    "MalformedPayload",
    "PaymentNotSuccessful",
    "GatewayError",
    "PersistenceFailure",
    # models
    "PaymentEvent",
    "Customer",
    "RequestedItem",
    "Item",
    "NormalizedOrderInput",
    "AmountMismatch",
    "PricedOrder",
    "MaterializationResult",
]
