"""
Adaptateur Paystack: centralise les appels HTTP (httpx) et la lecture signée des webhooks.
"""
import json
import logging
from typing import Any, Dict
from urllib.parse import quote

import httpx
from fastapi import Request

from drinkshop import config
from drinkshop.payments.errors import GatewayError, MalformedPayload
from drinkshop.payments.signature import ensure_authentic

logger = logging.getLogger(__name__)

# module drinkshop.payments.paystack_client
def _headers() -> Dict[str, str]:
    if not config.PAYSTACK_SECRET_KEY:
        raise GatewayError("PAYSTACK_SECRET_KEY manquant")
    return {
        "Authorization": f"Bearer {config.PAYSTACK_SECRET_KEY}",
        "Content-Type": "application/json",
    }

def _unwrap(resp: httpx.Response, operation: str, reference: str | None = None) -> Dict[str, Any]:
    """Contrôle le code HTTP et l'enveloppe {status, message, data} de Paystack."""
    try:
        body = resp.json()
    except ValueError:
        body = {}
    if resp.status_code >= 400 or not body.get("status"):
        message = body.get("message") or f"status {resp.status_code}"
        logger.warning("payments.paystack %s failed reference=%s message=%s", operation, reference, message)
        raise GatewayError(f"Paystack {operation} failed: {message}", reference=reference)
    return body.get("data") or {}

def initialize_transaction(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Initialise une transaction.
    - payload: {email, amount (unités mineures), currency, callback_url, metadata}
    Retour: data {authorization_url, access_code, reference}
    """
    try:
        resp = httpx.post(
            f"{config.PAYSTACK_BASE_URL}/transaction/initialize",
            json=payload,
            headers=_headers(),
            timeout=config.PAYSTACK_TIMEOUT,
        )
    except httpx.HTTPError as e:
        logger.exception("payments.paystack initialize transport error")
        raise GatewayError(f"Paystack initialize unreachable: {e}") from e
    return _unwrap(resp, "initialize")

def verify_transaction(reference: str) -> Dict[str, Any]:
    """
    Vérifie une transaction par référence (chemin de repli sans webhook).
    Retour: data {status, reference, amount, metadata, customer, ...}
    """
    try:
        resp = httpx.get(
            f"{config.PAYSTACK_BASE_URL}/transaction/verify/{quote(reference, safe='')}",
            headers=_headers(),
            timeout=config.PAYSTACK_TIMEOUT,
        )
    except httpx.HTTPError as e:
        logger.exception("payments.paystack verify transport error reference=%s", reference)
        raise GatewayError(f"Paystack verify unreachable: {e}", reference=reference) from e
    return _unwrap(resp, "verify", reference)

async def parse_event(request: Request) -> Dict[str, Any]:
    """
    Lit et authentifie un webhook Paystack.
    - Signature calculée sur le corps brut (avant tout parsing JSON).
    - AuthenticationFailed si signature invalide; MalformedPayload si JSON illisible.
    """
    raw_body = await request.body()
    signature = request.headers.get(config.PAYSTACK_SIGNATURE_HEADER)
    source = request.client.host if request.client else ""
    ensure_authentic(raw_body, signature, config.PAYSTACK_WEBHOOK_SECRET, source=source)
    try:
        body = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedPayload("Invalid JSON body") from e
    if not isinstance(body, dict):
        raise MalformedPayload("Payload must be a JSON object")
    return body
