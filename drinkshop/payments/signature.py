"""
Vérification de la signature des webhooks Paystack.
- La signature (en-tête x-paystack-signature) est un HMAC-SHA512 hexadécimal du corps BRUT.
- Toujours calculer sur les octets reçus, jamais sur un JSON re-sérialisé.
"""
import hashlib
import hmac
import json
import logging
from typing import Optional

from drinkshop.payments.errors import AuthenticationFailed

logger = logging.getLogger(__name__)


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


def verify_signature(raw_body: bytes, signature: Optional[str], secret: str) -> bool:
    """
    Compare en temps constant la signature reçue au HMAC attendu.
    Retourne False si le secret ou la signature sont absents.
    """
    if not secret or not signature:
        return False
    expected = compute_signature(raw_body, secret)
    return hmac.compare_digest(expected, signature.strip().lower())


def _peek_reference(raw_body: bytes) -> Optional[str]:
    # Lecture best-effort pour les logs: le contenu n'est pas fiable à ce stade
    try:
        data = json.loads(raw_body.decode("utf-8")).get("data") or {}
        return str(data.get("reference") or "") or None
    except Exception:
        return None


def ensure_authentic(raw_body: bytes, signature: Optional[str], secret: str, *, source: str = "") -> None:
    """
    Lève AuthenticationFailed si la signature est invalide.
    - Journalise le rejet avec la référence lisible et l'adresse source (investigation d'abus).
    """
    if not secret:
        logger.error("payments.signature secret manquant: webhook rejeté source=%s", source)
        raise AuthenticationFailed("Webhook secret not configured")
    if verify_signature(raw_body, signature, secret):
        return
    reference = _peek_reference(raw_body)
    logger.warning(
        "payments.signature rejected reference=%s source=%s header_present=%s",
        reference, source, bool(signature),
    )
    raise AuthenticationFailed("Invalid signature", reference=reference)
