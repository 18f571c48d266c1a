"""
Taxonomie des erreurs du pipeline de paiement.
- Les vues traduisent chaque erreur en code HTTP (401/400/502/500).
- AmountMismatch n'est pas une erreur: voir drinkshop.payments.models.
"""


class PaymentError(Exception):
    """Erreur de base du pipeline paiement -> commande."""

    def __init__(self, message: str = "", *, reference: str | None = None):
        super().__init__(message)
        self.reference = reference


class AuthenticationFailed(PaymentError):
    """Signature webhook absente ou invalide: aucune suite de traitement."""


class MalformedPayload(PaymentError):
    """Payload inexploitable après tous les fallbacks (ex: aucun article)."""


class PaymentNotSuccessful(PaymentError):
    """La passerelle ne confirme pas le paiement (vérification par référence)."""


class GatewayError(PaymentError):
    """Erreur de transport ou réponse inattendue de la passerelle."""


class PersistenceFailure(PaymentError):
    """Écriture critique impossible (commande, compteur): la requête échoue en 5xx."""
