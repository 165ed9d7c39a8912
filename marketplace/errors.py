"""
Exceptions métier du backend marketplace.
Les vues les traduisent en HTTPException; PaymentConfigurationError est gérée
globalement (503 générique, jamais de détail de configuration exposé).
"""
from typing import Optional


class MarketplaceError(Exception):
    pass


class PaymentConfigurationError(MarketplaceError):
    """Identifiants PayPal ou identifiant marchand de la plateforme manquants."""


class ProcessorError(MarketplaceError):
    """Échec d'un appel au processeur (HTTP non-2xx, timeout, transport)."""

    def __init__(self, message: str, status_code: Optional[int] = None, issue: Optional[str] = None,
                 debug_id: Optional[str] = None, timeout: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.issue = issue
        self.debug_id = debug_id
        self.timeout = timeout


class SignatureVerificationError(MarketplaceError):
    pass


class OrderNotFoundError(MarketplaceError):
    pass


class OrderOwnershipError(MarketplaceError):
    pass


class OrderMismatchError(MarketplaceError):
    pass


class EmptyCartError(MarketplaceError):
    pass


class SellerNotFoundError(MarketplaceError):
    pass


class OnboardingError(MarketplaceError):
    pass


class EligibilityConflictError(MarketplaceError):
    """Mise à jour conditionnelle du vendeur perdue de façon répétée (écritures concurrentes)."""


class WebhookPayloadError(MarketplaceError):
    """Corps de webhook illisible (JSON invalide ou enveloppe inattendue)."""


class CatalogItemNotFoundError(MarketplaceError):
    pass


class AlreadyOwnedError(MarketplaceError):
    pass
