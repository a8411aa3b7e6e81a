"""
Taxonomie d'erreurs du checkout et de la réconciliation.
- http_status: code renvoyé par les gestionnaires d'exceptions (app_setup.exceptions)
- public_detail: message exposé au client, jamais l'état interne de la réconciliation
"""


class CheckoutError(Exception):
    http_status = 400
    public_detail = "Requête invalide"

    def __init__(self, message: str = "", **context):
        super().__init__(message or self.public_detail)
        self.context = context


class AuthenticationRequired(CheckoutError):
    http_status = 401
    public_detail = "Non authentifié"


class EmptyCartError(CheckoutError):
    http_status = 400
    public_detail = "Panier vide"


class SignatureInvalid(CheckoutError):
    """Webhook falsifié ou secret incorrect: toujours fatal, jamais rejoué de notre côté."""
    http_status = 400
    public_detail = "Invalid Stripe webhook signature"


class DuplicateEvent(CheckoutError):
    """
    Rejeu idempotent détecté. Pas une erreur: jamais levé vers le client,
    sa raison est reportée dans ReconcileOutcome.reason.
    """
    public_detail = "duplicate"

    def __init__(self, message: str = "", *, reason: str = "replay", **context):
        super().__init__(message, reason=reason, **context)
        self.reason = reason


class InsufficientStock(CheckoutError):
    """Stock insuffisant au moment du décrément: consigné, n'empêche pas la commande."""
    public_detail = "insufficient_stock"

    def __init__(self, message: str = "", *, variant_id: str = "", requested: int = 0, **context):
        super().__init__(message, variant_id=variant_id, requested=requested, **context)
        self.variant_id = variant_id
        self.requested = requested


class ProviderUnavailable(CheckoutError):
    """Stripe injoignable ou en timeout: l'appelant (ou Stripe) peut réessayer."""
    http_status = 503
    public_detail = "Service de paiement indisponible, réessayez"


class SessionNotFound(CheckoutError):
    http_status = 404
    public_detail = "Impossible de récupérer la commande"


class StorageUnavailable(CheckoutError):
    """Échec transitoire du stockage pendant la matérialisation: doit provoquer une relivraison."""
    http_status = 503
    public_detail = "Stockage indisponible, réessayez"


class UniqueViolation(CheckoutError):
    """Conflit sur une clé unique (ex: orders.external_session_id)."""
    http_status = 409
    public_detail = "Conflit"


class InvalidStatusTransition(CheckoutError):
    http_status = 409
    public_detail = "Transition de statut interdite"


class OrderNotFound(CheckoutError):
    http_status = 404
    public_detail = "Commande introuvable"


class InvalidEventPayload(CheckoutError):
    """Corps de webhook signé mais illisible (JSON invalide, enveloppe incomplète)."""
    http_status = 400
    public_detail = "Invalid Stripe webhook payload"


class InvalidReference(CheckoutError):
    """Produit, variante ou identifiant inconnu ou incohérent (FK, uuid mal formé, CHECK)."""
    http_status = 422
    public_detail = "Référence produit invalide"
