"""
Module 'checkout' (feature-first): session Stripe, webhook et réconciliation des commandes.
Les cas d'usage se trouvent dans service.py, webhook.py et reconciliation.py;
seule la taxonomie d'erreurs est ré-exportée ici.
"""

from .errors import (
    CheckoutError,
    AuthenticationRequired,
    EmptyCartError,
    SignatureInvalid,
    DuplicateEvent,
    InsufficientStock,
    ProviderUnavailable,
    SessionNotFound,
    StorageUnavailable,
    UniqueViolation,
    InvalidStatusTransition,
    OrderNotFound,
    InvalidEventPayload,
    InvalidReference,
)

__all__ = [
    "CheckoutError",
    "AuthenticationRequired",
    "EmptyCartError",
    "SignatureInvalid",
    "DuplicateEvent",
    "InsufficientStock",
    "ProviderUnavailable",
    "SessionNotFound",
    "StorageUnavailable",
    "UniqueViolation",
    "InvalidStatusTransition",
    "OrderNotFound",
    "InvalidEventPayload",
    "InvalidReference",
]
