"""
Décodage des événements Stripe en variantes fermées.
Le corps brut est décodé une seule fois, à la frontière, après vérification de la signature.
Un type inconnu devient IgnoredEvent au lieu de laisser passer des champs non décodés.
"""
import json
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from .errors import AuthenticationRequired, InvalidEventPayload
from .metadata import extract_amount_shipping, extract_owner_id, extract_shipping
from .models import ShippingDetails

COMPLETED_TYPES = {
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
}
FAILED_TYPES = {
    "checkout.session.async_payment_failed",
    "payment_intent.payment_failed",
}


class CheckoutCompleted(BaseModel):
    kind: Literal["checkout_completed"] = "checkout_completed"
    event_id: str
    event_type: str
    session_id: str
    owner_id: str
    payment_status: str = "paid"
    amount_total: Optional[int] = None
    amount_shipping: int = 0
    currency: Optional[str] = None
    payment_intent_id: Optional[str] = None
    customer_email: Optional[str] = None
    shipping: Optional[ShippingDetails] = None

    @property
    def is_paid(self) -> bool:
        # "no_payment_required" couvre les commandes à 0 (coupons)
        return self.payment_status in ("paid", "no_payment_required")


class PaymentFailed(BaseModel):
    kind: Literal["payment_failed"] = "payment_failed"
    event_id: str
    event_type: str
    session_id: Optional[str] = None
    owner_id: Optional[str] = None
    reason: Optional[str] = None


class IgnoredEvent(BaseModel):
    kind: Literal["ignored"] = "ignored"
    event_id: str
    event_type: str


ProviderEvent = Annotated[
    Union[CheckoutCompleted, PaymentFailed, IgnoredEvent],
    Field(discriminator="kind"),
]
_event_adapter = TypeAdapter(ProviderEvent)


def _payment_intent_id(obj: dict) -> Optional[str]:
    pi = obj.get("payment_intent")
    if isinstance(pi, dict):
        return pi.get("id")
    return pi or None


def decode_event(payload: bytes) -> ProviderEvent:
    """
    Décode le corps brut d'un webhook en variante typée.
    - InvalidEventPayload si le JSON ou l'enveloppe (type, data.object) est invalide
    - AuthenticationRequired si une session complétée n'a pas d'owner_id dans ses métadonnées
    """
    try:
        envelope = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise InvalidEventPayload(f"JSON invalide: {e}")
    if not isinstance(envelope, dict) or not envelope.get("type"):
        raise InvalidEventPayload("Enveloppe d'événement incomplète")

    event_id = str(envelope.get("id") or "")
    event_type = str(envelope["type"])
    data = envelope.get("data")
    if not isinstance(data, dict):
        raise InvalidEventPayload("data manquant ou mal formé")
    obj = data.get("object")
    if not isinstance(obj, dict):
        raise InvalidEventPayload("data.object manquant")

    if event_type in COMPLETED_TYPES:
        session_id = str(obj.get("id") or "")
        if not session_id:
            raise InvalidEventPayload("session id manquant")
        owner_id = extract_owner_id(obj)
        if not owner_id:
            raise AuthenticationRequired("owner_id absent des métadonnées", session_id=session_id, event_id=event_id)
        return _event_adapter.validate_python({
            "kind": "checkout_completed",
            "event_id": event_id,
            "event_type": event_type,
            "session_id": session_id,
            "owner_id": owner_id,
            "payment_status": obj.get("payment_status") or "paid",
            "amount_total": obj.get("amount_total"),
            "amount_shipping": extract_amount_shipping(obj),
            "currency": obj.get("currency"),
            "payment_intent_id": _payment_intent_id(obj),
            "customer_email": (obj.get("customer_details") or {}).get("email") or obj.get("customer_email"),
            "shipping": extract_shipping(obj),
        })

    if event_type in FAILED_TYPES:
        is_session = obj.get("object") == "checkout.session"
        error = obj.get("last_payment_error") or {}
        return _event_adapter.validate_python({
            "kind": "payment_failed",
            "event_id": event_id,
            "event_type": event_type,
            "session_id": obj.get("id") if is_session else None,
            "owner_id": extract_owner_id(obj),
            "reason": error.get("message") or error.get("code"),
        })

    return _event_adapter.validate_python({"kind": "ignored", "event_id": event_id, "event_type": event_type})
