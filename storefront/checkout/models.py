"""
Modèles du checkout (pydantic).
Les montants sont toujours en plus petite unité de la devise (yen pour jpy, centimes sinon).
"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

# Etats de réconciliation durables (UNSEEN = pas de ligne orders)
MATERIALIZING = "materializing"
MATERIALIZED = "materialized"

# Statuts de traitement de la commande (côté back-office)
ORDER_STATUSES = ("pending", "processing", "shipped", "completed", "cancelled")

# Résultat du décrément de stock d'une ligne
STOCK_DECREMENTED = "decremented"
STOCK_INSUFFICIENT = "insufficient"
STOCK_UNTRACKED = "untracked"


class CartLine(BaseModel):
    """Ligne de panier jointe au produit (nom, prix courant) et à la variante (taille)."""
    id: str
    owner_id: str
    product_id: str
    variant_id: Optional[str] = None
    quantity: int = Field(ge=1)
    product_name: str = ""
    unit_price: int = 0
    variant_label: Optional[str] = None


class SnapshotLine(BaseModel):
    """Ligne figée: ce qui a été présenté et facturé au client."""
    model_config = ConfigDict(frozen=True)

    product_id: str
    variant_id: Optional[str] = None
    product_name: str
    variant_label: Optional[str] = None
    unit_amount: int = Field(ge=0)
    quantity: int = Field(ge=1)

    @property
    def line_total(self) -> int:
        return self.unit_amount * self.quantity


class ShippingDetails(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Dict[str, Optional[str]] = Field(default_factory=dict)

    @property
    def postal_code(self) -> Optional[str]:
        return self.address.get("postal_code")

    def one_line_address(self) -> Optional[str]:
        parts = [self.address.get(k) for k in ("state", "city", "line1", "line2")]
        joined = " ".join(p for p in parts if p)
        return joined or None


class CheckoutSessionHandle(BaseModel):
    id: str
    url: Optional[str] = None


class SessionStatus(BaseModel):
    """Vue lecture seule d'une session Stripe pour la page de succès."""
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    status: Optional[str] = None
    payment_status: Optional[str] = Field(default=None, alias="paymentStatus")
    customer_email: Optional[str] = Field(default=None, alias="customerEmail")
    amount_total: Optional[int] = Field(default=None, alias="amountTotal")
    currency: Optional[str] = None
    shipping_details: Optional[ShippingDetails] = Field(default=None, alias="shippingDetails")


class OrderRecord(BaseModel):
    id: str
    owner_id: str
    total_amount: int
    status: str = "pending"
    reconciliation_state: str = MATERIALIZING
    external_session_id: str
    payment_intent_id: Optional[str] = None
    shipping_name: Optional[str] = None
    shipping_postal_code: Optional[str] = None
    shipping_address: Optional[str] = None
    shipping_phone: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "OrderRecord":
        data = dict(row)
        for key in ("id", "owner_id", "external_session_id"):
            if data.get(key) is not None:
                data[key] = str(data[key])
        if data.get("created_at") is not None:
            data["created_at"] = str(data["created_at"])
        return cls.model_validate(data)


class StockShortfall(BaseModel):
    line_no: int
    variant_id: str
    requested: int


class ReconcileOutcome(BaseModel):
    """
    Résultat d'une livraison de 'paiement confirmé'.
    status: materialized | duplicate | skipped
    """
    status: str
    session_id: str
    order_id: Optional[str] = None
    resumed: bool = False
    reason: Optional[str] = None
    stock_shortfalls: List[StockShortfall] = Field(default_factory=list)
