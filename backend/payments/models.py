# module backend.payments.models
"""
Types de la feature 'payments': statuts, issues passerelle, session, résultat de réconciliation.
Les lignes Supabase (dict) sont validées via PaymentSession.from_row.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class SessionStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"
    DECLINED = "declined"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.PENDING


class Outcome(str, Enum):
    """Issue d'un paiement, telle que revendiquée (URL de retour) ou confirmée (passerelle)."""
    SUCCEEDED = "succeeded"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    PENDING = "pending"

    @property
    def terminal_status(self) -> Optional[SessionStatus]:
        if self is Outcome.PENDING:
            return None
        return SessionStatus(self.value)


class PaymentSession(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    user_id: str
    package_id: str
    category: str
    credits: int
    amount: Decimal
    currency: str
    status: SessionStatus = SessionStatus.PENDING
    gateway: Optional[str] = None
    gateway_order_ref: Optional[str] = None
    decline_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PaymentSession":
        # Les colonnes techniques (checkout_token...) ne font pas partie du modèle
        fields = {k: v for k, v in (row or {}).items() if k in cls.model_fields}
        fields["package_id"] = str(fields.get("package_id") or "")
        return cls.model_validate(fields)


class BuyerDetails(BaseModel):
    """Coordonnées acheteur transmises à la passerelle (bloc 'customer')."""
    email: EmailStr
    first_name: str = Field(min_length=1, max_length=80)
    last_name: str = Field(min_length=1, max_length=80)
    phone: Optional[str] = Field(default=None, max_length=32)
    address: Optional[str] = Field(default=None, max_length=200)
    city: Optional[str] = Field(default=None, max_length=80)
    state: Optional[str] = Field(default=None, max_length=80)
    country: str = Field(default="AE", min_length=2, max_length=2)
    postal_code: Optional[str] = Field(default=None, max_length=16)


class ReturnUrls(BaseModel):
    succeeded: str
    cancelled: str
    declined: str


class OrderResult(BaseModel):
    order_ref: str
    redirect_url: str


class GatewayOutcome(BaseModel):
    outcome: Outcome
    reason: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None


class ReconcileResult(BaseModel):
    """Charge utile renvoyée au client après réconciliation (clés camelCase)."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    status: SessionStatus
    spare_parts_credits: Optional[int] = Field(default=None, alias="sparePartsCredits")
    automotive_credits: Optional[int] = Field(default=None, alias="automotiveCredits")
    reason: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
