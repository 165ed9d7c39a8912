"""
Types métier du routage des commandes et du paiement partagé.
- CartLine / Seller / Order: enregistrements lus depuis Supabase (pydantic)
- PaymentMode / OrderStatus / OnboardingStatus: énumérations str (sérialisées telles quelles en base)
- PlatformFeeAllocation / CaptureResult: résultats immuables des calculs
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_validator


class PaymentMode(str, Enum):
    STANDARD = "Standard"
    SINGLE_SELLER_SPLIT = "SingleSellerSplit"
    MULTI_SELLER_SPLIT = "MultiSellerSplit"

    @property
    def is_split(self) -> bool:
        return self is not PaymentMode.STANDARD


class OrderStatus(str, Enum):
    CREATED = "Created"
    COMPLETED = "Completed"


class OnboardingStatus(str, Enum):
    NOT_STARTED = "NotStarted"
    PENDING = "Pending"
    COMPLETED = "Completed"
    REVOKED = "Revoked"


class CaptureOutcome(str, Enum):
    CAPTURED = "Captured"
    DECLINED = "Declined"
    INDETERMINATE = "Indeterminate"


class CartLine(BaseModel):
    item_ref: str
    unit_price: Decimal
    # None: article appartenant à la plateforme
    seller_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CartLine":
        """
        Ligne 'cart_items' jointe à 'items(seller_id)':
        { "item_ref": "...", "price": "9.99", "items": { "seller_id": "..." | null } }
        """
        item = row.get("items") or {}
        return cls(
            item_ref=str(row.get("item_ref")),
            unit_price=Decimal(str(row.get("price") or "0")),
            seller_id=item.get("seller_id") or None,
        )


class Seller(BaseModel):
    id: str
    user_id: str
    merchant_id: Optional[str] = None
    commission_rate: Decimal = Decimal("0.15")
    onboarding_status: OnboardingStatus = OnboardingStatus.NOT_STARTED
    is_active: bool = False
    tracking_id: Optional[str] = None
    payments_receivable: bool = False
    primary_email_confirmed: bool = False
    referral_url: Optional[str] = None

    @field_validator("commission_rate")
    @classmethod
    def _rate_in_range(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 1:
            raise ValueError("commission_rate doit être compris entre 0 et 1")
        return v

    @property
    def is_payable(self) -> bool:
        """Vendeur éligible au paiement partagé: actif, identifiant marchand lié, onboarding terminé."""
        return (
            self.is_active
            and bool(self.merchant_id)
            and self.onboarding_status == OnboardingStatus.COMPLETED
        )


class Order(BaseModel):
    id: str
    user_id: str
    external_order_id: str
    total_amount: Decimal
    payment_mode: PaymentMode
    status: OrderStatus = OrderStatus.CREATED
    item_refs: List[str] = []
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class SellerEligibilityEvent(BaseModel):
    source: str  # "direct" | "webhook"
    status: OnboardingStatus
    tracking_id: Optional[str] = None
    merchant_id: Optional[str] = None
    payments_receivable: bool = False
    primary_email_confirmed: bool = False


@dataclass(frozen=True)
class PlatformFeeAllocation:
    seller_id: str
    gross: Decimal
    commission: Decimal
    net: Decimal


@dataclass(frozen=True)
class CaptureResult:
    outcome: CaptureOutcome
    reason: Optional[str] = None
    message: Optional[str] = None
    capture_id: Optional[str] = None

    @property
    def captured(self) -> bool:
        return self.outcome == CaptureOutcome.CAPTURED
