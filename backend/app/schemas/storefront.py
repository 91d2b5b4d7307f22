"""
Storefront Schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from backend.app.models.banking_enums import PurchaseStatus
from backend.app.schemas.base import ApiModel
from backend.app.schemas.banking import AccountResponse, TransactionResponse


class PurchaseRequest(ApiModel):
    """Schema for a student purchase."""
    item_id: int
    quantity: int = Field(default=1, ge=1)
    account_id: int


class StoreItemResponse(ApiModel):
    """Schema for displaying a store item."""
    id: int
    name: str
    emoji: Optional[str] = None
    description: Optional[str] = None
    price: float
    quantity: int
    is_available: bool


class PurchaseRecordResponse(ApiModel):
    """Accumulated purchases of one item by one student."""
    id: int
    item_id: int
    quantity: int
    total_price: float
    status: PurchaseStatus
    created_at: datetime
    updated_at: datetime


class PurchaseResponse(ApiModel):
    """Result of a completed purchase."""
    purchase: PurchaseRecordResponse
    item: StoreItemResponse
    transaction: Optional[TransactionResponse] = None
    account: AccountResponse
    total_cost: float
    new_balance: float
