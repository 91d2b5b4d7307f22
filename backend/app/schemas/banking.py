"""
Banking Schemas.

Request payloads are parsed and validated here before they reach the ledger.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, field_validator

from backend.app.models.banking_enums import (
    AccountType, Recurrence, FundingKind, ScheduledOperationStatus, TransactionType
)
from backend.app.schemas.base import ApiModel


def _upper(value):
    return value.upper() if isinstance(value, str) else value


class FundingRequest(ApiModel):
    """Schema for teacher add-funds / remove-funds requests."""
    student_ids: List[int] = Field(..., min_length=1)
    account_type: AccountType
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=255)
    issue_date: Optional[date] = None
    recurrence: Recurrence = Recurrence.ONCE
    
    @field_validator("account_type", "recurrence", mode="before")
    @classmethod
    def normalize_enum_case(cls, value):
        return _upper(value)
    
    @field_validator("issue_date", mode="before")
    @classmethod
    def strip_time(cls, value):
        # Clients may send a full ISO timestamp; only the date matters
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str) and "T" in value:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        return value
    
    @field_validator("student_ids")
    @classmethod
    def dedupe_students(cls, value: List[int]) -> List[int]:
        return list(dict.fromkeys(value))


class FundingResult(ApiModel):
    """Outcome for a single student of a batch funding request."""
    student_id: int
    success: bool
    status: Optional[str] = None  # "executed" or "scheduled"
    transaction_id: Optional[int] = None
    scheduled_operation_id: Optional[int] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class FundingResponse(ApiModel):
    """Aggregate response of a batch funding request."""
    success: bool
    message: Optional[str] = None
    results: List[FundingResult]
    warning: Optional[str] = None
    
    @property
    def failures(self) -> List[FundingResult]:
        return [r for r in self.results if not r.success]


class TransferRequest(ApiModel):
    """Schema for a student transfer between their own accounts."""
    from_account_id: int
    to_account_id: int
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)


class AccountResponse(ApiModel):
    """Schema for displaying a bank account."""
    id: int
    student_id: int
    account_type: AccountType
    account_number: str
    display_account_number: str
    balance: float


class TransactionResponse(ApiModel):
    """Schema for displaying a ledger transaction."""
    id: int
    account_id: int
    counterparty_account_id: Optional[int] = None
    transaction_type: TransactionType
    amount: float
    description: str
    created_at: datetime


class TransferResponse(ApiModel):
    outgoing: TransactionResponse
    incoming: TransactionResponse
    from_account: AccountResponse
    to_account: AccountResponse


class ScheduledOperationResponse(ApiModel):
    """Schema for displaying a scheduled fund operation."""
    id: int
    student_id: int
    account_type: AccountType
    kind: FundingKind
    amount: float
    description: str
    recurrence: Recurrence
    recurrence_interval: int
    anchor_day: Optional[int] = None
    next_run_date: date
    status: ScheduledOperationStatus
    run_count: int
    last_run_at: Optional[datetime] = None
    last_error: Optional[str] = None


class DueOperationsSummary(ApiModel):
    """Result of one run of the due-operations trigger."""
    run_date: date
    processed: int = 0
    executed: int = 0
    failed: int = 0
    completed: int = 0


class AuditEntryResponse(ApiModel):
    """Schema for one audit trail entry."""
    id: int
    action: str
    actor_id: Optional[int] = None
    actor_role: Optional[str] = None
    target_student_id: Optional[int] = None
    meta_data: Optional[dict] = None
    timestamp: datetime
