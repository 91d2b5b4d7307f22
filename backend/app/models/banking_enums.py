"""
Banking and storefront enumerations.
"""

import enum


class AccountType(str, enum.Enum):
    """Named balance bucket owned by a student."""
    CHECKING = "CHECKING"
    SAVINGS = "SAVINGS"

    @property
    def label(self) -> str:
        return self.value.title()

    @property
    def display_prefix(self) -> str:
        return "CH" if self is AccountType.CHECKING else "SV"


class TransactionType(str, enum.Enum):
    """Ledger transaction type enumeration."""
    DEPOSIT = "DEPOSIT"  # Money entering the account
    WITHDRAWAL = "WITHDRAWAL"  # Money leaving the account
    TRANSFER_IN = "TRANSFER_IN"  # Incoming leg of an internal transfer
    TRANSFER_OUT = "TRANSFER_OUT"  # Outgoing leg of an internal transfer

    @property
    def sign(self) -> int:
        if self in (TransactionType.DEPOSIT, TransactionType.TRANSFER_IN):
            return 1
        return -1


class FundingKind(str, enum.Enum):
    """Direction of a teacher funding operation."""
    ADD = "ADD"
    REMOVE = "REMOVE"


class Recurrence(str, enum.Enum):
    """Recurrence of a scheduled fund operation."""
    ONCE = "ONCE"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"


class ScheduledOperationStatus(str, enum.Enum):
    """Scheduled fund operation lifecycle."""
    PENDING = "PENDING"  # Waiting for its next occurrence
    COMPLETED = "COMPLETED"  # One-time operation executed
    FAILED = "FAILED"  # One-time operation could not be executed
    CANCELLED = "CANCELLED"  # Stopped by the teacher


class PurchaseStatus(str, enum.Enum):
    """Storefront purchase status."""
    PAID = "PAID"
