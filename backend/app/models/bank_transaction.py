"""
Bank transaction database model.

Append-only record of every balance-affecting event.
"""

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Enum, CheckConstraint, Index
from backend.app.core.clock import utcnow
from backend.app.db.session import Base
from backend.app.models.banking_enums import TransactionType


class BankTransaction(Base):
    """
    Bank transaction model.
    
    Amount is always a positive magnitude; the direction comes from
    transaction_type. created_at is the occurrence time and may be backdated
    to an issue date. NO updates or deletions allowed.
    """
    __tablename__ = "bank_transactions"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    account_id = Column(Integer, ForeignKey('bank_accounts.id'), nullable=False, index=True)
    # Other side of a transfer
    counterparty_account_id = Column(Integer, ForeignKey('bank_accounts.id'), nullable=True)
    
    transaction_type = Column(Enum(TransactionType), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(255), nullable=False)
    
    # Immutable - no updated_at
    created_at = Column(DateTime, default=utcnow, nullable=False)
    
    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_bank_transaction_amount_positive'),
        Index('ix_bank_transactions_account_created', 'account_id', 'created_at'),
    )
    
    @property
    def signed_amount(self):
        return self.amount * self.transaction_type.sign
    
    def __repr__(self):
        return f"<BankTransaction(id={self.id}, type='{self.transaction_type.value}', amount={self.amount})>"
