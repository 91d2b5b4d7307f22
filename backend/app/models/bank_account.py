"""
Bank account database model.

One CHECKING and one SAVINGS account per student.
"""

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Enum, UniqueConstraint, CheckConstraint
from backend.app.core.clock import utcnow
from backend.app.db.session import Base
from backend.app.models.banking_enums import AccountType


class BankAccount(Base):
    """
    Bank account model.
    
    The balance is only changed by the ledger through conditional UPDATE
    statements; the CHECK constraint backs the non-negative invariant.
    """
    __tablename__ = "bank_accounts"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False, index=True)
    account_type = Column(Enum(AccountType), nullable=False)
    account_number = Column(String(20), nullable=False)
    
    balance = Column(Numeric(12, 2), default=0, nullable=False)
    
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    
    __table_args__ = (
        UniqueConstraint('student_id', 'account_type', name='uq_bank_account_student_type'),
        CheckConstraint('balance >= 0', name='ck_bank_account_balance_non_negative'),
    )
    
    @property
    def display_account_number(self) -> str:
        return f"{self.account_type.display_prefix}{self.account_number}"
    
    def __repr__(self):
        return f"<BankAccount(id={self.id}, type='{self.account_type.value}', balance={self.balance})>"
