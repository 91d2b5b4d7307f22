"""
Scheduled fund operation database model.

Deferred (and optionally recurring) add/remove-funds instructions, kept
apart from any user-facing calendar.
"""

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Date, Enum, Text, CheckConstraint, Index
from backend.app.core.clock import utcnow
from backend.app.db.session import Base
from backend.app.models.banking_enums import (
    AccountType, FundingKind, Recurrence, ScheduledOperationStatus
)


class ScheduledFundOperation(Base):
    """
    Scheduled fund operation model.
    
    next_run_date is the effective date of the next occurrence. The
    due-operations trigger executes every PENDING row whose next_run_date
    has arrived and rolls it forward in the same database transaction.
    """
    __tablename__ = "scheduled_fund_operations"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    teacher_id = Column(Integer, ForeignKey('teachers.id'), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False, index=True)
    account_type = Column(Enum(AccountType), nullable=False)
    
    kind = Column(Enum(FundingKind), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(255), nullable=False)
    
    # Recurrence descriptor
    recurrence = Column(Enum(Recurrence), default=Recurrence.ONCE, nullable=False)
    recurrence_interval = Column(Integer, default=0, nullable=False)  # weeks or months
    anchor_day = Column(Integer, nullable=True)  # weekday (0=Mon) or day of month
    
    next_run_date = Column(Date, nullable=False)
    status = Column(Enum(ScheduledOperationStatus), default=ScheduledOperationStatus.PENDING, nullable=False)
    
    run_count = Column(Integer, default=0, nullable=False)
    last_run_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    
    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_scheduled_fund_operation_amount_positive'),
        Index('ix_scheduled_fund_operations_due', 'status', 'next_run_date'),
    )
    
    def __repr__(self):
        return (
            f"<ScheduledFundOperation(id={self.id}, kind='{self.kind.value}', "
            f"next_run_date={self.next_run_date}, status='{self.status.value}')>"
        )
