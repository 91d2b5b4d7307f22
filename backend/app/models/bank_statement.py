"""
Bank statement database model.

One cached spreadsheet export per (account, month, year).
"""

import calendar
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, UniqueConstraint
from backend.app.core.clock import utcnow
from backend.app.db.session import Base


class BankStatement(Base):
    """
    Bank statement model.
    
    Regeneration overwrites url/blob_path/generated_at on the same row.
    """
    __tablename__ = "bank_statements"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey('bank_accounts.id'), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False, index=True)
    
    month = Column(Integer, nullable=False)  # 1-12
    year = Column(Integer, nullable=False)
    
    blob_path = Column(String(500), nullable=False)
    url = Column(String(1000), nullable=False)
    
    generated_at = Column(DateTime, default=utcnow, nullable=False)
    
    __table_args__ = (
        UniqueConstraint('account_id', 'month', 'year', name='uq_bank_statement_period'),
    )
    
    @property
    def month_label(self) -> str:
        return calendar.month_name[self.month]
    
    def __repr__(self):
        return f"<BankStatement(account_id={self.account_id}, period='{self.month_label} {self.year}')>"
