"""
Audit Log Database Model.

Tracks money-moving actions for classroom record-keeping.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from backend.app.core.clock import utcnow
from backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for tracking ledger-affecting actions.
    
    Events logged:
    - FUNDS_ADDED / FUNDS_REMOVED / FUNDS_SCHEDULED
    - SCHEDULED_OPERATIONS_RUN / RECURRING_OPERATION_STOPPED
    - TRANSFER_COMPLETED / STORE_PURCHASE
    - ACCOUNTS_PROVISIONED / STATEMENT_GENERATED
    """
    __tablename__ = "audit_logs"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Who performed the action (None for system/cron actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_role = Column(String(20), nullable=True)
    
    # What action was performed
    action = Column(String(100), nullable=False, index=True)
    
    # Student affected (if applicable)
    target_student_id = Column(Integer, index=True, nullable=True)
    
    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)
    
    # Timestamp
    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)
    
    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_id}, target={self.target_student_id})>"
