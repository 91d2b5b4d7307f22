"""
Student purchase database model.
"""

from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, Enum, UniqueConstraint
from backend.app.core.clock import utcnow
from backend.app.db.session import Base
from backend.app.models.banking_enums import PurchaseStatus


class StudentPurchase(Base):
    """
    Accumulated purchases of one item by one student.
    
    Repeat purchases increment quantity and total_price on the same row.
    """
    __tablename__ = "student_purchases"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey('store_items.id'), nullable=False, index=True)
    
    quantity = Column(Integer, nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    status = Column(Enum(PurchaseStatus), default=PurchaseStatus.PAID, nullable=False)
    
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    
    __table_args__ = (
        UniqueConstraint('student_id', 'item_id', name='uq_student_purchase_student_item'),
    )
    
    def __repr__(self):
        return f"<StudentPurchase(student_id={self.student_id}, item_id={self.item_id}, quantity={self.quantity})>"
