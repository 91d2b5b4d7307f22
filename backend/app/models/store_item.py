"""
Storefront item database model.

Items belong to a teacher and are offered to one or more of their classes.
"""

from sqlalchemy import (
    Column, Integer, String, Text, Numeric, Boolean, ForeignKey, DateTime, Table, CheckConstraint
)
from backend.app.core.clock import utcnow
from backend.app.db.session import Base


# Many-to-many scope of an item
store_item_classes = Table(
    "store_item_classes",
    Base.metadata,
    Column("store_item_id", Integer, ForeignKey("store_items.id", ondelete="CASCADE"), primary_key=True),
    Column("class_id", Integer, ForeignKey("classes.id", ondelete="CASCADE"), primary_key=True),
)


class StoreItem(Base):
    """
    Store item model.
    
    quantity is the remaining stock; it is decremented only by settlement
    and can never go below zero.
    """
    __tablename__ = "store_items"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    teacher_id = Column(Integer, ForeignKey('teachers.id'), nullable=False, index=True)
    
    name = Column(String(200), nullable=False)
    emoji = Column(String(16), nullable=True)
    description = Column(Text, nullable=True)
    
    price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, default=0, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    
    __table_args__ = (
        CheckConstraint('price >= 0', name='ck_store_item_price_non_negative'),
        CheckConstraint('quantity >= 0', name='ck_store_item_quantity_non_negative'),
    )
    
    def __repr__(self):
        return f"<StoreItem(id={self.id}, name='{self.name}', quantity={self.quantity})>"
