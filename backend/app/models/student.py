"""
Student directory model.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from backend.app.core.clock import utcnow
from backend.app.db.session import Base


class Student(Base):
    """Student model. Owns bank accounts and storefront purchases."""
    __tablename__ = "students"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    
    created_at = Column(DateTime, default=utcnow, nullable=False)
    
    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
    
    def __repr__(self):
        return f"<Student(id={self.id}, name='{self.full_name}')>"
