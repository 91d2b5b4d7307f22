"""
Teacher directory model.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from backend.app.core.clock import utcnow
from backend.app.db.session import Base


class Teacher(Base):
    """
    Teacher model.
    
    Identity is established upstream; this row only anchors class ownership
    and the teacher-side authorization checks.
    """
    __tablename__ = "teachers"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    
    created_at = Column(DateTime, default=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<Teacher(id={self.id}, email='{self.email}')>"
