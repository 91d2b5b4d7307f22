"""
Class and enrollment models.

Enrollment is the authorization relationship between a teacher (through
the classes they own) and a student.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from backend.app.core.clock import utcnow
from backend.app.db.session import Base


class SchoolClass(Base):
    """A class taught by one teacher."""
    __tablename__ = "classes"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    code = Column(String(20), unique=True, index=True, nullable=False)
    emoji = Column(String(16), nullable=True)
    
    teacher_id = Column(Integer, ForeignKey('teachers.id'), nullable=False, index=True)
    
    created_at = Column(DateTime, default=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<SchoolClass(id={self.id}, code='{self.code}')>"


class Enrollment(Base):
    """
    Student membership in a class.
    
    Only rows with enrolled=True count for authorization and storefront scope.
    """
    __tablename__ = "enrollments"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False, index=True)
    class_id = Column(Integer, ForeignKey('classes.id'), nullable=False, index=True)
    enrolled = Column(Boolean, default=True, nullable=False)
    
    created_at = Column(DateTime, default=utcnow, nullable=False)
    
    __table_args__ = (
        UniqueConstraint('student_id', 'class_id', name='uq_enrollment_student_class'),
    )
    
    def __repr__(self):
        return f"<Enrollment(student_id={self.student_id}, class_id={self.class_id}, enrolled={self.enrolled})>"
