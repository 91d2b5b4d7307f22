"""
Student and class directory lookups.

Read-only queries the banking core uses for authorization and scoping.
"""

from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.models.school_class import SchoolClass, Enrollment
from backend.app.models.student import Student


async def get_student(db: AsyncSession, student_id: int) -> Student:
    """Fetch a student or raise ResourceNotFoundError."""
    student = await db.get(Student, student_id)
    if not student:
        raise ResourceNotFoundError("Student", student_id)
    return student


async def teacher_enrolls_student(db: AsyncSession, teacher_id: int, student_id: int) -> bool:
    """
    Check the teacher-student authorization relationship.
    
    True when the student has an active enrollment in a class owned by
    the teacher.
    """
    result = await db.execute(
        select(Enrollment.id)
        .join(SchoolClass, SchoolClass.id == Enrollment.class_id)
        .where(
            Enrollment.student_id == student_id,
            Enrollment.enrolled.is_(True),
            SchoolClass.teacher_id == teacher_id
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def enrolled_class_ids(db: AsyncSession, student_id: int) -> List[int]:
    """IDs of the classes a student is actively enrolled in."""
    result = await db.execute(
        select(Enrollment.class_id).where(
            Enrollment.student_id == student_id,
            Enrollment.enrolled.is_(True)
        )
    )
    return list(result.scalars().all())


async def primary_class_name(db: AsyncSession, student_id: int) -> Optional[str]:
    """Name of the student's earliest active class, used on statements."""
    result = await db.execute(
        select(SchoolClass.name)
        .join(Enrollment, Enrollment.class_id == SchoolClass.id)
        .where(
            Enrollment.student_id == student_id,
            Enrollment.enrolled.is_(True)
        )
        .order_by(Enrollment.created_at, Enrollment.id)
        .limit(1)
    )
    return result.scalar_one_or_none()
