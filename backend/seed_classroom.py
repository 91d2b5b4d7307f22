"""
Database seeding script for a demo classroom.

Creates one teacher, one class with three enrolled students (each with a
CHECKING and a SAVINGS account) and a few store items, then prints bearer
tokens for trying the API locally.
Run this script after database is set up but before first use.
"""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from backend.app.core.jwt import create_access_token
from backend.app.db.session import AsyncSessionLocal, Base, engine
from backend.app.models.enums import UserRole
from backend.app.models.school_class import SchoolClass, Enrollment
from backend.app.models.store_item import StoreItem, store_item_classes
from backend.app.models.student import Student
from backend.app.models.teacher import Teacher
from backend.app.services.accounts import setup_accounts_for_student

STUDENTS = [
    ("Arnold", "Perlstein", "arnold@school.test"),
    ("Wanda", "Li", "wanda@school.test"),
    ("Carlos", "Ramon", "carlos@school.test"),
]

ITEMS = [
    ("Homework Pass", "📝", Decimal("15.00"), 5),
    ("Pencil", "✏️", Decimal("1.00"), 50),
    ("Sticker", "⭐", Decimal("0.00"), 100),
]


async def seed_classroom():
    """
    Seed a demo classroom.
    
    Creates:
    - 1 TEACHER with class "Period 1 Economics"
    - 3 STUDENTS enrolled in it, accounts provisioned
    - 3 store items offered to the class
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting classroom seeding...")
        
        result = await db.execute(select(Teacher).where(Teacher.email == "frizzle@school.test"))
        if result.scalar_one_or_none():
            print("ℹ️  Demo classroom already exists, skipping seeding")
            return
        
        teacher = Teacher(name="Ms. Frizzle", email="frizzle@school.test")
        db.add(teacher)
        await db.flush()
        
        school_class = SchoolClass(name="Period 1 Economics", code="ECON1", emoji="💰", teacher_id=teacher.id)
        db.add(school_class)
        await db.flush()
        print(f"✅ Created TEACHER {teacher.email} and class {school_class.code}")
        
        students = []
        for first_name, last_name, email in STUDENTS:
            student = Student(first_name=first_name, last_name=last_name, email=email)
            db.add(student)
            await db.flush()
            db.add(Enrollment(student_id=student.id, class_id=school_class.id))
            students.append(student)
        
        for name, emoji, price, quantity in ITEMS:
            item = StoreItem(
                teacher_id=teacher.id, name=name, emoji=emoji, price=price, quantity=quantity
            )
            db.add(item)
            await db.flush()
            await db.execute(
                store_item_classes.insert().values(store_item_id=item.id, class_id=school_class.id)
            )
        
        await db.commit()
        
        for student in students:
            accounts = await setup_accounts_for_student(db, student.id)
            numbers = ", ".join(a.display_account_number for a in accounts)
            print(f"✅ Created STUDENT {student.full_name} ({numbers})")
        
        print("\n🎉 Classroom seeding completed successfully!")
        print("\nBearer tokens:")
        teacher_token = create_access_token(
            data={"sub": teacher.email, "user_id": teacher.id, "role": UserRole.TEACHER.value}
        )
        print(f"  - TEACHER {teacher.email}:\n    {teacher_token}")
        for student in students:
            token = create_access_token(
                data={"sub": student.email, "user_id": student.id, "role": UserRole.STUDENT.value}
            )
            print(f"  - STUDENT {student.email}:\n    {token}")


if __name__ == "__main__":
    asyncio.run(seed_classroom())
