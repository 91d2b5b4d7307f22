"""
Centralized Test Configuration.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.core.jwt import create_access_token
from backend.app.core.redis_client import get_redis
from backend.app.models.bank_account import BankAccount
from backend.app.models.banking_enums import AccountType
from backend.app.models.school_class import SchoolClass, Enrollment
from backend.app.models.store_item import StoreItem, store_item_classes
from backend.app.models.student import Student
from backend.app.models.teacher import Teacher
from backend.app.services.blob_storage import LocalBlobStorage, get_blob_storage
import backend.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        return not self._closed

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if self._closed:
            return False
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
def blob_storage(tmp_path):
    return LocalBlobStorage(str(tmp_path / "blobs"), "/v1/blobs")


@pytest.fixture(autouse=True)
def apply_overrides(mock_redis, blob_storage):
    """Point the app at the in-memory database, mock Redis and a temp blob dir."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = mock_redis

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_blob_storage] = lambda: blob_storage
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


# Fixture data helpers

def auth_headers(user_id: int, role: str, sub: str = None) -> dict:
    token = create_access_token(data={"sub": sub or f"{role.lower()}{user_id}", "user_id": user_id, "role": role})
    return {"Authorization": f"Bearer {token}"}


async def create_account(db, student_id, account_type=AccountType.CHECKING, balance="0.00", number=None):
    account = BankAccount(
        student_id=student_id,
        account_type=account_type,
        account_number=number or f"{1000000000 + student_id * 10 + (0 if account_type == AccountType.CHECKING else 1)}",
        balance=Decimal(balance)
    )
    db.add(account)
    await db.commit()
    await db.refresh(account)
    return account


async def create_item(db, teacher_id, class_ids, name="Pencil", price="2.00", quantity=10, is_available=True):
    item = StoreItem(
        teacher_id=teacher_id,
        name=name,
        emoji="✏️",
        price=Decimal(price),
        quantity=quantity,
        is_available=is_available
    )
    db.add(item)
    await db.flush()
    for class_id in class_ids:
        await db.execute(store_item_classes.insert().values(store_item_id=item.id, class_id=class_id))
    await db.commit()
    await db.refresh(item)
    return item


@pytest.fixture
async def classroom(db_session):
    """
    One teacher with one class of three enrolled students, each with a
    CHECKING account (10.00) and a SAVINGS account (0.00), plus an
    unrelated teacher and an unenrolled student.
    """
    teacher = Teacher(name="Ms. Frizzle", email="frizzle@school.test")
    other_teacher = Teacher(name="Mr. Ratburn", email="ratburn@school.test")
    db_session.add_all([teacher, other_teacher])
    await db_session.flush()

    school_class = SchoolClass(name="Period 1 Economics", code="ECON1", teacher_id=teacher.id)
    other_class = SchoolClass(name="Period 3 Math", code="MATH3", teacher_id=other_teacher.id)
    db_session.add_all([school_class, other_class])
    await db_session.flush()

    students = [
        Student(first_name="Arnold", last_name="Perlstein", email="arnold@school.test"),
        Student(first_name="Wanda", last_name="Li", email="wanda@school.test"),
        Student(first_name="Carlos", last_name="Ramon", email="carlos@school.test"),
    ]
    outsider = Student(first_name="Janet", last_name="Perlstein", email="janet@school.test")
    db_session.add_all(students + [outsider])
    await db_session.flush()

    for student in students:
        db_session.add(Enrollment(student_id=student.id, class_id=school_class.id))
    db_session.add(Enrollment(student_id=outsider.id, class_id=other_class.id))
    await db_session.commit()

    checking = {}
    savings = {}
    for student in students + [outsider]:
        checking[student.id] = (await create_account(db_session, student.id, AccountType.CHECKING, "10.00")).id
        savings[student.id] = (await create_account(db_session, student.id, AccountType.SAVINGS, "0.00")).id

    # Plain ids only: a rollback inside a service expires every ORM instance
    return SimpleNamespace(
        teacher_id=teacher.id,
        other_teacher_id=other_teacher.id,
        class_id=school_class.id,
        other_class_id=other_class.id,
        student_ids=[student.id for student in students],
        outsider_id=outsider.id,
        checking=checking,
        savings=savings,
        teacher_headers=auth_headers(teacher.id, "TEACHER"),
    )


@pytest.fixture
def headers_for():
    """Bearer headers for a principal: headers_for(user_id, "STUDENT")."""
    return auth_headers


@pytest.fixture
def make_item(db_session):
    async def _make(teacher_id, class_ids, **kwargs):
        return (await create_item(db_session, teacher_id, class_ids, **kwargs)).id
    return _make


@pytest.fixture
def balance_of(db_session):
    """Current persisted balance of an account."""
    async def _balance(account_id):
        account = await db_session.get(BankAccount, account_id, populate_existing=True)
        return Decimal(account.balance)
    return _balance
