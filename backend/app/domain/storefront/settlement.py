"""
Storefront Settlement (Domain Logic).

Atomic purchase of a store item: inventory decrement, balance debit,
transaction record and purchase accumulation commit as one unit.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from backend.app.core.clock import utcnow
from backend.app.core.exceptions import (
    InsufficientFundsError,
    ItemUnavailableError,
    ResourceNotFoundError,
    ValidationError,
)
from backend.app.db.session import atomic
from backend.app.domain.banking.ledger import CENT, LedgerService
from backend.app.models.bank_account import BankAccount
from backend.app.models.bank_transaction import BankTransaction
from backend.app.models.banking_enums import PurchaseStatus
from backend.app.models.store_item import StoreItem, store_item_classes
from backend.app.models.student_purchase import StudentPurchase
from backend.app.services.directory import enrolled_class_ids, get_student

logger = logging.getLogger(__name__)


@dataclass
class PurchaseResult:
    purchase: StudentPurchase
    item: StoreItem
    transaction: Optional[BankTransaction]
    account: BankAccount
    total_cost: Decimal
    new_balance: Decimal


class SettlementService:

    @staticmethod
    async def purchase(
        db: AsyncSession,
        student_id: int,
        item_id: int,
        quantity: int,
        account_id: int
    ) -> PurchaseResult:
        """
        Purchase `quantity` units of a store item.

        Flow:
        1. Resolve student, payment account (must be theirs), enrollments
        2. Item must be available, in stock, and offered to an enrolled class
        3. Balance must cover price * quantity
        4. Conditional inventory decrement + ledger debit
        5. Create or accumulate the StudentPurchase row

        Raises:
            ResourceNotFoundError: unknown student, item, or foreign account
            ItemUnavailableError: availability, stock or class-scope violation
            InsufficientFundsError: balance below the total cost
        """
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", details={"quantity": quantity})

        async with atomic(db):
            student = await get_student(db, student_id)

            account = await db.get(BankAccount, account_id)
            if not account or account.student_id != student.id:
                raise ResourceNotFoundError("Bank account", account_id)

            class_ids = await enrolled_class_ids(db, student.id)

            item = await db.get(StoreItem, item_id)
            if not item:
                raise ResourceNotFoundError("Store item", item_id)

            if not item.is_available:
                raise ItemUnavailableError(details={"item_id": item_id})

            if item.quantity < quantity:
                raise ItemUnavailableError(
                    "Not enough items in stock",
                    details={"item_id": item_id, "remaining": item.quantity, "requested": quantity}
                )

            if not await SettlementService._offered_to(db, item.id, class_ids):
                raise ItemUnavailableError(
                    "This item is not offered in any of your classes",
                    details={"item_id": item_id}
                )

            total_cost = (Decimal(item.price) * quantity).quantize(CENT)
            if account.balance < total_cost:
                raise InsufficientFundsError(
                    account.id, balance=account.balance, needed=total_cost - account.balance
                )

            # Check-and-decrement in one statement; the row lock serializes racing buyers
            stock = await db.execute(
                update(StoreItem)
                .where(
                    StoreItem.id == item.id,
                    StoreItem.is_available.is_(True),
                    StoreItem.quantity >= quantity
                )
                .values(quantity=StoreItem.quantity - quantity, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if stock.rowcount == 0:
                raise ItemUnavailableError("Not enough items in stock", details={"item_id": item_id})

            transaction = None
            if total_cost > 0:
                transaction = await LedgerService.debit(
                    db, account.id, total_cost, f"Purchased {quantity}x {item.name}"
                )

            purchase = await SettlementService._accumulate(db, student.id, item.id, quantity, total_cost)

            await db.refresh(item)
            await db.refresh(account)
            new_balance = account.balance

        logger.info(
            "Student %s bought %sx item %s for %s (balance %s, stock %s)",
            student_id, quantity, item_id, total_cost, new_balance, item.quantity
        )
        return PurchaseResult(
            purchase=purchase,
            item=item,
            transaction=transaction,
            account=account,
            total_cost=total_cost,
            new_balance=new_balance
        )

    @staticmethod
    async def _offered_to(db: AsyncSession, item_id: int, class_ids: List[int]) -> bool:
        if not class_ids:
            return False
        result = await db.execute(
            select(store_item_classes.c.store_item_id)
            .where(
                store_item_classes.c.store_item_id == item_id,
                store_item_classes.c.class_id.in_(class_ids)
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def _accumulate(
        db: AsyncSession,
        student_id: int,
        item_id: int,
        quantity: int,
        total_cost: Decimal
    ) -> StudentPurchase:
        """Increment the (student, item) purchase row, creating it on first purchase."""
        result = await db.execute(
            select(StudentPurchase).where(
                StudentPurchase.student_id == student_id,
                StudentPurchase.item_id == item_id
            )
        )
        existing = result.scalar_one_or_none()

        if existing:
            await db.execute(
                update(StudentPurchase)
                .where(StudentPurchase.id == existing.id)
                .values(
                    quantity=StudentPurchase.quantity + quantity,
                    total_price=StudentPurchase.total_price + total_cost,
                    status=PurchaseStatus.PAID,
                    updated_at=utcnow()
                )
                .execution_options(synchronize_session=False)
            )
            await db.refresh(existing)
            return existing

        purchase = StudentPurchase(
            student_id=student_id,
            item_id=item_id,
            quantity=quantity,
            total_price=total_cost,
            status=PurchaseStatus.PAID
        )
        db.add(purchase)
        await db.flush()
        return purchase

    @staticmethod
    async def list_available_items(db: AsyncSession, student_id: int) -> List[StoreItem]:
        """In-stock, available store items offered to any class the student is enrolled in."""
        class_ids = await enrolled_class_ids(db, student_id)
        if not class_ids:
            return []

        offered = (
            select(store_item_classes.c.store_item_id)
            .where(store_item_classes.c.class_id.in_(class_ids))
        )
        result = await db.execute(
            select(StoreItem)
            .where(
                StoreItem.id.in_(offered),
                StoreItem.is_available.is_(True),
                StoreItem.quantity > 0
            )
            .order_by(StoreItem.name, StoreItem.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_purchases(db: AsyncSession, student_id: int) -> List[StudentPurchase]:
        result = await db.execute(
            select(StudentPurchase)
            .where(StudentPurchase.student_id == student_id)
            .order_by(StudentPurchase.updated_at.desc(), StudentPurchase.id.desc())
        )
        return list(result.scalars().all())
