"""
Storefront Settlement Tests.

A purchase changes inventory, balance, history and the purchase record
together, or changes nothing.
"""

import pytest
from decimal import Decimal
from sqlalchemy import select, func

from backend.app.core.exceptions import (
    InsufficientFundsError, ItemUnavailableError, ResourceNotFoundError, ValidationError
)
from backend.app.db.session import atomic
from backend.app.domain.banking.ledger import LedgerService
from backend.app.domain.storefront.settlement import SettlementService
from backend.app.models.bank_transaction import BankTransaction
from backend.app.models.store_item import StoreItem
from backend.app.models.student_purchase import StudentPurchase


async def _stock(db, item_id):
    item = await db.get(StoreItem, item_id, populate_existing=True)
    return item.quantity


async def _purchase_rows(db, student_id):
    result = await db.execute(
        select(StudentPurchase)
        .where(StudentPurchase.student_id == student_id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_purchase_debits_balance_and_decrements_stock(db_session, classroom, make_item, balance_of):
    student_id = classroom.student_ids[0]
    account_id = classroom.checking[student_id]
    item_id = await make_item(classroom.teacher_id, [classroom.class_id], name="Eraser", price="1.50", quantity=5)

    result = await SettlementService.purchase(db_session, student_id, item_id, 2, account_id)

    assert result.total_cost == Decimal("3.00")
    assert result.new_balance == Decimal("7.00")
    assert result.transaction.description == "Purchased 2x Eraser"
    assert await balance_of(account_id) == Decimal("7.00")
    assert await _stock(db_session, item_id) == 3


@pytest.mark.asyncio
async def test_repeat_purchases_accumulate_into_one_row(db_session, classroom, make_item):
    student_id = classroom.student_ids[0]
    account_id = classroom.checking[student_id]
    item_id = await make_item(classroom.teacher_id, [classroom.class_id], price="1.00", quantity=10)

    await SettlementService.purchase(db_session, student_id, item_id, 1, account_id)
    await SettlementService.purchase(db_session, student_id, item_id, 3, account_id)

    rows = await _purchase_rows(db_session, student_id)
    assert len(rows) == 1
    assert rows[0].quantity == 4
    assert Decimal(rows[0].total_price) == Decimal("4.00")


@pytest.mark.asyncio
async def test_insufficient_funds_leaves_everything_unchanged(db_session, classroom, make_item, balance_of):
    """A 5.00 item against a 3.00 balance."""
    student_id = classroom.student_ids[0]
    account_id = classroom.savings[student_id]
    item_id = await make_item(classroom.teacher_id, [classroom.class_id], price="5.00", quantity=4)

    await SettlementService.purchase(db_session, student_id, item_id, 1, classroom.checking[student_id])
    async with atomic(db_session):
        await LedgerService.credit(db_session, account_id, "3.00", "Allowance")

    with pytest.raises(InsufficientFundsError):
        await SettlementService.purchase(db_session, student_id, item_id, 1, account_id)

    assert await balance_of(account_id) == Decimal("3.00")
    assert await _stock(db_session, item_id) == 3
    rows = await _purchase_rows(db_session, student_id)
    assert [r.quantity for r in rows] == [1]


@pytest.mark.asyncio
async def test_cannot_buy_more_than_stock(db_session, classroom, make_item, balance_of):
    student_id = classroom.student_ids[0]
    account_id = classroom.checking[student_id]
    item_id = await make_item(classroom.teacher_id, [classroom.class_id], price="0.50", quantity=2)

    with pytest.raises(ItemUnavailableError) as exc_info:
        await SettlementService.purchase(db_session, student_id, item_id, 3, account_id)

    assert exc_info.value.message == "Not enough items in stock"
    assert await _stock(db_session, item_id) == 2
    assert await balance_of(account_id) == Decimal("10.00")


@pytest.mark.asyncio
async def test_stock_never_goes_negative_across_purchases(db_session, classroom, make_item):
    first, second = classroom.student_ids[0], classroom.student_ids[1]
    item_id = await make_item(classroom.teacher_id, [classroom.class_id], price="1.00", quantity=1)

    await SettlementService.purchase(db_session, first, item_id, 1, classroom.checking[first])

    with pytest.raises(ItemUnavailableError):
        await SettlementService.purchase(db_session, second, item_id, 1, classroom.checking[second])

    assert await _stock(db_session, item_id) == 0


@pytest.mark.asyncio
async def test_unavailable_item_is_rejected(db_session, classroom, make_item):
    student_id = classroom.student_ids[0]
    item_id = await make_item(classroom.teacher_id, [classroom.class_id], is_available=False)

    with pytest.raises(ItemUnavailableError) as exc_info:
        await SettlementService.purchase(db_session, student_id, item_id, 1, classroom.checking[student_id])

    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_item_from_another_class_is_not_offered(db_session, classroom, make_item):
    student_id = classroom.student_ids[0]
    item_id = await make_item(classroom.other_teacher_id, [classroom.other_class_id])

    with pytest.raises(ItemUnavailableError) as exc_info:
        await SettlementService.purchase(db_session, student_id, item_id, 1, classroom.checking[student_id])

    assert "not offered" in exc_info.value.message
    items = await SettlementService.list_available_items(db_session, student_id)
    assert item_id not in [i.id for i in items]


@pytest.mark.asyncio
async def test_foreign_payment_account_is_not_found(db_session, classroom, make_item):
    student_id, other_id = classroom.student_ids[0], classroom.student_ids[1]
    item_id = await make_item(classroom.teacher_id, [classroom.class_id])

    with pytest.raises(ResourceNotFoundError):
        await SettlementService.purchase(db_session, student_id, item_id, 1, classroom.checking[other_id])


@pytest.mark.asyncio
async def test_zero_quantity_is_rejected(db_session, classroom, make_item):
    student_id = classroom.student_ids[0]
    item_id = await make_item(classroom.teacher_id, [classroom.class_id])

    with pytest.raises(ValidationError):
        await SettlementService.purchase(db_session, student_id, item_id, 0, classroom.checking[student_id])


@pytest.mark.asyncio
async def test_free_item_skips_ledger(db_session, classroom, make_item, balance_of):
    student_id = classroom.student_ids[0]
    account_id = classroom.checking[student_id]
    item_id = await make_item(classroom.teacher_id, [classroom.class_id], name="Sticker", price="0.00", quantity=3)

    result = await SettlementService.purchase(db_session, student_id, item_id, 1, account_id)

    assert result.transaction is None
    assert await balance_of(account_id) == Decimal("10.00")
    count = await db_session.execute(
        select(func.count(BankTransaction.id)).where(BankTransaction.account_id == account_id)
    )
    assert count.scalar_one() == 0


@pytest.mark.asyncio
async def test_sold_out_and_disabled_items_are_not_listed(db_session, classroom, make_item):
    student_id = classroom.student_ids[0]
    await make_item(classroom.teacher_id, [classroom.class_id], name="Eraser", quantity=3)
    await make_item(classroom.teacher_id, [classroom.class_id], name="Sold Out", quantity=0)
    await make_item(classroom.teacher_id, [classroom.class_id], name="Disabled", is_available=False)

    items = await SettlementService.list_available_items(db_session, student_id)

    assert [i.name for i in items] == ["Eraser"]
