"""
Funding Engine Tests.

Immediate vs scheduled dispatch, per-student isolation in batches, and
the due-operations trigger.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import select, update

from backend.app.core.exceptions import UnauthorizedError, ValidationError
from backend.app.domain.banking.funding import FundingService, default_description
from backend.app.domain.banking.ledger import LedgerService
from backend.app.models.banking_enums import FundingKind, Recurrence, ScheduledOperationStatus
from backend.app.models.scheduled_fund_operation import ScheduledFundOperation
from backend.app.models.school_class import Enrollment
from backend.app.models.student import Student
from backend.app.schemas.banking import FundingRequest

JUNE_1 = date(2025, 6, 1)


def _request(student_ids, amount="5.00", **kwargs):
    payload = {
        "studentIds": student_ids,
        "accountType": "checking",
        "amount": amount,
    }
    payload.update(kwargs)
    return FundingRequest.model_validate(payload)


async def _operations(db, student_id):
    result = await db.execute(
        select(ScheduledFundOperation)
        .where(ScheduledFundOperation.student_id == student_id)
        .order_by(ScheduledFundOperation.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_add_funds_today_credits_every_student(db_session, classroom, balance_of):
    response = await FundingService.schedule_or_execute(
        db_session, classroom.teacher_id, _request(classroom.student_ids), FundingKind.ADD, today=JUNE_1
    )

    assert response.success is True
    assert response.warning is None
    assert all(r.status == "executed" for r in response.results)
    for student_id in classroom.student_ids:
        assert await balance_of(classroom.checking[student_id]) == Decimal("15.00")


@pytest.mark.asyncio
async def test_same_day_issue_date_executes_immediately(db_session, classroom, balance_of):
    student_id = classroom.student_ids[0]
    request = _request([student_id], issueDate="2025-06-01")

    response = await FundingService.schedule_or_execute(
        db_session, classroom.teacher_id, request, FundingKind.ADD, today=JUNE_1
    )

    assert response.results[0].status == "executed"
    txns = await LedgerService.list_transactions(db_session, classroom.checking[student_id])
    assert len(txns) == 1
    assert txns[0].created_at.date() == JUNE_1
    assert txns[0].description == "Funds added by teacher"
    assert await _operations(db_session, student_id) == []


@pytest.mark.asyncio
async def test_future_issue_date_schedules_without_touching_balance(db_session, classroom, balance_of):
    student_id = classroom.student_ids[0]
    request = _request([student_id], issueDate="2025-06-15T08:00:00Z")

    response = await FundingService.schedule_or_execute(
        db_session, classroom.teacher_id, request, FundingKind.ADD, today=JUNE_1
    )

    assert response.success is True
    assert response.results[0].status == "scheduled"
    assert await balance_of(classroom.checking[student_id]) == Decimal("10.00")

    operations = await _operations(db_session, student_id)
    assert len(operations) == 1
    assert operations[0].next_run_date == date(2025, 6, 15)
    assert operations[0].status == ScheduledOperationStatus.PENDING
    assert operations[0].run_count == 0


@pytest.mark.asyncio
async def test_backdated_issue_date_is_recorded_at_start_of_that_day(db_session, classroom):
    student_id = classroom.student_ids[0]
    request = _request([student_id], issueDate="2025-05-20")

    await FundingService.schedule_or_execute(
        db_session, classroom.teacher_id, request, FundingKind.ADD, today=JUNE_1
    )

    txns = await LedgerService.list_transactions(db_session, classroom.checking[student_id])
    assert txns[0].created_at == datetime(2025, 5, 20, 0, 0)


@pytest.mark.asyncio
async def test_batch_isolates_unenrolled_student(db_session, classroom, balance_of):
    first, second = classroom.student_ids[0], classroom.student_ids[1]
    request = _request([first, classroom.outsider_id, second])

    response = await FundingService.schedule_or_execute(
        db_session, classroom.teacher_id, request, FundingKind.ADD, today=JUNE_1
    )

    assert response.success is False
    assert response.warning == "Some operations failed"
    by_student = {r.student_id: r for r in response.results}
    assert by_student[first].success and by_student[second].success
    assert by_student[classroom.outsider_id].error_code == "ERR_NOT_ENROLLED"

    assert await balance_of(classroom.checking[first]) == Decimal("15.00")
    assert await balance_of(classroom.checking[second]) == Decimal("15.00")
    assert await balance_of(classroom.checking[classroom.outsider_id]) == Decimal("10.00")


@pytest.mark.asyncio
async def test_remove_funds_fails_only_for_short_balances(db_session, classroom, balance_of):
    rich, poor = classroom.student_ids[0], classroom.student_ids[1]
    await FundingService.schedule_or_execute(
        db_session, classroom.teacher_id, _request([rich], amount="10.00"), FundingKind.ADD, today=JUNE_1
    )

    response = await FundingService.schedule_or_execute(
        db_session, classroom.teacher_id, _request([rich, poor], amount="15.00"), FundingKind.REMOVE, today=JUNE_1
    )

    by_student = {r.student_id: r for r in response.results}
    assert by_student[rich].success is True
    assert by_student[poor].error_code == "ERR_INSUFFICIENT_FUNDS"
    assert await balance_of(classroom.checking[rich]) == Decimal("5.00")
    assert await balance_of(classroom.checking[poor]) == Decimal("10.00")


@pytest.mark.asyncio
async def test_enrolled_student_without_account_reports_account_not_found(db_session, classroom):
    student = Student(first_name="No", last_name="Accounts", email="none@school.test")
    db_session.add(student)
    await db_session.flush()
    db_session.add(Enrollment(student_id=student.id, class_id=classroom.class_id))
    await db_session.commit()
    student_id = student.id

    response = await FundingService.schedule_or_execute(
        db_session, classroom.teacher_id, _request([student_id]), FundingKind.ADD, today=JUNE_1
    )

    assert response.results[0].success is False
    assert response.results[0].error_code == "ERR_ACCOUNT_NOT_FOUND"


@pytest.mark.asyncio
async def test_recurring_request_executes_now_and_records_next_occurrence(db_session, classroom, balance_of):
    student_id = classroom.student_ids[0]
    request = _request([student_id], recurrence="weekly", issueDate="2025-06-01")

    response = await FundingService.schedule_or_execute(
        db_session, classroom.teacher_id, request, FundingKind.ADD, today=JUNE_1
    )

    result = response.results[0]
    assert result.status == "executed"
    assert result.scheduled_operation_id is not None
    assert await balance_of(classroom.checking[student_id]) == Decimal("15.00")

    operation = (await _operations(db_session, student_id))[0]
    assert operation.next_run_date == date(2025, 6, 8)
    assert operation.run_count == 1
    assert operation.anchor_day == JUNE_1.weekday()
    assert operation.description == default_description(FundingKind.ADD, Recurrence.WEEKLY)


@pytest.mark.asyncio
async def test_due_operations_catch_up_and_are_idempotent(db_session, classroom, balance_of):
    student_id = classroom.student_ids[0]
    request = _request([student_id], amount="2.00", recurrence="WEEKLY", issueDate="2025-06-02")
    await FundingService.schedule_or_execute(
        db_session, classroom.teacher_id, request, FundingKind.ADD, today=JUNE_1
    )

    # Missed June 2, 9 and 16
    summary = await FundingService.run_due_operations(db_session, today=date(2025, 6, 16))
    assert summary.processed == 1
    assert summary.executed == 3
    assert await balance_of(classroom.checking[student_id]) == Decimal("16.00")

    txns = await LedgerService.list_transactions(db_session, classroom.checking[student_id])
    assert [t.created_at.date() for t in txns] == [date(2025, 6, 2), date(2025, 6, 9), date(2025, 6, 16)]

    operation = (await _operations(db_session, student_id))[0]
    assert operation.next_run_date == date(2025, 6, 23)
    assert operation.status == ScheduledOperationStatus.PENDING

    again = await FundingService.run_due_operations(db_session, today=date(2025, 6, 16))
    assert again.executed == 0
    assert await balance_of(classroom.checking[student_id]) == Decimal("16.00")


@pytest.mark.asyncio
async def test_one_time_scheduled_removal_fails_on_short_balance(db_session, classroom, balance_of):
    student_id = classroom.student_ids[0]
    request = _request([student_id], amount="50.00", issueDate="2025-06-15")
    await FundingService.schedule_or_execute(
        db_session, classroom.teacher_id, request, FundingKind.REMOVE, today=JUNE_1
    )

    summary = await FundingService.run_due_operations(db_session, today=date(2025, 6, 15))

    assert summary.failed == 1
    assert summary.completed == 1
    operation = (await _operations(db_session, student_id))[0]
    assert operation.status == ScheduledOperationStatus.FAILED
    assert operation.last_error == "Insufficient funds"
    assert await balance_of(classroom.checking[student_id]) == Decimal("10.00")


@pytest.mark.asyncio
async def test_cancel_operation_checks_owner_and_status(db_session, classroom):
    student_id = classroom.student_ids[0]
    request = _request([student_id], recurrence="MONTHLY", issueDate="2025-07-01")
    response = await FundingService.schedule_or_execute(
        db_session, classroom.teacher_id, request, FundingKind.ADD, today=JUNE_1
    )
    operation_id = response.results[0].scheduled_operation_id

    with pytest.raises(UnauthorizedError):
        await FundingService.cancel_operation(db_session, classroom.other_teacher_id, operation_id)

    cancelled = await FundingService.cancel_operation(db_session, classroom.teacher_id, operation_id)
    assert cancelled.status == ScheduledOperationStatus.CANCELLED

    with pytest.raises(ValidationError):
        await FundingService.cancel_operation(db_session, classroom.teacher_id, operation_id)

    pending = await FundingService.list_operations(db_session, classroom.teacher_id)
    assert pending == []

    summary = await FundingService.run_due_operations(db_session, today=date(2025, 7, 1))
    assert summary.processed == 0


@pytest.mark.asyncio
async def test_due_operations_stop_for_unenrolled_students(db_session, classroom, balance_of):
    once_student, weekly_student = classroom.student_ids[0], classroom.student_ids[1]
    await FundingService.schedule_or_execute(
        db_session, classroom.teacher_id, _request([once_student], issueDate="2025-06-15"),
        FundingKind.ADD, today=JUNE_1
    )
    await FundingService.schedule_or_execute(
        db_session, classroom.teacher_id,
        _request([weekly_student], recurrence="WEEKLY", issueDate="2025-06-15"),
        FundingKind.ADD, today=JUNE_1
    )

    await db_session.execute(
        update(Enrollment)
        .where(Enrollment.student_id.in_([once_student, weekly_student]))
        .values(enrolled=False)
    )
    await db_session.commit()

    summary = await FundingService.run_due_operations(db_session, today=date(2025, 6, 15))

    assert summary.processed == 2
    assert summary.executed == 0
    assert summary.failed == 2
    assert await balance_of(classroom.checking[once_student]) == Decimal("10.00")
    assert await balance_of(classroom.checking[weekly_student]) == Decimal("10.00")

    once_op = (await _operations(db_session, once_student))[0]
    weekly_op = (await _operations(db_session, weekly_student))[0]
    assert once_op.status == ScheduledOperationStatus.FAILED
    assert weekly_op.status == ScheduledOperationStatus.CANCELLED
    assert "not enrolled" in weekly_op.last_error
    txns = await LedgerService.list_transactions(db_session, classroom.checking[once_student])
    assert txns == []
