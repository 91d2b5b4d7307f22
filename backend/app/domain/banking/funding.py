"""
Funding Engine (Domain Logic).

Teacher-initiated add/remove funds with immediate-vs-scheduled dispatch,
and the due-operations trigger that materializes scheduled occurrences.

Batch semantics: every student is processed in its own atomic unit, so one
misconfigured student never blocks (or rolls back) the rest of the class.
"""

import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from backend.app.core import clock
from backend.app.core.exceptions import (
    AppException,
    AccountNotFoundError,
    InsufficientFundsError,
    NotEnrolledError,
    ResourceNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from backend.app.db.session import atomic
from backend.app.domain.banking.ledger import LedgerService, to_money
from backend.app.domain.banking.recurrence import next_occurrence, recurrence_descriptor
from backend.app.models.bank_transaction import BankTransaction
from backend.app.models.banking_enums import (
    FundingKind, Recurrence, ScheduledOperationStatus
)
from backend.app.models.scheduled_fund_operation import ScheduledFundOperation
from backend.app.schemas.banking import (
    DueOperationsSummary, FundingRequest, FundingResponse, FundingResult
)
from backend.app.services.directory import teacher_enrolls_student

logger = logging.getLogger(__name__)


def default_description(kind: FundingKind, recurrence: Recurrence) -> str:
    verb = "added" if kind == FundingKind.ADD else "removed"
    if recurrence == Recurrence.ONCE:
        return f"Funds {verb} by teacher"
    return f"Recurring {recurrence.value.lower()} funds {verb} by teacher"


def occurrence_time(occurrence: date, today: date) -> datetime:
    """Timestamp for an occurrence: now for today, start of day when backdated."""
    if occurrence == today:
        return datetime.combine(occurrence, clock.utcnow().time())
    return datetime.combine(occurrence, time.min)


class FundingService:

    @staticmethod
    async def apply(
        db: AsyncSession,
        kind: FundingKind,
        account_id: int,
        amount: Decimal,
        description: str,
        occurred_at: datetime
    ) -> BankTransaction:
        """Credit (ADD) or debit (REMOVE) through the ledger."""
        if kind == FundingKind.ADD:
            return await LedgerService.credit(db, account_id, amount, description, occurred_at=occurred_at)
        return await LedgerService.debit(db, account_id, amount, description, occurred_at=occurred_at)

    @staticmethod
    async def schedule_or_execute(
        db: AsyncSession,
        teacher_id: int,
        request: FundingRequest,
        kind: FundingKind,
        today: Optional[date] = None
    ) -> FundingResponse:
        """
        Fund (or debit) a batch of students now or on a future date.

        Flow per student:
        1. Enrollment authorization (NotEnrolled)
        2. Resolve the account of the requested type (AccountNotFound)
        3. Future issue date -> ScheduledFundOperation, no ledger effect
           Today or earlier -> ledger credit/debit dated at the issue date
        4. Recurring requests executed now also record the next occurrence

        Args:
            db: Database session (each student commits separately)
            teacher_id: Authenticated teacher
            request: Validated funding payload
            kind: ADD or REMOVE
            today: Date used for the dispatch decision (defaults to UTC today)

        Returns:
            FundingResponse with one FundingResult per student
        """
        today = today or clock.today()
        issue_date = request.issue_date or today
        amount = to_money(request.amount)
        description = request.description or default_description(kind, request.recurrence)

        results: List[FundingResult] = []
        for student_id in request.student_ids:
            try:
                async with atomic(db):
                    result = await FundingService._fund_student(
                        db, teacher_id, student_id, request, kind,
                        amount, description, issue_date, today
                    )
                results.append(result)
            except AppException as exc:
                logger.warning(
                    "Funding %s failed for student %s: %s", kind.value, student_id, exc.message
                )
                results.append(FundingResult(
                    student_id=student_id,
                    success=False,
                    error=exc.message,
                    error_code=exc.error_code
                ))
            except SQLAlchemyError:
                logger.exception("Funding %s hit a storage error for student %s", kind.value, student_id)
                results.append(FundingResult(
                    student_id=student_id,
                    success=False,
                    error="Internal error",
                    error_code="ERR_INTERNAL_SERVER"
                ))

        failures = [r for r in results if not r.success]
        succeeded = len(results) - len(failures)
        verb = "added to" if kind == FundingKind.ADD else "removed from"

        if failures:
            return FundingResponse(
                success=False,
                message=f"Funds {verb} {succeeded} of {len(results)} accounts",
                results=results,
                warning="Some operations failed"
            )

        scheduled = issue_date > today
        if scheduled:
            message = f"Scheduled funds for {succeeded} accounts on {issue_date.isoformat()}"
        else:
            message = f"Successfully {verb} {succeeded} accounts"
        return FundingResponse(success=True, message=message, results=results)

    @staticmethod
    async def _fund_student(
        db: AsyncSession,
        teacher_id: int,
        student_id: int,
        request: FundingRequest,
        kind: FundingKind,
        amount: Decimal,
        description: str,
        issue_date: date,
        today: date
    ) -> FundingResult:
        if not await teacher_enrolls_student(db, teacher_id, student_id):
            raise NotEnrolledError(student_id)

        account = await LedgerService.get_student_account(db, student_id, request.account_type)
        interval, anchor_day = recurrence_descriptor(request.recurrence, issue_date)

        if issue_date > today:
            operation = ScheduledFundOperation(
                teacher_id=teacher_id,
                student_id=student_id,
                account_type=request.account_type,
                kind=kind,
                amount=amount,
                description=description,
                recurrence=request.recurrence,
                recurrence_interval=interval,
                anchor_day=anchor_day,
                next_run_date=issue_date,
                status=ScheduledOperationStatus.PENDING
            )
            db.add(operation)
            await db.flush()

            logger.info(
                "Scheduled %s of %s for student %s on %s (%s)",
                kind.value, amount, student_id, issue_date, request.recurrence.value
            )
            return FundingResult(
                student_id=student_id,
                success=True,
                status="scheduled",
                scheduled_operation_id=operation.id
            )

        txn = await FundingService.apply(
            db, kind, account.id, amount, description,
            occurred_at=occurrence_time(issue_date, today)
        )

        operation_id = None
        if request.recurrence != Recurrence.ONCE:
            operation = ScheduledFundOperation(
                teacher_id=teacher_id,
                student_id=student_id,
                account_type=request.account_type,
                kind=kind,
                amount=amount,
                description=description,
                recurrence=request.recurrence,
                recurrence_interval=interval,
                anchor_day=anchor_day,
                next_run_date=next_occurrence(issue_date, request.recurrence, interval, anchor_day),
                status=ScheduledOperationStatus.PENDING,
                run_count=1,
                last_run_at=clock.utcnow()
            )
            db.add(operation)
            await db.flush()
            operation_id = operation.id

        return FundingResult(
            student_id=student_id,
            success=True,
            status="executed",
            transaction_id=txn.id,
            scheduled_operation_id=operation_id
        )

    @staticmethod
    async def run_due_operations(db: AsyncSession, today: Optional[date] = None) -> DueOperationsSummary:
        """
        Execute every PENDING operation whose next_run_date has arrived.

        Each operation is one atomic unit: its ledger writes and the advance
        of next_run_date commit together, so triggering twice on the same
        day never executes an occurrence twice. Missed occurrences are
        caught up, each dated at its own occurrence date.
        """
        today = today or clock.today()

        result = await db.execute(
            select(ScheduledFundOperation.id)
            .where(
                ScheduledFundOperation.status == ScheduledOperationStatus.PENDING,
                ScheduledFundOperation.next_run_date <= today
            )
            .order_by(ScheduledFundOperation.next_run_date, ScheduledFundOperation.id)
        )
        operation_ids = list(result.scalars().all())

        summary = DueOperationsSummary(run_date=today)
        for operation_id in operation_ids:
            try:
                async with atomic(db):
                    executed, failed, completed = await FundingService._run_operation(db, operation_id, today)
            except SQLAlchemyError:
                logger.exception("Scheduled operation %s failed with a storage error", operation_id)
                summary.failed += 1
                continue

            summary.processed += 1
            summary.executed += executed
            summary.failed += failed
            summary.completed += completed

        logger.info(
            "Due operations run for %s: processed=%s executed=%s failed=%s",
            today, summary.processed, summary.executed, summary.failed
        )
        return summary

    @staticmethod
    async def _run_operation(db: AsyncSession, operation_id: int, today: date) -> Tuple[int, int, int]:
        result = await db.execute(
            select(ScheduledFundOperation)
            .where(ScheduledFundOperation.id == operation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        operation = result.scalar_one_or_none()

        # Another trigger may have handled it in the meantime
        if (
            operation is None
            or operation.status != ScheduledOperationStatus.PENDING
            or operation.next_run_date > today
        ):
            return 0, 0, 0

        # Enrollment may have ended since the operation was scheduled
        if not await teacher_enrolls_student(db, operation.teacher_id, operation.student_id):
            operation.last_error = NotEnrolledError(operation.student_id).message
            operation.last_run_at = clock.utcnow()
            if operation.recurrence == Recurrence.ONCE:
                operation.status = ScheduledOperationStatus.FAILED
            else:
                operation.status = ScheduledOperationStatus.CANCELLED
            logger.warning(
                "Scheduled operation %s stopped: student %s no longer enrolled with teacher %s",
                operation.id, operation.student_id, operation.teacher_id
            )
            await db.flush()
            return 0, 1, 1

        executed = failed = completed = 0
        while operation.status == ScheduledOperationStatus.PENDING and operation.next_run_date <= today:
            occurrence = operation.next_run_date
            succeeded = False
            try:
                account = await LedgerService.get_student_account(db, operation.student_id, operation.account_type)
                await FundingService.apply(
                    db, operation.kind, account.id, operation.amount, operation.description,
                    occurred_at=occurrence_time(occurrence, today)
                )
                operation.last_error = None
                succeeded = True
                executed += 1
            except (InsufficientFundsError, AccountNotFoundError) as exc:
                # Neither path writes anything, so the unit stays clean
                operation.last_error = exc.message
                failed += 1
                logger.warning(
                    "Scheduled operation %s occurrence %s failed: %s",
                    operation.id, occurrence, exc.message
                )

            operation.run_count += 1
            operation.last_run_at = clock.utcnow()

            following = next_occurrence(
                occurrence, operation.recurrence, operation.recurrence_interval, operation.anchor_day
            )
            if following is None:
                operation.status = (
                    ScheduledOperationStatus.COMPLETED if succeeded else ScheduledOperationStatus.FAILED
                )
                completed += 1
            else:
                operation.next_run_date = following

        await db.flush()
        return executed, failed, completed

    @staticmethod
    async def list_operations(
        db: AsyncSession,
        teacher_id: int,
        student_id: Optional[int] = None,
        recurring_only: bool = True
    ) -> List[ScheduledFundOperation]:
        """Pending scheduled operations created by a teacher."""
        query = select(ScheduledFundOperation).where(
            ScheduledFundOperation.teacher_id == teacher_id,
            ScheduledFundOperation.status == ScheduledOperationStatus.PENDING
        )
        if student_id is not None:
            query = query.where(ScheduledFundOperation.student_id == student_id)
        if recurring_only:
            query = query.where(ScheduledFundOperation.recurrence != Recurrence.ONCE)

        query = query.order_by(ScheduledFundOperation.next_run_date, ScheduledFundOperation.id)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def cancel_operation(db: AsyncSession, teacher_id: int, operation_id: int) -> ScheduledFundOperation:
        """
        Stop a pending scheduled operation.

        Raises:
            ResourceNotFoundError: unknown operation
            UnauthorizedError: operation belongs to another teacher
            ValidationError: operation is no longer pending
        """
        async with atomic(db):
            operation = await db.get(ScheduledFundOperation, operation_id)
            if not operation:
                raise ResourceNotFoundError("Scheduled operation", operation_id)

            if operation.teacher_id != teacher_id:
                raise UnauthorizedError("Unauthorized to modify this scheduled operation")

            if operation.status != ScheduledOperationStatus.PENDING:
                raise ValidationError(
                    f"Scheduled operation is {operation.status.value}, expected PENDING",
                    details={"operation_id": operation_id}
                )

            operation.status = ScheduledOperationStatus.CANCELLED
            await db.flush()

        logger.info("Teacher %s cancelled scheduled operation %s", teacher_id, operation_id)
        return operation
