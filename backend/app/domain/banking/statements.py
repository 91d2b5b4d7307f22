"""
Statement Generator (Domain Logic).

Monthly spreadsheet statements per account, cached by (account, month, year).

Lifecycle of a statement key:
    absent -> generating (Redis marker) -> cached (BankStatement row)

A period without transactions never produces a cached statement.
"""

import calendar
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from backend.app.core import clock
from backend.app.core.config import settings
from backend.app.core.exceptions import (
    AppException,
    ResourceNotFoundError,
    StatementInProgressError,
    ValidationError,
)
from backend.app.db.session import atomic
from backend.app.domain.banking.ledger import LedgerService
from backend.app.models.bank_account import BankAccount
from backend.app.models.bank_statement import BankStatement
from backend.app.models.bank_transaction import BankTransaction
from backend.app.models.banking_enums import AccountType
from backend.app.schemas.statements import (
    MonthlyStatementSummary, StatementResponse, StatementResult
)
from backend.app.services.blob_storage import XLSX_CONTENT_TYPE, LocalBlobStorage
from backend.app.services.directory import get_student, primary_class_name
from backend.app.services.statement_export import StatementRow, build_workbook

logger = logging.getLogger(__name__)

CACHED = "cached"
GENERATED = "generated"
NO_TRANSACTIONS = "no_transactions"


def period_bounds(month: int, year: int) -> Tuple[datetime, datetime]:
    """[first day of month, first day of next month) as naive UTC datetimes."""
    start = datetime(year, month, 1)
    if month == 12:
        end = datetime(year + 1, 1, 1)
    else:
        end = datetime(year, month + 1, 1)
    return start, end


def statement_blob_path(student_id: int, account_id: int, month: int, year: int) -> str:
    month_name = calendar.month_name[month]
    return f"statements/{student_id}/{account_id}/{year}/{month_name}/{month_name}_{year}_statement.xlsx"


def download_filename(month: int, year: int, account_type: AccountType) -> str:
    """e.g. June_2025_Checking_Statement.xlsx"""
    return f"{calendar.month_name[month]}_{year}_{account_type.label}_Statement.xlsx"


def marker_key(account_id: int, month: int, year: int) -> str:
    return f"statement:generating:{account_id}:{year}:{month:02d}"


def validate_period(month: int, year: int, today: date) -> None:
    """
    A statement may be produced for a closed month, or for the current
    month once the configured generation day has been reached.

    Raises:
        ValidationError: malformed month, future month, or open current month
    """
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12", details={"month": month})

    if (year, month) > (today.year, today.month):
        raise ValidationError(
            "Statements are not available for future periods",
            details={"month": month, "year": year}
        )

    if (year, month) == (today.year, today.month) and today.day < settings.statement_generation_day:
        raise ValidationError(
            f"Statement for the current month is available from day {settings.statement_generation_day}",
            details={"month": month, "year": year}
        )


def build_rows(
    transactions: List[BankTransaction],
    opening_balance: Decimal,
    student_name: str,
    class_name: str,
    account: BankAccount,
    month: int,
    year: int
) -> List[StatementRow]:
    """Project transactions into statement rows with a running balance."""
    period_label = f"{calendar.month_name[month]} {year}"
    account_label = f"{account.account_type.value} ({account.account_number})"

    balance = opening_balance
    rows = []
    for txn in transactions:
        balance += Decimal(txn.signed_amount)
        rows.append(StatementRow(
            student_name=student_name,
            class_name=class_name,
            date=txn.created_at.strftime("%m/%d/%Y"),
            time=txn.created_at.strftime("%H:%M:%S"),
            description=txn.description,
            type=txn.transaction_type.value,
            amount=float(txn.amount),
            statement_period=period_label,
            balance=float(balance),
            account=account_label
        ))
    return rows


class StatementService:

    @staticmethod
    async def get_cached(db: AsyncSession, account_id: int, month: int, year: int) -> Optional[BankStatement]:
        result = await db.execute(
            select(BankStatement).where(
                BankStatement.account_id == account_id,
                BankStatement.month == month,
                BankStatement.year == year
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def generate_or_fetch(
        db: AsyncSession,
        redis,
        storage: LocalBlobStorage,
        account_id: int,
        month: int,
        year: int,
        student_id: Optional[int] = None,
        today: Optional[date] = None,
        overwrite: bool = False,
        allow_open_period: bool = False
    ) -> StatementResult:
        """
        Return the cached statement for a period, generating it if needed.

        Flow:
        1. Cache hit (unless overwrite) -> return it untouched
        2. Validate the period against today
        3. No transactions in the period -> "no_transactions", nothing stored
        4. Take the Redis "generating" marker (SET NX EX)
        5. Build rows with a running balance, serialize, store the blob
        6. Upsert the BankStatement row, release the marker

        Args:
            db: Database session
            redis: Async Redis client
            storage: Blob store for the spreadsheet
            account_id: Account to report on
            month: 1-12
            year: Calendar year
            student_id: Expected owner; a mismatch is reported as not found
            today: Reference date for period validation
            overwrite: Regenerate even when a cached statement exists
            allow_open_period: Skip the period check (monthly sweep of the current month)

        Raises:
            ResourceNotFoundError: unknown account (or not owned by student_id)
            ValidationError: period not yet closed
            StatementInProgressError: same key already being generated
        """
        today = today or clock.today()

        account = await db.get(BankAccount, account_id)
        if not account or (student_id is not None and account.student_id != student_id):
            raise ResourceNotFoundError("Bank account", account_id)

        if not overwrite:
            cached = await StatementService.get_cached(db, account_id, month, year)
            if cached:
                return StatementResult(
                    status=CACHED,
                    message="Statement already generated",
                    statement=StatementResponse.model_validate(cached)
                )

        if not allow_open_period:
            validate_period(month, year, today)

        start, end = period_bounds(month, year)
        transactions = await LedgerService.list_transactions(db, account_id, start=start, end=end)
        if not transactions:
            logger.info("No transactions for account %s in %s/%s, statement skipped", account_id, month, year)
            return StatementResult(
                status=NO_TRANSACTIONS,
                message=f"No transactions found for {calendar.month_name[month]} {year}"
            )

        key = marker_key(account_id, month, year)
        acquired = await redis.set(key, "generating", nx=True, ex=settings.statement_marker_ttl_seconds)
        if not acquired:
            raise StatementInProgressError(account_id, month, year)

        try:
            student = await get_student(db, account.student_id)
            class_name = await primary_class_name(db, student.id) or ""
            opening_balance = await LedgerService.balance_before(db, account_id, start)

            rows = build_rows(
                transactions, opening_balance, student.full_name, class_name, account, month, year
            )
            data = build_workbook(rows)

            blob = await storage.put(
                statement_blob_path(student.id, account_id, month, year), data, XLSX_CONTENT_TYPE
            )

            async with atomic(db):
                statement = await StatementService.get_cached(db, account_id, month, year)
                if statement:
                    statement.blob_path = blob.path
                    statement.url = blob.url
                    statement.generated_at = clock.utcnow()
                else:
                    statement = BankStatement(
                        account_id=account_id,
                        student_id=student.id,
                        month=month,
                        year=year,
                        blob_path=blob.path,
                        url=blob.url,
                        generated_at=clock.utcnow()
                    )
                    db.add(statement)
                await db.flush()
        finally:
            await redis.delete(key)

        logger.info(
            "Generated statement for account %s %s/%s (%s rows, %s bytes)",
            account_id, month, year, len(rows), blob.size
        )
        return StatementResult(
            status=GENERATED,
            message="Statement generated",
            statement=StatementResponse.model_validate(statement)
        )

    @staticmethod
    async def generate_monthly(
        db: AsyncSession,
        redis,
        storage: LocalBlobStorage,
        today: Optional[date] = None,
        force: bool = False
    ) -> MonthlyStatementSummary:
        """
        Regenerate the current month's statement for every account.

        Only runs on the configured generation day unless forced. Each
        account is isolated: a failure is counted and the sweep continues.
        """
        today = today or clock.today()
        summary = MonthlyStatementSummary(run_date=today)

        if not force and today.day != settings.statement_generation_day:
            logger.info(
                "Monthly statements skipped: day %s is not generation day %s",
                today.day, settings.statement_generation_day
            )
            summary.ran = False
            return summary

        result = await db.execute(select(BankAccount.id, BankAccount.student_id).order_by(BankAccount.id))
        accounts = list(result.all())
        summary.total = len(accounts)

        for account_id, student_id in accounts:
            try:
                outcome = await StatementService.generate_or_fetch(
                    db, redis, storage, account_id, today.month, today.year,
                    student_id=student_id, today=today, overwrite=True, allow_open_period=True
                )
            except (AppException, SQLAlchemyError) as exc:
                await db.rollback()
                message = exc.message if isinstance(exc, AppException) else "Internal error"
                logger.warning("Monthly statement failed for account %s: %s", account_id, message)
                summary.failed += 1
                summary.details.append({"account_id": account_id, "status": "failed", "error": message})
                continue

            if outcome.status == NO_TRANSACTIONS:
                summary.no_transactions += 1
            else:
                summary.success += 1
            summary.details.append({"account_id": account_id, "status": outcome.status})

        logger.info(
            "Monthly statements for %s: total=%s success=%s failed=%s empty=%s",
            today, summary.total, summary.success, summary.failed, summary.no_transactions
        )
        return summary

    @staticmethod
    async def list_available(db: AsyncSession, account_id: int, year: int) -> List[BankStatement]:
        """Cached statements of one account for a year, newest month first."""
        result = await db.execute(
            select(BankStatement)
            .where(BankStatement.account_id == account_id, BankStatement.year == year)
            .order_by(BankStatement.month.desc())
        )
        return list(result.scalars().all())
