"""
Account Ledger (Domain Logic).

Sole authority for balance state and transaction history.

Every primitive here runs inside the caller's unit of work: it flushes but
never commits, so transfers, purchases and funding can compose several
primitives into one atomic block (see ``backend.app.db.session.atomic``).
Balances only move through conditional UPDATE statements, which lets the
database serialize concurrent writers to the same account row.
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from backend.app.core.clock import utcnow
from backend.app.core.exceptions import (
    AccountNotFoundError,
    InsufficientFundsError,
    ResourceNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from backend.app.models.bank_account import BankAccount
from backend.app.models.bank_transaction import BankTransaction
from backend.app.models.banking_enums import AccountType, TransactionType

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_money(amount) -> Decimal:
    """
    Normalize an amount to a positive two-decimal Decimal.

    Raises:
        ValidationError: amount is not a number, not positive, or has
            fractions of a cent
    """
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("Amount must be a number", details={"amount": str(amount)})

    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be greater than zero", details={"amount": str(amount)})

    quantized = value.quantize(CENT)
    if quantized != value:
        raise ValidationError("Amount cannot have more than two decimal places", details={"amount": str(amount)})

    return quantized


def signed_total(transactions: Iterable[BankTransaction]) -> Decimal:
    """Net effect of transactions on a balance."""
    total = Decimal("0.00")
    for txn in transactions:
        total += Decimal(txn.signed_amount)
    return total.quantize(CENT)


class LedgerService:

    @staticmethod
    async def get_account(db: AsyncSession, account_id: int) -> BankAccount:
        """Fetch an account or raise ResourceNotFoundError."""
        account = await db.get(BankAccount, account_id)
        if not account:
            raise ResourceNotFoundError("Bank account", account_id)
        return account

    @staticmethod
    async def get_student_account(
        db: AsyncSession,
        student_id: int,
        account_type: AccountType
    ) -> BankAccount:
        """Resolve a student's account of the given type or raise AccountNotFoundError."""
        result = await db.execute(
            select(BankAccount).where(
                BankAccount.student_id == student_id,
                BankAccount.account_type == account_type
            )
        )
        account = result.scalar_one_or_none()
        if not account:
            raise AccountNotFoundError(student_id, account_type.value)
        return account

    @staticmethod
    async def get_student_accounts(db: AsyncSession, student_id: int) -> List[BankAccount]:
        result = await db.execute(
            select(BankAccount)
            .where(BankAccount.student_id == student_id)
            .order_by(BankAccount.account_type, BankAccount.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def credit(
        db: AsyncSession,
        account_id: int,
        amount,
        description: str,
        occurred_at: Optional[datetime] = None,
        transaction_type: TransactionType = TransactionType.DEPOSIT,
        counterparty_account_id: Optional[int] = None
    ) -> BankTransaction:
        """
        Increase a balance and append the matching transaction.

        Args:
            db: Database session (transaction managed by caller)
            account_id: Account to credit
            amount: Positive amount
            description: Free-text description shown on history and statements
            occurred_at: Occurrence time, defaults to now; may be backdated
            transaction_type: DEPOSIT, or TRANSFER_IN when called by transfer
            counterparty_account_id: Source account of a transfer

        Returns:
            The appended BankTransaction
        """
        amount = to_money(amount)
        account = await LedgerService.get_account(db, account_id)

        await db.execute(
            update(BankAccount)
            .where(BankAccount.id == account_id)
            .values(balance=BankAccount.balance + amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

        txn = BankTransaction(
            account_id=account_id,
            counterparty_account_id=counterparty_account_id,
            transaction_type=transaction_type,
            amount=amount,
            description=description,
            created_at=occurred_at or utcnow()
        )
        db.add(txn)
        await db.flush()
        await db.refresh(account)

        logger.info(
            "Credited %s to account %s (%s), balance now %s",
            amount, account_id, transaction_type.value, account.balance
        )
        return txn

    @staticmethod
    async def debit(
        db: AsyncSession,
        account_id: int,
        amount,
        description: str,
        occurred_at: Optional[datetime] = None,
        transaction_type: TransactionType = TransactionType.WITHDRAWAL,
        counterparty_account_id: Optional[int] = None
    ) -> BankTransaction:
        """
        Decrease a balance and append the matching transaction.

        The balance check and the decrement are a single conditional UPDATE,
        so two concurrent debits can never both spend the same money.

        Raises:
            InsufficientFundsError: balance is lower than amount (nothing written)
        """
        amount = to_money(amount)
        account = await LedgerService.get_account(db, account_id)

        result = await db.execute(
            update(BankAccount)
            .where(BankAccount.id == account_id, BankAccount.balance >= amount)
            .values(balance=BankAccount.balance - amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            await db.refresh(account)
            logger.warning(
                "Debit of %s rejected for account %s: balance %s",
                amount, account_id, account.balance
            )
            raise InsufficientFundsError(account_id, balance=account.balance, needed=amount - account.balance)

        txn = BankTransaction(
            account_id=account_id,
            counterparty_account_id=counterparty_account_id,
            transaction_type=transaction_type,
            amount=amount,
            description=description,
            created_at=occurred_at or utcnow()
        )
        db.add(txn)
        await db.flush()
        await db.refresh(account)

        logger.info(
            "Debited %s from account %s (%s), balance now %s",
            amount, account_id, transaction_type.value, account.balance
        )
        return txn

    @staticmethod
    async def transfer(
        db: AsyncSession,
        from_account_id: int,
        to_account_id: int,
        amount,
        description: Optional[str] = None
    ) -> Tuple[BankTransaction, BankTransaction]:
        """
        Move money between two accounts.

        Debit (TRANSFER_OUT) and credit (TRANSFER_IN) share the caller's unit
        of work; if the source cannot cover the amount nothing is written.

        Returns:
            (outgoing transaction, incoming transaction)
        """
        if from_account_id == to_account_id:
            raise ValidationError("Source and destination accounts must differ")

        source = await LedgerService.get_account(db, from_account_id)
        destination = await LedgerService.get_account(db, to_account_id)

        if not description:
            description = f"Transfer from {source.account_type.label} to {destination.account_type.label}"
        occurred_at = utcnow()

        outgoing = await LedgerService.debit(
            db, source.id, amount, description,
            occurred_at=occurred_at,
            transaction_type=TransactionType.TRANSFER_OUT,
            counterparty_account_id=destination.id
        )
        incoming = await LedgerService.credit(
            db, destination.id, amount, description,
            occurred_at=occurred_at,
            transaction_type=TransactionType.TRANSFER_IN,
            counterparty_account_id=source.id
        )
        return outgoing, incoming

    @staticmethod
    async def student_transfer(
        db: AsyncSession,
        student_id: int,
        from_account_id: int,
        to_account_id: int,
        amount
    ) -> Tuple[BankTransaction, BankTransaction]:
        """
        Transfer between two accounts owned by the calling student.

        Raises:
            UnauthorizedError: either account belongs to someone else
        """
        accounts = await LedgerService.get_student_accounts(db, student_id)
        owned_ids = {account.id for account in accounts}

        if from_account_id not in owned_ids or to_account_id not in owned_ids:
            raise UnauthorizedError(
                "Unauthorized access to accounts",
                details={"from_account_id": from_account_id, "to_account_id": to_account_id}
            )

        return await LedgerService.transfer(db, from_account_id, to_account_id, amount)

    @staticmethod
    async def list_transactions(
        db: AsyncSession,
        account_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[BankTransaction]:
        """
        Transactions of one account ordered by occurrence time.

        Args:
            start: Inclusive lower bound on created_at
            end: Exclusive upper bound on created_at
        """
        query = select(BankTransaction).where(BankTransaction.account_id == account_id)

        if start is not None:
            query = query.where(BankTransaction.created_at >= start)
        if end is not None:
            query = query.where(BankTransaction.created_at < end)

        query = query.order_by(BankTransaction.created_at, BankTransaction.id)

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def replay_balance(db: AsyncSession, account_id: int) -> Decimal:
        """Rebuild a balance from zero by applying every transaction in insertion order."""
        result = await db.execute(
            select(BankTransaction)
            .where(BankTransaction.account_id == account_id)
            .order_by(BankTransaction.id)
        )
        return signed_total(result.scalars().all())

    @staticmethod
    async def balance_before(db: AsyncSession, account_id: int, before: datetime) -> Decimal:
        """Balance implied by all transactions dated strictly before a moment."""
        result = await db.execute(
            select(BankTransaction).where(
                BankTransaction.account_id == account_id,
                BankTransaction.created_at < before
            )
        )
        return signed_total(result.scalars().all())
