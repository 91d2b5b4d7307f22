"""
Student Banking API Endpoints.

Students see and move money only between their own accounts.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core import clock
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.core.guards import require_student
from backend.app.core.redis_client import get_redis
from backend.app.db.session import atomic, get_db
from backend.app.domain.banking.ledger import LedgerService
from backend.app.domain.banking.statements import (
    GENERATED, NO_TRANSACTIONS, StatementService, download_filename
)
from backend.app.models.bank_account import BankAccount
from backend.app.schemas.banking import (
    AccountResponse, TransactionResponse, TransferRequest, TransferResponse
)
from backend.app.schemas.statements import StatementResponse
from backend.app.services.accounts import setup_accounts_for_student
from backend.app.services.audit import AuditAction, log_event
from backend.app.services.blob_storage import LocalBlobStorage, get_blob_storage

router = APIRouter(prefix="/student/banking", tags=["Student - Banking"])


async def _own_account(db: AsyncSession, student_id: int, account_id: int) -> BankAccount:
    account = await db.get(BankAccount, account_id)
    if not account or account.student_id != student_id:
        raise ResourceNotFoundError("Bank account", account_id)
    return account


@router.post("/setup", response_model=List[AccountResponse])
async def setup_accounts(
    current_user: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    """Create the caller's CHECKING and SAVINGS accounts if missing."""
    student_id = current_user["user_id"]
    before = await LedgerService.get_student_accounts(db, student_id)
    accounts = await setup_accounts_for_student(db, student_id)
    response = [AccountResponse.model_validate(a) for a in accounts]

    if len(accounts) > len(before):
        await log_event(
            db=db,
            action=AuditAction.ACCOUNTS_PROVISIONED,
            actor_id=student_id,
            actor_role=current_user["role"],
            target_student_id=student_id,
            metadata={"account_ids": [a.id for a in accounts]}
        )

    return response


@router.get("/accounts", response_model=List[AccountResponse])
async def list_accounts(
    current_user: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    return await LedgerService.get_student_accounts(db, current_user["user_id"])


@router.get("/transactions", response_model=List[TransactionResponse])
async def list_transactions(
    account_id: int = Query(..., alias="accountId"),
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    current_user: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    """Transactions of one of the caller's accounts, oldest first."""
    await _own_account(db, current_user["user_id"], account_id)
    return await LedgerService.list_transactions(db, account_id, start=start, end=end)


@router.post("/transfer", response_model=TransferResponse)
async def transfer(
    request: TransferRequest,
    current_user: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    """
    Move money between the caller's own accounts.

    Both legs commit together or not at all.
    """
    student_id = current_user["user_id"]

    async with atomic(db):
        outgoing, incoming = await LedgerService.student_transfer(
            db, student_id, request.from_account_id, request.to_account_id, request.amount
        )
        from_account = await LedgerService.get_account(db, request.from_account_id)
        to_account = await LedgerService.get_account(db, request.to_account_id)

    response = TransferResponse(
        outgoing=TransactionResponse.model_validate(outgoing),
        incoming=TransactionResponse.model_validate(incoming),
        from_account=AccountResponse.model_validate(from_account),
        to_account=AccountResponse.model_validate(to_account)
    )

    await log_event(
        db=db,
        action=AuditAction.TRANSFER_COMPLETED,
        actor_id=student_id,
        actor_role=current_user["role"],
        target_student_id=student_id,
        metadata={
            "from_account_id": request.from_account_id,
            "to_account_id": request.to_account_id,
            "amount": request.amount,
        }
    )

    return response


@router.get("/available-statements", response_model=List[StatementResponse])
async def available_statements(
    account_id: int = Query(..., alias="accountId"),
    year: Optional[int] = Query(default=None),
    current_user: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    """Cached statements for one of the caller's accounts (defaults to this year)."""
    await _own_account(db, current_user["user_id"], account_id)
    return await StatementService.list_available(db, account_id, year or clock.today().year)


@router.get("/statements/download")
async def download_statement(
    account_id: int = Query(..., alias="accountId"),
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=2000, le=2100),
    current_user: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
    storage: LocalBlobStorage = Depends(get_blob_storage)
):
    """
    Redirect to the statement spreadsheet, generating it on first request.
    """
    student_id = current_user["user_id"]
    account = await _own_account(db, student_id, account_id)
    account_type = account.account_type

    result = await StatementService.generate_or_fetch(
        db, redis, storage, account_id, month, year, student_id=student_id
    )

    if result.status == NO_TRANSACTIONS:
        raise ResourceNotFoundError("Statement", error_code="ERR_NOT_FOUND_001")

    if result.status == GENERATED:
        await log_event(
            db=db,
            action=AuditAction.STATEMENT_GENERATED,
            actor_id=student_id,
            actor_role=current_user["role"],
            target_student_id=student_id,
            metadata={"account_id": account_id, "month": month, "year": year}
        )

    filename = download_filename(month, year, account_type)
    return RedirectResponse(
        url=result.statement.url,
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )
