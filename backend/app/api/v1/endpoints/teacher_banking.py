"""
Teacher Banking API Endpoints.

Funding, account oversight, recurring operations and on-demand statements
for the students enrolled in the teacher's classes.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import NotEnrolledError
from backend.app.core.guards import require_teacher
from backend.app.core.redis_client import get_redis
from backend.app.db.session import get_db
from backend.app.domain.banking.funding import FundingService
from backend.app.domain.banking.ledger import LedgerService
from backend.app.domain.banking.statements import GENERATED, StatementService
from backend.app.models.banking_enums import FundingKind
from backend.app.schemas.banking import (
    AccountResponse, AuditEntryResponse, FundingRequest, FundingResponse,
    ScheduledOperationResponse, TransactionResponse
)
from backend.app.schemas.statements import StatementRequest, StatementResult
from backend.app.services.audit import AuditAction, get_audit_trail, log_event
from backend.app.services.blob_storage import LocalBlobStorage, get_blob_storage
from backend.app.services.directory import teacher_enrolls_student

router = APIRouter(prefix="/teacher/banking", tags=["Teacher - Banking"])


async def _ensure_enrolled(db: AsyncSession, teacher_id: int, student_id: int) -> None:
    if not await teacher_enrolls_student(db, teacher_id, student_id):
        raise NotEnrolledError(student_id)


async def _fund(
    kind: FundingKind,
    request: FundingRequest,
    response: Response,
    current_user: dict,
    db: AsyncSession
) -> FundingResponse:
    result = await FundingService.schedule_or_execute(db, current_user["user_id"], request, kind)

    # Partial failure is reported as Multi-Status
    if result.failures:
        response.status_code = status.HTTP_207_MULTI_STATUS

    for outcome in result.results:
        if not outcome.success:
            continue
        if outcome.status == "scheduled":
            action = AuditAction.FUNDS_SCHEDULED
        elif kind == FundingKind.ADD:
            action = AuditAction.FUNDS_ADDED
        else:
            action = AuditAction.FUNDS_REMOVED
        await log_event(
            db=db,
            action=action,
            actor_id=current_user["user_id"],
            actor_role=current_user["role"],
            target_student_id=outcome.student_id,
            metadata={
                "account_type": request.account_type.value,
                "amount": request.amount,
                "recurrence": request.recurrence.value,
                "issue_date": request.issue_date,
                "transaction_id": outcome.transaction_id,
                "scheduled_operation_id": outcome.scheduled_operation_id,
            }
        )

    return result


@router.post("/add-funds", response_model=FundingResponse)
async def add_funds(
    request: FundingRequest,
    response: Response,
    current_user: dict = Depends(require_teacher),
    db: AsyncSession = Depends(get_db)
):
    """
    Add funds to the selected students' accounts.

    Executes immediately when the issue date is today or earlier, otherwise
    schedules the credit. Returns 207 when some students failed.
    """
    return await _fund(FundingKind.ADD, request, response, current_user, db)


@router.post("/remove-funds", response_model=FundingResponse)
async def remove_funds(
    request: FundingRequest,
    response: Response,
    current_user: dict = Depends(require_teacher),
    db: AsyncSession = Depends(get_db)
):
    """Remove funds from the selected students' accounts."""
    return await _fund(FundingKind.REMOVE, request, response, current_user, db)


@router.get("/students/{student_id}/accounts", response_model=List[AccountResponse])
async def list_student_accounts(
    student_id: int = Path(..., description="Student ID"),
    current_user: dict = Depends(require_teacher),
    db: AsyncSession = Depends(get_db)
):
    await _ensure_enrolled(db, current_user["user_id"], student_id)
    return await LedgerService.get_student_accounts(db, student_id)


@router.get("/students/{student_id}/activity", response_model=List[AuditEntryResponse])
async def student_activity(
    student_id: int = Path(..., description="Student ID"),
    action: Optional[str] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    current_user: dict = Depends(require_teacher),
    db: AsyncSession = Depends(get_db)
):
    """Audit trail of money-moving actions affecting one student, newest first."""
    await _ensure_enrolled(db, current_user["user_id"], student_id)
    return await get_audit_trail(db, target_student_id=student_id, action=action, limit=limit)


@router.get("/accounts/{account_id}/transactions", response_model=List[TransactionResponse])
async def list_account_transactions(
    account_id: int = Path(..., description="Bank account ID"),
    current_user: dict = Depends(require_teacher),
    db: AsyncSession = Depends(get_db)
):
    """Transaction history of an account owned by one of the teacher's students."""
    account = await LedgerService.get_account(db, account_id)
    await _ensure_enrolled(db, current_user["user_id"], account.student_id)
    return await LedgerService.list_transactions(db, account_id)


@router.get("/recurring-transactions", response_model=List[ScheduledOperationResponse])
async def list_recurring_transactions(
    student_id: Optional[int] = Query(default=None, alias="studentId"),
    include_one_time: bool = Query(default=False, alias="includeOneTime"),
    current_user: dict = Depends(require_teacher),
    db: AsyncSession = Depends(get_db)
):
    """Pending recurring (and optionally one-time) scheduled operations."""
    return await FundingService.list_operations(
        db, current_user["user_id"], student_id=student_id, recurring_only=not include_one_time
    )


@router.post("/recurring-transactions/{operation_id}/stop", response_model=ScheduledOperationResponse)
async def stop_recurring_transaction(
    operation_id: int = Path(..., description="Scheduled operation ID"),
    current_user: dict = Depends(require_teacher),
    db: AsyncSession = Depends(get_db)
):
    operation = await FundingService.cancel_operation(db, current_user["user_id"], operation_id)
    response = ScheduledOperationResponse.model_validate(operation)

    await log_event(
        db=db,
        action=AuditAction.RECURRING_OPERATION_STOPPED,
        actor_id=current_user["user_id"],
        actor_role=current_user["role"],
        target_student_id=operation.student_id,
        metadata={"operation_id": operation.id}
    )

    return response


@router.post("/statements/generate", response_model=StatementResult)
async def generate_statement(
    request: StatementRequest,
    current_user: dict = Depends(require_teacher),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
    storage: LocalBlobStorage = Depends(get_blob_storage)
):
    """Generate (or fetch the cached) statement for one student account."""
    account = await LedgerService.get_account(db, request.account_id)
    await _ensure_enrolled(db, current_user["user_id"], account.student_id)
    student_id = account.student_id

    result = await StatementService.generate_or_fetch(
        db, redis, storage, request.account_id, request.month, request.year,
        overwrite=request.overwrite
    )

    if result.status == GENERATED:
        await log_event(
            db=db,
            action=AuditAction.STATEMENT_GENERATED,
            actor_id=current_user["user_id"],
            actor_role=current_user["role"],
            target_student_id=student_id,
            metadata={"account_id": request.account_id, "month": request.month, "year": request.year}
        )

    return result
