"""
Periodic Trigger API Endpoints.

Called by an external scheduler with the shared CRON_SECRET bearer token.
Both triggers are safe to call more than once on the same day.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import require_cron_secret
from backend.app.core.redis_client import get_redis
from backend.app.db.session import get_db
from backend.app.domain.banking.funding import FundingService
from backend.app.domain.banking.statements import StatementService
from backend.app.schemas.banking import DueOperationsSummary
from backend.app.schemas.statements import MonthlyStatementSummary
from backend.app.services.audit import AuditAction, log_event
from backend.app.services.blob_storage import LocalBlobStorage, get_blob_storage

router = APIRouter(
    prefix="/banking",
    tags=["Cron - Banking"],
    dependencies=[Depends(require_cron_secret)]
)


@router.post("/generate-statements", response_model=MonthlyStatementSummary)
async def generate_monthly_statements(
    force: bool = Query(default=False),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
    storage: LocalBlobStorage = Depends(get_blob_storage)
):
    """
    Regenerate the current month's statements for every account.

    A no-op outside the configured generation day unless `force` is set.
    """
    summary = await StatementService.generate_monthly(db, redis, storage, force=force)

    if summary.ran:
        await log_event(
            db=db,
            action=AuditAction.MONTHLY_STATEMENTS_RUN,
            metadata=summary.model_dump(exclude={"details"})
        )

    return summary


@router.post("/scheduled-operations/run", response_model=DueOperationsSummary)
async def run_scheduled_operations(db: AsyncSession = Depends(get_db)):
    """Execute every scheduled fund operation that has come due."""
    summary = await FundingService.run_due_operations(db)

    if summary.processed:
        await log_event(
            db=db,
            action=AuditAction.SCHEDULED_OPERATIONS_RUN,
            metadata=summary.model_dump()
        )

    return summary
