"""
Audit logging service for tracking money-moving actions.

Provides centralized logging for classroom record-keeping.
"""

import logging
from typing import Optional, Dict, Any
from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from sqlalchemy.exc import SQLAlchemyError
from backend.app.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    # Funding
    FUNDS_ADDED = "FUNDS_ADDED"
    FUNDS_REMOVED = "FUNDS_REMOVED"
    FUNDS_SCHEDULED = "FUNDS_SCHEDULED"
    SCHEDULED_OPERATIONS_RUN = "SCHEDULED_OPERATIONS_RUN"
    RECURRING_OPERATION_STOPPED = "RECURRING_OPERATION_STOPPED"
    
    # Student banking
    ACCOUNTS_PROVISIONED = "ACCOUNTS_PROVISIONED"
    TRANSFER_COMPLETED = "TRANSFER_COMPLETED"
    
    # Storefront
    STORE_PURCHASE = "STORE_PURCHASE"
    
    # Statements
    STATEMENT_GENERATED = "STATEMENT_GENERATED"
    MONTHLY_STATEMENTS_RUN = "MONTHLY_STATEMENTS_RUN"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_role: Optional[str] = None,
    target_student_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> Optional[AuditLog]:
    """
    Log a money-moving event to the audit log.
    
    Called after the business transaction has committed. A failed audit
    write is logged and rolled back on its own; it never fails the request
    whose ledger write already went through.
    
    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of the teacher/student performing the action
        actor_role: Role of the actor (None for cron-triggered actions)
        target_student_id: Student affected (if applicable)
        metadata: Additional context as JSON
        
    Returns:
        Created AuditLog instance, or None if the write failed
    """
    try:
        audit_log = AuditLog(
            actor_id=actor_id,
            actor_role=actor_role,
            action=action,
            target_student_id=target_student_id,
            meta_data=jsonable_encoder(metadata) if metadata is not None else None
        )
        db.add(audit_log)
        await db.commit()
        await db.refresh(audit_log)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Audit write failed for %s (actor=%s, student=%s)", action, actor_id, target_student_id)
        return None
    
    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    target_student_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.
    
    Args:
        db: Database session
        target_student_id: Filter by affected student
        action: Filter by action type
        limit: Maximum number of records to return
        
    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))
    
    if target_student_id:
        query = query.where(AuditLog.target_student_id == target_student_id)
    
    if action:
        query = query.where(AuditLog.action == action)
    
    query = query.limit(limit)
    
    result = await db.execute(query)
    return result.scalars().all()
