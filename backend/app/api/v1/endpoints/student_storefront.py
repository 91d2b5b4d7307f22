"""
Student Storefront API Endpoints.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.guards import require_student
from backend.app.db.session import get_db
from backend.app.domain.storefront.settlement import SettlementService
from backend.app.schemas.banking import AccountResponse, TransactionResponse
from backend.app.schemas.storefront import (
    PurchaseRecordResponse, PurchaseRequest, PurchaseResponse, StoreItemResponse
)
from backend.app.services.audit import AuditAction, log_event

router = APIRouter(prefix="/student/storefront", tags=["Student - Storefront"])


@router.get("", response_model=List[StoreItemResponse])
async def list_store_items(
    current_user: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    """Items offered to the caller's classes."""
    return await SettlementService.list_available_items(db, current_user["user_id"])


@router.get("/purchases", response_model=List[PurchaseRecordResponse])
async def list_purchases(
    current_user: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    return await SettlementService.list_purchases(db, current_user["user_id"])


@router.post("/purchase", response_model=PurchaseResponse)
async def purchase_item(
    request: PurchaseRequest,
    current_user: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    """
    Buy a store item with one of the caller's accounts.

    Inventory, balance, transaction and purchase record change together.
    """
    student_id = current_user["user_id"]
    result = await SettlementService.purchase(
        db, student_id, request.item_id, request.quantity, request.account_id
    )

    response = PurchaseResponse(
        purchase=PurchaseRecordResponse.model_validate(result.purchase),
        item=StoreItemResponse.model_validate(result.item),
        transaction=TransactionResponse.model_validate(result.transaction) if result.transaction else None,
        account=AccountResponse.model_validate(result.account),
        total_cost=float(result.total_cost),
        new_balance=float(result.new_balance)
    )

    await log_event(
        db=db,
        action=AuditAction.STORE_PURCHASE,
        actor_id=student_id,
        actor_role=current_user["role"],
        target_student_id=student_id,
        metadata={
            "item_id": request.item_id,
            "quantity": request.quantity,
            "account_id": request.account_id,
            "total_cost": result.total_cost,
        }
    )

    return response
