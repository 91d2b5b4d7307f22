"""
Bank account provisioning for students.
"""

import logging
import secrets
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import atomic
from backend.app.domain.banking.ledger import LedgerService
from backend.app.models.bank_account import BankAccount
from backend.app.models.banking_enums import AccountType
from backend.app.services.directory import get_student

logger = logging.getLogger(__name__)


def generate_account_number() -> str:
    """Random 10-digit display number."""
    return str(secrets.randbelow(9_000_000_000) + 1_000_000_000)


async def setup_accounts_for_student(db: AsyncSession, student_id: int) -> List[BankAccount]:
    """
    Ensure a student has a CHECKING and a SAVINGS account.
    
    Idempotent: existing accounts are returned untouched and only missing
    types are created, all with a zero balance.
    
    Args:
        db: Database session
        student_id: Student to provision
        
    Returns:
        The student's accounts, checking first
    """
    async with atomic(db):
        await get_student(db, student_id)
        existing = await LedgerService.get_student_accounts(db, student_id)
        present = {account.account_type for account in existing}
        
        for account_type in AccountType:
            if account_type in present:
                continue
            db.add(BankAccount(
                student_id=student_id,
                account_type=account_type,
                account_number=generate_account_number(),
                balance=0
            ))
            logger.info("Provisioned %s account for student %s", account_type.value, student_id)
        
        await db.flush()
    
    return await LedgerService.get_student_accounts(db, student_id)
