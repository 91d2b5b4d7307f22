"""
Statement Schemas.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import Field

from backend.app.schemas.base import ApiModel


class StatementRequest(ApiModel):
    """Schema for an on-demand statement generation."""
    account_id: int
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    overwrite: bool = False


class StatementResponse(ApiModel):
    """Schema for displaying a cached statement."""
    id: int
    account_id: int
    student_id: int
    month: int
    year: int
    month_label: str
    url: str
    generated_at: datetime


class StatementResult(ApiModel):
    """Outcome of generate-or-fetch."""
    status: str  # "cached", "generated" or "no_transactions"
    message: str
    statement: Optional[StatementResponse] = None


class MonthlyStatementSummary(ApiModel):
    """Result of one run of the monthly statement sweep."""
    run_date: date
    ran: bool = True
    total: int = 0
    success: int = 0
    failed: int = 0
    no_transactions: int = 0
    details: List[dict] = Field(default_factory=list)
