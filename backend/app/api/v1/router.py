"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import (
    teacher_banking, student_banking, student_storefront, cron, blobs
)

router = APIRouter()

# Teacher endpoints
router.include_router(teacher_banking.router)

# Student endpoints
router.include_router(student_banking.router)
router.include_router(student_storefront.router)

# Periodic triggers
router.include_router(cron.router)

# Generated files
router.include_router(blobs.router)
