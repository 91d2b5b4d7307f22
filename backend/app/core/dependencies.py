"""
Authentication dependencies for FastAPI.

This module resolves the calling principal from a JWT bearer token. The
banking core never reads ambient session state; routes pass the resolved
principal id into every service call.
"""

import hmac
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.core.config import settings
from backend.app.core.jwt import decode_access_token
from backend.app.db.session import get_db
from backend.app.models.enums import UserRole
from backend.app.models.student import Student
from backend.app.models.teacher import Teacher

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    FastAPI dependency for JWT authentication.
    
    Security checks:
    1. Validates JWT token signature and expiry
    2. Validates the role claim
    3. Verifies the principal still exists and is active (real-time check)
    
    Args:
        credentials: HTTP Bearer token from request header
        db: Database session for real-time principal check
        
    Returns:
        Decoded token payload containing sub, user_id and role
        
    Raises:
        HTTPException: 401 if authentication fails, 403 if the principal is inactive
    """
    token = credentials.credentials
    
    # 1. Decode and validate JWT
    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    # 2. Role claim decides which directory the principal lives in
    try:
        role = UserRole(payload.get("role"))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid role in token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    # 3. Real-time database check: Verify principal is still active
    model = Teacher if role == UserRole.TEACHER else Student
    principal = await db.get(model, user_id)
    
    if not principal:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"{role.value.title()} not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    if not principal.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )
    
    return payload


async def require_cron_secret(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> None:
    """
    Authenticate the periodic trigger (cron job) by its shared bearer secret.
    
    Raises:
        HTTPException 401 if the secret does not match
    """
    if not hmac.compare_digest(credentials.credentials, settings.cron_secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
