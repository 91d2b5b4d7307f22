"""
User roles enumeration.

Defines the principal types for the classroom bank.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.
    
    Roles:
        TEACHER: Manages classes, funds student accounts, runs the storefront
        STUDENT: Owns bank accounts, transfers, buys from the storefront
    """
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"
