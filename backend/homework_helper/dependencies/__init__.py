"""
FastAPI dependencies
"""

from homework_helper.dependencies.auth import (
    AuthenticatedUser,
    get_admin_user,
    get_current_user_optional,
    user_id_of,
    verify_firebase_token,
)

__all__ = [
    "AuthenticatedUser",
    "get_admin_user",
    "get_current_user_optional",
    "user_id_of",
    "verify_firebase_token",
]
