"""FastAPI dependencies for authentication and authorization.

This module provides dependency injection functions for:
- Extracting and validating JWT tokens from requests
- Loading the current authenticated user
- Enforcing role-based access control (RBAC)

Usage:
    @router.get("/protected")
    def protected_endpoint(user: User = Depends(get_current_user)):
        return {"message": f"Hello {user.full_name}"}

    @router.post("/templates")
    def create(user: User = Depends(require_template_editor)):
        ...
"""

from typing import Callable, Iterable

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db
from models.user import User
from .jwt import decode_token
from .roles import role_in


# HTTP Bearer token security scheme
security = HTTPBearer()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Extract and validate JWT token, returning the authenticated user.

    Raises:
        HTTPException 401: If token is missing, invalid, expired, or user not found
        HTTPException 403: If the user is deactivated
    """
    try:
        payload = decode_token(credentials.credentials)
        user_id = int(payload.get("sub"))
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError as e:
        raise _unauthorized(f"Invalid token: {str(e)}")
    except (TypeError, ValueError):
        raise _unauthorized("Invalid token: missing or malformed user ID claim")

    user = db.get(User, user_id)
    if not user:
        raise _unauthorized("User not found")

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )

    return user


def require_roles(allowed_roles: Iterable[str]) -> Callable:
    """Create a dependency that admits only users holding one of ``allowed_roles``.

    Raises:
        HTTPException 403: If user's role is not allowed
    """
    allowed = tuple(allowed_roles)

    def role_dependency(current_user: User = Depends(get_current_user)) -> User:
        if not role_in(current_user.role, allowed):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required role: {', '.join(allowed)}",
            )
        return current_user

    return role_dependency


def require_template_editor(current_user: User = Depends(get_current_user)) -> User:
    """Admit users allowed to create and toggle workflow templates."""
    return require_roles(get_settings().WORKFLOW_TEMPLATE_EDITOR_ROLES)(current_user)

