"""
Security guards for role-based access control.

Approving, rejecting and reimbursing finance records, manual adjustments,
holder management and audit reads are restricted to approver roles.
"""

from typing import List
from fastapi import Depends, HTTPException, status
from institute_finance.app.models.enums import HolderRole, APPROVER_ROLES
from institute_finance.app.core.dependencies import get_current_user


def require_role(allowed_roles: List[HolderRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.put("/expenses/{expense_id}/approve")
        async def approve(current_user: dict = Depends(require_role(APPROVER_ROLES))):
            ...

    Args:
        allowed_roles: List of HolderRole enums that are allowed to access the endpoint

    Returns:
        FastAPI dependency function that validates user role

    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role_str = current_user.get("role")

        if not user_role_str:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Role information missing from token"
            )

        try:
            user_role = HolderRole(user_role_str)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid role in token"
            )

        if user_role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return current_user

    return role_checker


# Shared dependency for approver-only endpoints
require_approver = require_role(APPROVER_ROLES)
