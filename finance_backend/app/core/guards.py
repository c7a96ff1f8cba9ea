"""
Security guards for role-based access control on finance endpoints.
"""

from typing import List
from fastapi import Depends, HTTPException, status
from finance_backend.app.models.finance_enums import AdminRole
from finance_backend.app.core.dependencies import get_current_admin


def require_role(allowed_roles: List[AdminRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/settlements/{settlement_id}/process")
        async def process(admin: dict = Depends(require_role([AdminRole.SUPER_ADMIN, AdminRole.FINANCE]))):
            ...

    Raises:
        HTTPException 403 if the admin's role is not in allowed_roles
    """
    async def role_checker(current_admin: dict = Depends(get_current_admin)) -> dict:
        try:
            role = AdminRole(current_admin.get("role"))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid role in token"
            )

        if role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return current_admin

    return role_checker


# Reading reports is open to every back-office role; moving money is not.
require_finance_reader = require_role([AdminRole.SUPER_ADMIN, AdminRole.FINANCE, AdminRole.OPERATOR])
require_finance_operator = require_role([AdminRole.SUPER_ADMIN, AdminRole.FINANCE])
