"""
Authentication and service dependencies for FastAPI.

This module provides dependencies for protecting admin routes with JWT authentication.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from finance_backend.app.core.jwt import decode_access_token
from finance_backend.app.db.session import get_db
from finance_backend.app.models.admin import Admin
from finance_backend.app.domain.finance.settlement_service import SettlementService, settlement_service
from finance_backend.app.domain.finance.withdrawal_audit_service import WithdrawalAuditService, withdrawal_audit_service
from finance_backend.app.services.dashboard import DashboardService, dashboard_service
from finance_backend.app.services.export import ExportService, export_service
from finance_backend.app.services.statistics import StatisticsService, statistics_service

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_admin(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    FastAPI dependency for admin JWT authentication.

    Checks:
    1. Validates JWT token signature and expiry
    2. Verifies the admin still exists and is active (real-time check)

    Args:
        credentials: HTTP Bearer token from request header
        db: Database session for real-time admin status check

    Returns:
        Decoded token payload containing admin information

    Raises:
        HTTPException: 401 if authentication fails, 403 if the admin is disabled
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    admin_id = payload.get("admin_id")
    if not admin_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(select(Admin).where(Admin.id == admin_id))
    admin = result.scalar_one_or_none()

    if not admin:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not admin.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin account is inactive",
        )

    return payload


# Service providers. Tests override these to inject a fixed clock or numbering.

def get_settlement_service() -> SettlementService:
    return settlement_service


def get_withdrawal_audit_service() -> WithdrawalAuditService:
    return withdrawal_audit_service


def get_statistics_service() -> StatisticsService:
    return statistics_service


def get_dashboard_service() -> DashboardService:
    return dashboard_service


def get_export_service() -> ExportService:
    return export_service
