"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from finance_backend.app.api.v1.endpoints import (
    finance_reports, finance_settlements, finance_withdrawals, finance_exports
)

router = APIRouter()

# Reports and dashboard
router.include_router(finance_reports.router)

# Settlements
router.include_router(finance_settlements.router)

# Withdrawal review
router.include_router(finance_withdrawals.router)

# CSV exports
router.include_router(finance_exports.router)
