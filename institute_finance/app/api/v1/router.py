"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from institute_finance.app.api.v1.endpoints import (
    holders, cash_transfers, income, expenses, audit_logs
)

router = APIRouter()

# Float holders, balances and ledger history
router.include_router(holders.router)

# Peer-to-peer cash movements
router.include_router(cash_transfers.router)

# Approval workflows
router.include_router(income.router)
router.include_router(expenses.router)

# Forensics
router.include_router(audit_logs.router)
