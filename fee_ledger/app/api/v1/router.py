"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from fee_ledger.app.api.v1.endpoints import fees, payments, invoices

router = APIRouter()

# Static /fees/... paths first so they are not captured by /fees/{fee_id}
router.include_router(payments.router)
router.include_router(invoices.router)
router.include_router(fees.router)
