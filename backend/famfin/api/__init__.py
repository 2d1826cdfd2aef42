"""
API routers for the family finance assistant.
"""

from fastapi import APIRouter

from famfin.api.accounts import router as accounts_router
from famfin.api.budgets import router as budgets_router
from famfin.api.chat import router as chat_router
from famfin.api.documents import router as documents_router
from famfin.api.smsf import router as smsf_router
from famfin.api.superannuation import router as super_router
from famfin.api.tax import router as tax_router
from famfin.api.transactions import router as transactions_router
from famfin.api.trust import router as trust_router
from famfin.api.xero import callback_router
from famfin.api.xero import router as xero_router

# Main API router
api_router = APIRouter(prefix="/api/v1")

# Include sub-routers
api_router.include_router(accounts_router)
api_router.include_router(transactions_router)
api_router.include_router(tax_router)
api_router.include_router(super_router)
api_router.include_router(trust_router)
api_router.include_router(smsf_router)
api_router.include_router(budgets_router)
api_router.include_router(documents_router)
api_router.include_router(chat_router)
api_router.include_router(xero_router)

__all__ = ["api_router", "callback_router"]
