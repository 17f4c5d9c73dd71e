"""
Main API Router - Consolidates all module routes
"""

from fastapi import APIRouter

from backoffice.api.v1 import analytics, balances, clients, invoices, products, shipping

api_router = APIRouter()

# Client balances
api_router.include_router(balances.router, prefix="/balances", tags=["balances"])

# Inventory ledger and product history
api_router.include_router(products.router, prefix="/products", tags=["products"])
api_router.include_router(clients.router, prefix="/clients", tags=["clients"])

# Invoices and receipts
api_router.include_router(invoices.router, prefix="/invoices", tags=["invoices"])
api_router.include_router(invoices.receipts_router, prefix="/receipts", tags=["receipts"])

# Shipping invoices
api_router.include_router(shipping.router, prefix="/shipping", tags=["shipping"])

# Dashboard analytics
api_router.include_router(analytics.router, prefix="/analytics", tags=["analytics"])
