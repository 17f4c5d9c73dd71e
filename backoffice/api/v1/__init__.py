"""Version 1 API endpoints"""

from . import analytics, balances, clients, invoices, products, shipping

__all__ = ["analytics", "balances", "clients", "invoices", "products", "shipping"]
