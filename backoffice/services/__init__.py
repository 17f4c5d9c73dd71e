"""
Back Office Services
Ledger, balance, shipping and invoicing business logic
"""

from .ledger import ProductHistoryRecorder, ProductHistoryService, format_history_entry
from .balance import (
    BalanceReconciliationService,
    calculate_balance,
    format_currency,
    get_balance_status
)
from .shipping import ShippingInvoiceService
from .invoicing import InvoiceService, ReceiptService, calculate_totals
from .analytics import AnalyticsService
from .documents import DocumentAssembler, DocumentGenerator
from .notifications import MailDispatcher, NotificationService, SmtpMailDispatcher

__all__ = [
    "ProductHistoryRecorder",
    "ProductHistoryService",
    "format_history_entry",
    "BalanceReconciliationService",
    "calculate_balance",
    "format_currency",
    "get_balance_status",
    "ShippingInvoiceService",
    "InvoiceService",
    "ReceiptService",
    "calculate_totals",
    "AnalyticsService",
    "DocumentAssembler",
    "DocumentGenerator",
    "MailDispatcher",
    "NotificationService",
    "SmtpMailDispatcher",
]
