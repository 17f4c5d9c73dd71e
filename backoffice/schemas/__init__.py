"""
Pydantic Schemas for the back office API
"""

from .ledger import (
    LedgerEntry, LedgerEntryDetail, InventorySummary, ProductHistorySummary,
    VariantSalesDetail, VariantPurchase, CustomerPurchaseHistory,
    ClientPurchaseHistoryRecord, ProductWithHistory, StockAdjustment,
    StockAdjustmentResult
)
from .balance import (
    ReconciliationResult, ReconciliationSummary, ReconciliationBatch,
    CurrencyTotals, BalanceBreakdown, BalanceState, BalanceStatus
)
from .shipping import (
    ShippingProduct, ShippingData, ShippingInvoiceCreate, ShippingInvoice,
    VariantQuantities, ShippedQuantities, ShippingValidation, ShippingStatusUpdate
)
from .invoice import InvoiceLine, InvoiceCreate, Invoice, ReceiptCreate, Receipt
from .analytics import (
    TimeInterval, ProductSalesData, InventoryValueData, TopSellerData,
    TimeSeriesPoint, LowStockVariant
)
from .documents import (
    PartyDetails, DocumentLine, InvoiceDocument, ReceiptDocument,
    ShippingDocument, ShippingDocumentLine, MailAttachment, MailMessage
)

__all__ = [
    # Ledger
    "LedgerEntry", "LedgerEntryDetail", "InventorySummary", "ProductHistorySummary",
    "VariantSalesDetail", "VariantPurchase", "CustomerPurchaseHistory",
    "ClientPurchaseHistoryRecord", "ProductWithHistory", "StockAdjustment",
    "StockAdjustmentResult",
    # Balance
    "ReconciliationResult", "ReconciliationSummary", "ReconciliationBatch",
    "CurrencyTotals", "BalanceBreakdown", "BalanceState", "BalanceStatus",
    # Shipping
    "ShippingProduct", "ShippingData", "ShippingInvoiceCreate", "ShippingInvoice",
    "VariantQuantities", "ShippedQuantities", "ShippingValidation", "ShippingStatusUpdate",
    # Invoices
    "InvoiceLine", "InvoiceCreate", "Invoice", "ReceiptCreate", "Receipt",
    # Analytics
    "TimeInterval", "ProductSalesData", "InventoryValueData", "TopSellerData",
    "TimeSeriesPoint", "LowStockVariant",
    # Documents
    "PartyDetails", "DocumentLine", "InvoiceDocument", "ReceiptDocument",
    "ShippingDocument", "ShippingDocumentLine", "MailAttachment", "MailMessage",
]
