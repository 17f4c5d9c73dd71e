"""
Inventory ledger services
"""

from .recorder import ProductHistoryRecorder, default_reference
from .aggregator import ProductHistoryService, format_history_entry

__all__ = [
    "ProductHistoryRecorder",
    "ProductHistoryService",
    "default_reference",
    "format_history_entry",
]
