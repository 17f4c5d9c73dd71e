"""Back office ledger, reconciliation and shipping service"""

__version__ = "1.0.0"
