"""Client balance reconciliation schemas"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal
from enum import Enum


class ReconciliationResult(BaseModel):
    """Outcome of replaying one client's transactions; never persisted"""
    client_id: int
    client_name: str = "Unknown"
    calculated_balance: Decimal = Decimal("0")
    database_balance: Decimal = Decimal("0")
    difference: Decimal = Decimal("0")
    is_reconciled: bool = False
    was_updated: bool = False
    transaction_count: int = 0
    last_transaction_date: Optional[datetime] = None
    errors: List[str] = Field(default_factory=list)


class ReconciliationSummary(BaseModel):
    total_clients: int = 0
    reconciled_clients: int = 0
    updated_clients: int = 0
    error_clients: int = 0
    total_difference: Decimal = Decimal("0")


class ReconciliationBatch(BaseModel):
    results: List[ReconciliationResult] = Field(default_factory=list)
    summary: ReconciliationSummary = Field(default_factory=ReconciliationSummary)


class CurrencyTotals(BaseModel):
    invoices: Decimal = Decimal("0")
    returns: Decimal = Decimal("0")
    receipts: Decimal = Decimal("0")


class BalanceBreakdown(BaseModel):
    total_invoices: Decimal = Decimal("0")
    total_returns: Decimal = Decimal("0")
    total_receipts: Decimal = Decimal("0")
    net_invoice_amount: Decimal = Decimal("0")
    final_balance: Decimal = Decimal("0")
    invoice_count: int = 0
    return_count: int = 0
    receipt_count: int = 0
    currency_breakdown: Dict[str, CurrencyTotals] = Field(default_factory=dict)


class BalanceState(str, Enum):
    OUTSTANDING = "outstanding"
    CREDIT = "credit"
    SETTLED = "settled"


class BalanceStatus(BaseModel):
    text: str
    color: str
    status: BalanceState
