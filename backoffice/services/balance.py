"""
Client Balance Reconciliation Service
Replays invoices and receipts to verify and repair stored client balances
"""
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.core.cache import TaggedCache, aggregation_cache
from backoffice.core.config import settings
from backoffice.core.exceptions import NotFoundError
from backoffice.core.logging import get_logger
from backoffice.models import Client, ClientInvoice, ClientReceipt, Currency, InvoiceType
from backoffice.schemas.balance import (
    BalanceBreakdown, BalanceState, BalanceStatus, CurrencyTotals,
    ReconciliationBatch, ReconciliationResult, ReconciliationSummary
)

logger = get_logger("balance")


def _money(value) -> Decimal:
    return Decimal(str(value or 0))


def calculate_balance(
    invoices: Iterable[ClientInvoice], receipts: Iterable[ClientReceipt]
) -> Tuple[Decimal, int, Optional[datetime]]:
    """
    Replay a client's transactions

    Regular invoices add their total, return invoices subtract theirs and
    receipts subtract the amount paid, all by absolute value. Returns the
    balance, the number of transactions and the latest transaction date.
    """
    balance = Decimal("0")
    count = 0
    last_date = None

    for invoice in invoices:
        amount = abs(_money(invoice.total_price))
        if invoice.type == InvoiceType.RETURN.value:
            balance -= amount
        else:
            balance += amount
        count += 1
        if invoice.created_at and (last_date is None or invoice.created_at > last_date):
            last_date = invoice.created_at

    for receipt in receipts:
        balance -= abs(_money(receipt.amount))
        count += 1
        if receipt.paid_at and (last_date is None or receipt.paid_at > last_date):
            last_date = receipt.paid_at

    return balance, count, last_date


def format_currency(amount, currency: str = "usd") -> str:
    """Format an amount for display; the sign is conveyed by get_balance_status"""
    symbol = "€" if str(currency).lower() == Currency.EURO.value else "$"
    return f"{symbol}{abs(_money(amount)):,.2f}"


def get_balance_status(balance, tolerance: Optional[Decimal] = None) -> BalanceStatus:
    tolerance = tolerance if tolerance is not None else settings.BALANCE_TOLERANCE
    balance = _money(balance)
    if balance > tolerance:
        return BalanceStatus(text="Outstanding", color="red", status=BalanceState.OUTSTANDING)
    if balance < -tolerance:
        return BalanceStatus(text="Credit", color="green", status=BalanceState.CREDIT)
    return BalanceStatus(text="Settled", color="gray", status=BalanceState.SETTLED)


class BalanceReconciliationService:
    """
    Client balance reconciliation

    The stored balance is a cache of the transaction history. Reconciling a
    client locks the client row, replays every invoice and receipt and, when
    the stored value is off by more than the tolerance, overwrites it in the
    same transaction.
    """

    def __init__(
        self,
        db: Session,
        cache: TaggedCache = aggregation_cache,
        tolerance: Optional[Decimal] = None
    ):
        self.db = db
        self.cache = cache
        self.tolerance = tolerance if tolerance is not None else settings.BALANCE_TOLERANCE

    def reconcile_client_balance(self, client_id: int, apply: bool = True) -> ReconciliationResult:
        """
        Reconcile one client

        With apply=False the comparison runs without writing, which is how
        get_clients_with_balance_issues() reports drift.
        """
        try:
            client = self.db.query(Client).filter(Client.id == client_id).with_for_update().first()
            if not client:
                raise NotFoundError(f"Client {client_id} not found")

            invoices = self.db.query(ClientInvoice).filter(
                ClientInvoice.client_id == client_id
            ).order_by(ClientInvoice.created_at).all()
            receipts = self.db.query(ClientReceipt).filter(
                ClientReceipt.client_id == client_id
            ).order_by(ClientReceipt.paid_at).all()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to load transactions for client {client_id}: {e}")
            return ReconciliationResult(client_id=client_id, errors=[f"Failed to fetch client data: {e}"])

        calculated, transaction_count, last_date = calculate_balance(invoices, receipts)
        stored = _money(client.balance)
        difference = abs(calculated - stored)
        within_tolerance = difference <= self.tolerance

        result = ReconciliationResult(
            client_id=client.id,
            client_name=client.name or "Unknown",
            calculated_balance=calculated,
            database_balance=stored,
            difference=difference,
            is_reconciled=within_tolerance,
            transaction_count=transaction_count,
            last_transaction_date=last_date,
        )

        if within_tolerance or not apply:
            # Release the row lock
            self.db.rollback()
            return result

        try:
            client.balance = calculated
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update balance for client {client_id}: {e}")
            result.errors.append(f"Failed to update balance: {e}")
            return result

        self.cache.invalidate("client", client_id)
        logger.info(
            f"Client {client_id} balance corrected from {stored} to {calculated} "
            f"(difference {difference})"
        )
        result.was_updated = True
        result.is_reconciled = True
        return result

    def reconcile_all_client_balances(self) -> ReconciliationBatch:
        """Reconcile every client in name order; one failure does not stop the batch"""
        clients = self.db.query(Client.id, Client.name).order_by(Client.name, Client.id).all()
        self.db.rollback()

        results: List[ReconciliationResult] = []
        for client_id, name in clients:
            try:
                result = self.reconcile_client_balance(client_id)
            except Exception as e:
                self.db.rollback()
                logger.error(f"Unexpected error reconciling client {client_id}: {e}")
                result = ReconciliationResult(client_id=client_id, client_name=name, errors=[str(e)])

            if result.errors:
                logger.error(f"Client {client_id} ({name}) failed to reconcile: {'; '.join(result.errors)}")
            elif result.was_updated:
                logger.info(f"Client {client_id} ({name}) updated, difference {result.difference}")
            else:
                logger.debug(f"Client {client_id} ({name}) already correct")
            results.append(result)

        summary = ReconciliationSummary(
            total_clients=len(results),
            reconciled_clients=sum(1 for r in results if r.is_reconciled),
            updated_clients=sum(1 for r in results if r.was_updated),
            error_clients=sum(1 for r in results if r.errors),
            total_difference=sum((r.difference for r in results), Decimal("0")),
        )
        logger.info(
            f"Reconciled {summary.total_clients} clients: {summary.updated_clients} updated, "
            f"{summary.error_clients} errors, total difference {summary.total_difference}"
        )
        return ReconciliationBatch(results=results, summary=summary)

    def get_clients_with_balance_issues(self) -> List[ReconciliationResult]:
        """Clients whose stored balance is off, without correcting anything"""
        client_ids = [row.id for row in self.db.query(Client.id).order_by(Client.name, Client.id).all()]
        issues = []
        for client_id in client_ids:
            result = self.reconcile_client_balance(client_id, apply=False)
            if not result.is_reconciled and result.difference > self.tolerance:
                issues.append(result)
        return issues

    def get_client_balance_breakdown(self, client_id: int) -> BalanceBreakdown:
        key = ("balance_breakdown", client_id)
        return self.cache.get_or_set(
            key, lambda: self._balance_breakdown(client_id), tags=[("client", client_id)]
        )

    def _balance_breakdown(self, client_id: int) -> BalanceBreakdown:
        client = self.db.query(Client).filter(Client.id == client_id).first()
        if not client:
            raise NotFoundError(f"Client {client_id} not found")

        invoices = self.db.query(ClientInvoice).filter(ClientInvoice.client_id == client_id).all()
        receipts = self.db.query(ClientReceipt).filter(ClientReceipt.client_id == client_id).all()
        invoice_currency = {invoice.id: invoice.currency for invoice in invoices}

        breakdown = BalanceBreakdown()
        for invoice in invoices:
            amount = abs(_money(invoice.total_price))
            totals = breakdown.currency_breakdown.setdefault(invoice.currency, CurrencyTotals())
            if invoice.type == InvoiceType.RETURN.value:
                breakdown.total_returns += amount
                breakdown.return_count += 1
                totals.returns += amount
            else:
                breakdown.total_invoices += amount
                breakdown.invoice_count += 1
                totals.invoices += amount

        for receipt in receipts:
            amount = abs(_money(receipt.amount))
            currency = invoice_currency.get(receipt.invoice_id, Currency.USD.value)
            totals = breakdown.currency_breakdown.setdefault(currency, CurrencyTotals())
            breakdown.total_receipts += amount
            breakdown.receipt_count += 1
            totals.receipts += amount

        breakdown.net_invoice_amount = breakdown.total_invoices - breakdown.total_returns
        breakdown.final_balance = breakdown.net_invoice_amount - breakdown.total_receipts
        return breakdown
