"""
Invoice and Receipt Services
Create and delete invoices and receipts, moving stock and party balances
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple, Union

from sqlalchemy import update
from sqlalchemy.orm import Session

from backoffice.core.cache import TaggedCache, aggregation_cache
from backoffice.core.config import settings
from backoffice.core.exceptions import NotFoundError, ValidationError
from backoffice.core.logging import get_logger
from backoffice.models import InvoiceType, PartyType, ProductVariant, SourceType, get_party_models
from backoffice.schemas.invoice import InvoiceCreate, InvoiceLine, ReceiptCreate
from backoffice.services.ledger.recorder import ProductHistoryRecorder

logger = get_logger("ledger")

CENT = Decimal("0.01")

# (party, invoice type) -> sign applied to line quantities
STOCK_DIRECTION = {
    (PartyType.CLIENT, InvoiceType.REGULAR): -1,
    (PartyType.CLIENT, InvoiceType.RETURN): 1,
    (PartyType.SUPPLIER, InvoiceType.REGULAR): 1,
    (PartyType.SUPPLIER, InvoiceType.RETURN): -1,
}


def calculate_totals(
    lines: List[InvoiceLine],
    discount: Decimal = Decimal("0"),
    include_vat: bool = False,
    vat_rate: Optional[Decimal] = None
) -> Tuple[Decimal, Decimal, Decimal]:
    """Return (subtotal, vat_amount, total), all positive and rounded to cents"""
    vat_rate = vat_rate if vat_rate is not None else settings.DEFAULT_VAT_RATE
    subtotal = sum((Decimal(str(line.unit_price)) * line.quantity for line in lines), Decimal("0"))
    taxable = max(subtotal - Decimal(str(discount)), Decimal("0"))
    vat = taxable * vat_rate / Decimal("100") if include_vat else Decimal("0")
    return (
        subtotal.quantize(CENT, rounding=ROUND_HALF_UP),
        vat.quantize(CENT, rounding=ROUND_HALF_UP),
        (taxable + vat).quantize(CENT, rounding=ROUND_HALF_UP),
    )


class _PartyLedgerService:
    """Shared plumbing for services that move a party balance"""

    def __init__(
        self,
        db: Session,
        party: Union[PartyType, str] = PartyType.CLIENT,
        cache: TaggedCache = aggregation_cache
    ):
        self.db = db
        self.party = PartyType(party)
        self.models = get_party_models(self.party)
        self.cache = cache

    def _get_party(self, party_id: int):
        party = self.db.query(self.models.party).filter(self.models.party.id == party_id).first()
        if not party:
            raise NotFoundError(f"{self.party.value.capitalize()} {party_id} not found")
        return party

    def _get_invoice(self, invoice_id: int):
        invoice = self.db.query(self.models.invoice).filter(self.models.invoice.id == invoice_id).first()
        if not invoice:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    def _apply_balance_delta(self, party_id: int, delta: Decimal) -> None:
        """Increment the stored balance in the database, not from a value read earlier"""
        party_model = self.models.party
        self.db.execute(
            update(party_model)
            .where(party_model.id == party_id)
            .values(balance=party_model.balance + delta)
            .execution_options(synchronize_session="fetch")
        )

    def _invalidate_party(self, party_id: int) -> None:
        self.cache.invalidate(self.party.value, party_id)


class InvoiceService(_PartyLedgerService):
    """
    Invoice creation and deletion

    Creating an invoice stores the line items, moves stock for every line
    through the ledger and adds the total to the party balance, all in one
    transaction. Return invoices store a negative total.
    """

    def __init__(self, db: Session, party: Union[PartyType, str] = PartyType.CLIENT,
                 cache: TaggedCache = aggregation_cache):
        super().__init__(db, party, cache)
        self.recorder = ProductHistoryRecorder(db, cache)

    def stock_direction(self, invoice_type: Union[InvoiceType, str]) -> int:
        return STOCK_DIRECTION[(self.party, InvoiceType(invoice_type))]

    def source_type(self, invoice_type: Union[InvoiceType, str]) -> SourceType:
        if InvoiceType(invoice_type) == InvoiceType.RETURN:
            return SourceType.RETURN
        return self.models.invoice_source

    def _validate_lines(self, lines: List[InvoiceLine]) -> None:
        variant_ids = {line.product_variant_id for line in lines}
        variants = {
            v.id: v for v in
            self.db.query(ProductVariant).filter(ProductVariant.id.in_(variant_ids)).all()
        }
        errors = []
        for line in lines:
            variant = variants.get(line.product_variant_id)
            if variant is None:
                errors.append(f"Product variant {line.product_variant_id} not found")
            elif variant.product_id != line.product_id:
                errors.append(
                    f"Product variant {line.product_variant_id} does not belong to product {line.product_id}"
                )
        if errors:
            raise ValidationError("Invalid invoice lines", errors)

    def create_invoice(self, invoice_in: InvoiceCreate):
        party = self._get_party(invoice_in.party_id)
        self._validate_lines(invoice_in.products)

        subtotal, vat_amount, total = calculate_totals(
            invoice_in.products, invoice_in.discount, invoice_in.include_vat
        )
        is_return = invoice_in.type == InvoiceType.RETURN
        if is_return:
            total, vat_amount = -total, -vat_amount

        try:
            invoice = self.models.invoice(
                created_at=invoice_in.created_at or datetime.now(),
                total_price=total,
                vat_amount=vat_amount,
                remaining_amount=total,
                type=invoice_in.type.value,
                currency=invoice_in.currency.value,
                products=[line.model_dump(mode="json") for line in invoice_in.products],
                order_number=invoice_in.order_number,
                note=invoice_in.note,
            )
            setattr(invoice, self.models.party_fk, party.id)
            self.db.add(invoice)
            self.db.flush()

            direction = self.stock_direction(invoice_in.type)
            source_type = self.source_type(invoice_in.type)
            for line in invoice_in.products:
                self.recorder.apply_change(
                    line.product_id,
                    line.product_variant_id,
                    direction * line.quantity,
                    source_type,
                    source_id=invoice.id,
                    commit=False,
                )

            self._apply_balance_delta(party.id, total)
            self.db.commit()
            self.db.refresh(invoice)
        except Exception:
            self.db.rollback()
            raise

        self._invalidate_party(party.id)
        logger.info(
            f"Created {self.party.value} {invoice.type} invoice {invoice.id} for {self.party.value} "
            f"{party.id}: total {total}, {len(invoice_in.products)} lines"
        )
        return invoice

    def delete_invoice(self, invoice_id: int) -> None:
        """Delete an invoice, reversing its stock movements and balance effect"""
        invoice = self._get_invoice(invoice_id)
        party_id = invoice.party_id
        direction = -self.stock_direction(invoice.type)
        source_type = self.source_type(invoice.type)

        try:
            for item in invoice.line_items:
                self.recorder.apply_change(
                    int(item["product_id"]),
                    int(item["product_variant_id"]),
                    direction * abs(int(item["quantity"])),
                    source_type,
                    source_id=invoice.id,
                    notes=f"Invoice #{invoice.id} deleted",
                    commit=False,
                )

            self._apply_balance_delta(party_id, -Decimal(str(invoice.total_price or 0)))

            shipping_model = self.models.shipping_invoice
            self.db.query(shipping_model).filter(
                shipping_model.invoice_id == invoice.id
            ).delete(synchronize_session=False)
            receipt_model = self.models.receipt
            self.db.query(receipt_model).filter(
                receipt_model.invoice_id == invoice.id
            ).update({receipt_model.invoice_id: None}, synchronize_session=False)

            self.db.delete(invoice)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self._invalidate_party(party_id)
        self.cache.invalidate("invoice", invoice_id)
        logger.info(f"Deleted {self.party.value} invoice {invoice_id}")


class ReceiptService(_PartyLedgerService):
    """Payments received from clients or made to suppliers"""

    def create_receipt(self, receipt_in: ReceiptCreate):
        party = self._get_party(receipt_in.party_id)
        amount = abs(Decimal(str(receipt_in.amount)))

        invoice = None
        if receipt_in.invoice_id is not None:
            invoice = self._get_invoice(receipt_in.invoice_id)
            if invoice.party_id != party.id:
                raise ValidationError(
                    f"Invoice {invoice.id} does not belong to {self.party.value} {party.id}"
                )

        try:
            receipt = self.models.receipt(
                invoice_id=invoice.id if invoice else None,
                amount=amount,
                paid_at=receipt_in.paid_at or datetime.now(),
                note=receipt_in.note,
            )
            setattr(receipt, self.models.party_fk, party.id)
            self.db.add(receipt)

            if invoice is not None:
                invoice.remaining_amount = Decimal(str(invoice.remaining_amount or 0)) - amount
            self._apply_balance_delta(party.id, -amount)
            self.db.commit()
            self.db.refresh(receipt)
        except Exception:
            self.db.rollback()
            raise

        self._invalidate_party(party.id)
        logger.info(f"Recorded receipt {receipt.id} of {amount} for {self.party.value} {party.id}")
        return receipt

    def delete_receipt(self, receipt_id: int) -> None:
        receipt_model = self.models.receipt
        receipt = self.db.query(receipt_model).filter(receipt_model.id == receipt_id).first()
        if not receipt:
            raise NotFoundError(f"Receipt {receipt_id} not found")

        party_id = receipt.party_id
        amount = abs(Decimal(str(receipt.amount or 0)))
        try:
            if receipt.invoice_id is not None:
                invoice = self.db.query(self.models.invoice).filter(
                    self.models.invoice.id == receipt.invoice_id
                ).first()
                if invoice is not None:
                    invoice.remaining_amount = Decimal(str(invoice.remaining_amount or 0)) + amount
            self._apply_balance_delta(party_id, amount)
            self.db.delete(receipt)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self._invalidate_party(party_id)
        logger.info(f"Deleted receipt {receipt_id} for {self.party.value} {party_id}")
