"""
Tests for Invoice and Receipt Services
Stock direction, balance deltas and reversals
"""

import pytest
from decimal import Decimal
from sqlalchemy.orm import Session

from backoffice.core.exceptions import NotFoundError, ValidationError
from backoffice.models import (
    Client, ClientInvoice, ClientReceipt, ClientShippingInvoice, InvoiceType, ProductHistory,
    ProductVariant, SourceType, Supplier
)
from backoffice.schemas.invoice import InvoiceCreate, InvoiceLine, ReceiptCreate
from backoffice.schemas.shipping import ShippingProduct
from backoffice.services.balance import BalanceReconciliationService
from backoffice.services.invoicing import InvoiceService, ReceiptService, calculate_totals
from backoffice.services.shipping import ShippingInvoiceService


def invoice_in(party, variant, quantity, unit_price="25.00", **kwargs):
    return InvoiceCreate(
        party_id=party.id,
        products=[InvoiceLine(
            product_id=variant.product_id,
            product_variant_id=variant.id,
            quantity=quantity,
            unit_price=Decimal(unit_price),
        )],
        **kwargs
    )


def stock_of(db_session, variant):
    db_session.expire_all()
    return db_session.get(ProductVariant, variant.id).quantity


def balance_of(db_session, model, party):
    db_session.expire_all()
    return db_session.get(model, party.id).balance


class TestCalculateTotals:
    """Invoice total arithmetic"""

    def test_without_vat(self):
        lines = [InvoiceLine(product_id=1, product_variant_id=1, quantity=3, unit_price=Decimal("10.00"))]
        assert calculate_totals(lines, Decimal("5")) == (Decimal("30.00"), Decimal("0.00"), Decimal("25.00"))

    def test_with_vat(self):
        lines = [InvoiceLine(product_id=1, product_variant_id=1, quantity=2, unit_price=Decimal("50.00"))]
        subtotal, vat, total = calculate_totals(lines, include_vat=True, vat_rate=Decimal("11"))

        assert subtotal == Decimal("100.00")
        assert vat == Decimal("11.00")
        assert total == Decimal("111.00")


class TestInvoiceService:
    """Test suite for InvoiceService"""

    def test_client_sale_removes_stock_and_adds_balance(self, db_session: Session, sample_client, variants):
        red, _ = variants
        invoice = InvoiceService(db_session).create_invoice(invoice_in(sample_client, red, 3))

        assert invoice.total_price == Decimal("75.00")
        assert invoice.remaining_amount == Decimal("75.00")
        assert stock_of(db_session, red) == 7
        assert balance_of(db_session, Client, sample_client) == Decimal("75")

        entry = db_session.query(ProductHistory).one()
        assert entry.source_type == SourceType.CLIENT_INVOICE.value
        assert entry.source_id == str(invoice.id)
        assert entry.quantity_change == -3

    def test_client_return_restocks_and_stores_negative_total(self, db_session: Session, sample_client, variants):
        red, _ = variants
        invoice = InvoiceService(db_session).create_invoice(
            invoice_in(sample_client, red, 2, type=InvoiceType.RETURN)
        )

        assert invoice.total_price == Decimal("-50.00")
        assert stock_of(db_session, red) == 12
        assert balance_of(db_session, Client, sample_client) == Decimal("-50")
        assert db_session.query(ProductHistory).one().source_type == SourceType.RETURN.value

    @pytest.mark.parametrize("invoice_type,expected_stock", [
        (InvoiceType.REGULAR, 15),
        (InvoiceType.RETURN, 5),
    ])
    def test_supplier_stock_direction(
        self, db_session: Session, sample_supplier, variants, invoice_type, expected_stock
    ):
        red, _ = variants
        InvoiceService(db_session, "supplier").create_invoice(
            invoice_in(sample_supplier, red, 5, type=invoice_type)
        )
        assert stock_of(db_session, red) == expected_stock

    def test_supplier_purchase_source_type(self, db_session: Session, sample_supplier, variants):
        red, _ = variants
        InvoiceService(db_session, "supplier").create_invoice(invoice_in(sample_supplier, red, 5))

        assert db_session.query(ProductHistory).one().source_type == SourceType.SUPPLIER_INVOICE.value
        assert balance_of(db_session, Supplier, sample_supplier) == Decimal("125")

    def test_balance_increments_accumulate(self, db_session: Session, sample_client, variants):
        """Two invoices add up in the database; the stored balance then reconciles"""
        red, blue = variants
        service = InvoiceService(db_session)
        service.create_invoice(invoice_in(sample_client, red, 1))
        service.create_invoice(invoice_in(sample_client, blue, 2, unit_price="30.00"))

        assert balance_of(db_session, Client, sample_client) == Decimal("85")
        result = BalanceReconciliationService(db_session).reconcile_client_balance(sample_client.id)
        assert result.is_reconciled is True
        assert result.was_updated is False

    def test_rejects_unknown_variant(self, db_session: Session, sample_client, sample_product):
        bad = InvoiceCreate(
            party_id=sample_client.id,
            products=[InvoiceLine(product_id=sample_product.id, product_variant_id=9999, quantity=1)],
        )
        with pytest.raises(ValidationError) as exc_info:
            InvoiceService(db_session).create_invoice(bad)

        assert exc_info.value.errors == ["Product variant 9999 not found"]
        assert db_session.query(ClientInvoice).count() == 0

    def test_rejects_unknown_client(self, db_session: Session, variants):
        red, _ = variants

        class Ghost:
            id = 4242

        with pytest.raises(NotFoundError):
            InvoiceService(db_session).create_invoice(invoice_in(Ghost, red, 1))

    def test_delete_reverses_stock_balance_and_shipments(self, db_session: Session, sample_client, variants):
        red, _ = variants
        service = InvoiceService(db_session)
        invoice = service.create_invoice(invoice_in(sample_client, red, 4))
        ShippingInvoiceService(db_session).create_shipping_invoice(invoice.id, [
            ShippingProduct(product_id=red.product_id, product_variant_id=red.id, quantity=2)
        ])
        receipt = ReceiptService(db_session).create_receipt(
            ReceiptCreate(party_id=sample_client.id, invoice_id=invoice.id, amount=Decimal("20"))
        )

        service.delete_invoice(invoice.id)

        assert stock_of(db_session, red) == 10
        assert balance_of(db_session, Client, sample_client) == Decimal("-20")
        assert db_session.query(ClientInvoice).count() == 0
        assert db_session.query(ClientShippingInvoice).count() == 0
        assert db_session.get(ClientReceipt, receipt.id).invoice_id is None
        assert [e.quantity_change for e in db_session.query(ProductHistory).order_by(ProductHistory.id)] == [-4, 4]


class TestReceiptService:
    """Test suite for ReceiptService"""

    def test_receipt_reduces_balance_and_remaining(self, db_session: Session, sample_client, variants):
        red, _ = variants
        invoice = InvoiceService(db_session).create_invoice(invoice_in(sample_client, red, 4))

        ReceiptService(db_session).create_receipt(
            ReceiptCreate(party_id=sample_client.id, invoice_id=invoice.id, amount=Decimal("60"))
        )

        assert balance_of(db_session, Client, sample_client) == Decimal("40")
        assert db_session.get(ClientInvoice, invoice.id).remaining_amount == Decimal("40")

    def test_receipt_for_other_clients_invoice(
        self, db_session: Session, sample_client, second_client, variants
    ):
        red, _ = variants
        invoice = InvoiceService(db_session).create_invoice(invoice_in(sample_client, red, 1))

        with pytest.raises(ValidationError):
            ReceiptService(db_session).create_receipt(
                ReceiptCreate(party_id=second_client.id, invoice_id=invoice.id, amount=Decimal("10"))
            )

    def test_delete_receipt_restores_balance(self, db_session: Session, sample_client, variants):
        red, _ = variants
        invoice = InvoiceService(db_session).create_invoice(invoice_in(sample_client, red, 2))
        service = ReceiptService(db_session)
        receipt = service.create_receipt(
            ReceiptCreate(party_id=sample_client.id, invoice_id=invoice.id, amount=Decimal("50"))
        )

        service.delete_receipt(receipt.id)

        assert balance_of(db_session, Client, sample_client) == Decimal("50")
        assert db_session.get(ClientInvoice, invoice.id).remaining_amount == Decimal("50")
        assert db_session.query(ClientReceipt).count() == 0
