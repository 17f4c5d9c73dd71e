"""
Tests for document assembly and e-mail notifications
"""

import pytest
from decimal import Decimal
from sqlalchemy.orm import Session

from backoffice.core.exceptions import IntegrationError, NotFoundError, ValidationError
from backoffice.schemas.invoice import InvoiceCreate, InvoiceLine, ReceiptCreate
from backoffice.schemas.shipping import ShippingProduct
from backoffice.services.documents import DocumentAssembler
from backoffice.services.invoicing import InvoiceService, ReceiptService
from backoffice.services.notifications import NotificationService, SmtpMailDispatcher
from backoffice.services.shipping import ShippingInvoiceService


class FakeGenerator:
    def __init__(self):
        self.rendered = []

    def render(self, document):
        self.rendered.append(document)
        return b"%PDF-1.4 fake"


class FakeDispatcher:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def send(self, message):
        if self.fail:
            raise ConnectionError("SMTP unavailable")
        self.sent.append(message)


@pytest.fixture
def invoice(db_session, sample_client, variants):
    red, blue = variants
    return InvoiceService(db_session).create_invoice(InvoiceCreate(
        party_id=sample_client.id,
        order_number="PO-77",
        products=[
            InvoiceLine(product_id=red.product_id, product_variant_id=red.id, quantity=2, unit_price=Decimal("25")),
            InvoiceLine(product_id=blue.product_id, product_variant_id=blue.id, quantity=1, unit_price=Decimal("30")),
        ],
    ))


class TestDocumentAssembler:
    """Test suite for DocumentAssembler"""

    def test_invoice_document(self, db_session: Session, invoice, sample_client):
        document = DocumentAssembler(db_session).build_invoice_document(invoice.id)

        assert document.party.name == sample_client.name
        assert document.order_number == "PO-77"
        assert [(l.size, l.color, l.quantity) for l in document.lines] == [("S", "Red", 2), ("M", "Blue", 1)]
        assert document.lines[0].name == "Linen Shirt"
        assert document.subtotal == Decimal("80")
        assert document.total_price == Decimal("80")

    def test_receipt_document_takes_invoice_currency(self, db_session: Session, invoice, sample_client):
        receipt = ReceiptService(db_session).create_receipt(
            ReceiptCreate(party_id=sample_client.id, invoice_id=invoice.id, amount=Decimal("30"))
        )
        document = DocumentAssembler(db_session).build_receipt_document(receipt.id)

        assert document.amount == Decimal("30")
        assert document.currency == "usd"
        assert document.invoice_id == invoice.id

    def test_shipping_document_progress(self, db_session: Session, invoice, variants):
        red, _ = variants
        shipment = ShippingInvoiceService(db_session).create_shipping_invoice(invoice.id, [
            ShippingProduct(product_id=red.product_id, product_variant_id=red.id, quantity=1)
        ])

        document = DocumentAssembler(db_session).build_shipping_document(shipment.id)

        assert document.shipping_number == shipment.shipping_number
        assert len(document.lines) == 1
        assert (document.lines[0].ordered, document.lines[0].shipped_to_date, document.lines[0].remaining) == (2, 1, 1)

    def test_missing_invoice(self, db_session: Session):
        with pytest.raises(NotFoundError):
            DocumentAssembler(db_session).build_invoice_document(4242)


class TestNotificationService:
    """Test suite for NotificationService"""

    def test_invoice_email(self, db_session: Session, invoice, sample_client):
        generator, dispatcher = FakeGenerator(), FakeDispatcher()

        message = NotificationService(db_session, generator, dispatcher).send_invoice_email(invoice.id)

        assert message.to == sample_client.email
        assert message.subject == f"Invoice #{invoice.id} - Client Invoice"
        assert "$80.00" in message.html
        assert message.attachments[0].filename == f"Invoice_{invoice.id}.pdf"
        assert message.attachments[0].content == b"%PDF-1.4 fake"
        assert dispatcher.sent == [message]
        assert generator.rendered[0].invoice_id == invoice.id

    def test_receipt_email(self, db_session: Session, invoice, sample_client):
        receipt = ReceiptService(db_session).create_receipt(
            ReceiptCreate(party_id=sample_client.id, invoice_id=invoice.id, amount=Decimal("45"))
        )
        message = NotificationService(db_session, FakeGenerator(), FakeDispatcher()).send_receipt_email(
            receipt.id, recipient="accounts@acme.test"
        )

        assert message.to == "accounts@acme.test"
        assert message.subject == f"Receipt #{receipt.id} - Client Payment"
        assert "$45.00" in message.html

    def test_supplier_subjects(self, db_session: Session, sample_supplier, variants):
        red, _ = variants
        bill = InvoiceService(db_session, "supplier").create_invoice(InvoiceCreate(
            party_id=sample_supplier.id,
            products=[InvoiceLine(product_id=red.product_id, product_variant_id=red.id, quantity=3,
                                  unit_price=Decimal("10"))],
        ))
        payment = ReceiptService(db_session, "supplier").create_receipt(
            ReceiptCreate(party_id=sample_supplier.id, invoice_id=bill.id, amount=Decimal("20"))
        )
        service = NotificationService(db_session, FakeGenerator(), FakeDispatcher(), "supplier")

        invoice_message = service.send_invoice_email(bill.id)
        receipt_message = service.send_receipt_email(payment.id)

        assert invoice_message.to == sample_supplier.email
        assert invoice_message.subject == f"Invoice #{bill.id} - Supplier Invoice"
        assert receipt_message.subject == f"Receipt #{payment.id} - Supplier Payment"

    def test_dispatch_failure(self, db_session: Session, invoice):
        service = NotificationService(db_session, FakeGenerator(), FakeDispatcher(fail=True))
        with pytest.raises(IntegrationError):
            service.send_invoice_email(invoice.id)

    def test_client_without_email(self, db_session: Session, invoice, sample_client):
        sample_client.email = None
        db_session.commit()

        with pytest.raises(ValidationError):
            NotificationService(db_session, FakeGenerator(), FakeDispatcher()).send_invoice_email(invoice.id)

    def test_smtp_mime_message(self, invoice, db_session: Session):
        message = NotificationService(db_session, FakeGenerator(), FakeDispatcher()).send_invoice_email(invoice.id)
        mime = SmtpMailDispatcher(host="smtp.test", sender="billing@shop.test").build_mime(message)

        assert mime["Subject"] == message.subject
        assert mime["From"] == "billing@shop.test"
        parts = mime.get_payload()
        assert parts[1].get_filename() == message.attachments[0].filename
