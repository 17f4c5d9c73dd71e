"""
Document Assembly
Builds the payloads handed to the PDF document generator
"""
from decimal import Decimal
from typing import Protocol, Union

from pydantic import BaseModel
from sqlalchemy.orm import Session

from backoffice.core.config import settings
from backoffice.core.exceptions import NotFoundError
from backoffice.models import PartyType, Product, ProductVariant, get_party_models
from backoffice.schemas.documents import (
    DocumentLine, InvoiceDocument, PartyDetails, ReceiptDocument,
    ShippingDocument, ShippingDocumentLine
)
from backoffice.services.shipping import ShippingInvoiceService


class DocumentGenerator(Protocol):
    """Renders an assembled document (invoice, receipt, shipping invoice) to PDF bytes"""

    def render(self, document: BaseModel) -> bytes:
        ...


class DocumentAssembler:
    """Resolves products, variants and parties into self-contained documents"""

    def __init__(self, db: Session, party: Union[PartyType, str] = PartyType.CLIENT):
        self.db = db
        self.party = PartyType(party)
        self.models = get_party_models(self.party)

    def _party_details(self, party_id: int) -> PartyDetails:
        party = self.db.query(self.models.party).filter(self.models.party.id == party_id).first()
        if not party:
            raise NotFoundError(f"{self.party.value.capitalize()} {party_id} not found")
        return PartyDetails(
            party_type=self.party, id=party.id, name=party.name,
            email=party.email, phone=party.phone, address=party.address,
        )

    def _lines(self, items: list) -> list:
        product_ids = {int(item.get("product_id", 0)) for item in items}
        variant_ids = {int(item.get("product_variant_id", 0)) for item in items}
        products = {p.id: p for p in self.db.query(Product).filter(Product.id.in_(product_ids)).all()}
        variants = {v.id: v for v in self.db.query(ProductVariant).filter(ProductVariant.id.in_(variant_ids)).all()}

        lines = []
        for item in items:
            product = products.get(int(item.get("product_id", 0)))
            variant = variants.get(int(item.get("product_variant_id", 0)))
            quantity = abs(int(item.get("quantity", 0)))
            unit_price = Decimal(str(item.get("unit_price", product.price if product else 0)))
            lines.append(DocumentLine(
                product_id=int(item.get("product_id", 0)),
                variant_id=int(item.get("product_variant_id", 0)),
                name=product.name if product else "Unknown Product",
                size=variant.size if variant else "",
                color=variant.color if variant else "",
                quantity=quantity,
                unit_price=unit_price,
                line_total=unit_price * quantity,
            ))
        return lines

    def build_invoice_document(self, invoice_id: int) -> InvoiceDocument:
        invoice = self.db.query(self.models.invoice).filter(self.models.invoice.id == invoice_id).first()
        if not invoice:
            raise NotFoundError(f"Invoice {invoice_id} not found")

        lines = self._lines(invoice.line_items)
        return InvoiceDocument(
            invoice_id=invoice.id,
            order_number=invoice.order_number,
            created_at=invoice.created_at,
            party=self._party_details(invoice.party_id),
            invoice_type=invoice.type,
            currency=invoice.currency,
            lines=lines,
            subtotal=sum((line.line_total for line in lines), Decimal("0")),
            vat_amount=Decimal(str(invoice.vat_amount or 0)),
            total_price=Decimal(str(invoice.total_price or 0)),
            remaining_amount=Decimal(str(invoice.remaining_amount or 0)),
            note=invoice.note,
        )

    def build_receipt_document(self, receipt_id: int) -> ReceiptDocument:
        receipt = self.db.query(self.models.receipt).filter(self.models.receipt.id == receipt_id).first()
        if not receipt:
            raise NotFoundError(f"Receipt {receipt_id} not found")

        currency = settings.DEFAULT_CURRENCY
        if receipt.invoice_id is not None:
            invoice = self.db.query(self.models.invoice).filter(
                self.models.invoice.id == receipt.invoice_id
            ).first()
            if invoice is not None:
                currency = invoice.currency

        return ReceiptDocument(
            receipt_id=receipt.id,
            invoice_id=receipt.invoice_id,
            paid_at=receipt.paid_at,
            party=self._party_details(receipt.party_id),
            amount=Decimal(str(receipt.amount)),
            currency=currency,
        )

    def build_shipping_document(self, shipping_invoice_id: int) -> ShippingDocument:
        model = self.models.shipping_invoice
        shipment = self.db.query(model).filter(model.id == shipping_invoice_id).first()
        if not shipment:
            raise NotFoundError(f"Shipping invoice {shipping_invoice_id} not found")

        quantities = ShippingInvoiceService(self.db, self.party).get_shipped_quantities(shipment.invoice_id)
        lines = []
        for line in self._lines(shipment.products or []):
            progress = quantities.get(line.variant_id)
            lines.append(ShippingDocumentLine(
                **line.model_dump(),
                ordered=progress.ordered if progress else 0,
                shipped_to_date=progress.shipped if progress else 0,
                remaining=progress.remaining if progress else 0,
            ))

        return ShippingDocument(
            shipping_number=shipment.shipping_number,
            invoice_id=shipment.invoice_id,
            party=self._party_details(shipment.party_id),
            status=shipment.status,
            shipped_at=shipment.shipped_at,
            delivered_at=shipment.delivered_at,
            carrier=shipment.carrier,
            tracking_number=shipment.tracking_number,
            shipping_method=shipment.shipping_method,
            shipping_address=shipment.shipping_address,
            shipping_cost=Decimal(str(shipment.shipping_cost or 0)),
            lines=lines,
            notes=shipment.notes,
        )
