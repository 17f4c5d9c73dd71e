"""Payloads handed to the document generator and the mail dispatcher"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from backoffice.models.enums import PartyType


class PartyDetails(BaseModel):
    party_type: PartyType
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class DocumentLine(BaseModel):
    product_id: int
    variant_id: int
    name: str
    size: str = ""
    color: str = ""
    quantity: int
    unit_price: Decimal = Decimal("0")
    line_total: Decimal = Decimal("0")


class InvoiceDocument(BaseModel):
    kind: str = "invoice"
    invoice_id: int
    order_number: Optional[str] = None
    created_at: datetime
    party: PartyDetails
    invoice_type: str
    currency: str
    lines: List[DocumentLine] = Field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    vat_amount: Decimal = Decimal("0")
    total_price: Decimal = Decimal("0")
    remaining_amount: Decimal = Decimal("0")
    note: Optional[str] = None


class ReceiptDocument(BaseModel):
    kind: str = "receipt"
    receipt_id: int
    invoice_id: Optional[int] = None
    paid_at: datetime
    party: PartyDetails
    amount: Decimal
    currency: str


class ShippingDocumentLine(DocumentLine):
    ordered: int = 0
    shipped_to_date: int = 0
    remaining: int = 0


class ShippingDocument(BaseModel):
    kind: str = "shipping_invoice"
    shipping_number: str
    invoice_id: int
    party: PartyDetails
    status: str
    shipped_at: datetime
    delivered_at: Optional[datetime] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    shipping_method: Optional[str] = None
    shipping_address: Optional[str] = None
    shipping_cost: Decimal = Decimal("0")
    lines: List[ShippingDocumentLine] = Field(default_factory=list)
    notes: Optional[str] = None


class MailAttachment(BaseModel):
    filename: str
    content: bytes
    content_type: str = "application/pdf"


class MailMessage(BaseModel):
    to: str
    subject: str
    html: str
    attachments: List[MailAttachment] = Field(default_factory=list)
