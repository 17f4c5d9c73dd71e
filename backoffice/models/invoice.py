"""
Invoice and Receipt Models
Raw transaction storage replayed by the balance reconciler
"""
from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, Text, JSON,
    ForeignKey, CheckConstraint, Index
)
from sqlalchemy.orm import relationship, declared_attr

from backoffice.core.database import Base
from backoffice.models.enums import InvoiceType, Currency, ShippingStatus, sql_in


class InvoiceMixin:
    """
    Columns shared by client and supplier invoices

    `products` holds the ordered line items as a JSON list of
    {product_id, product_variant_id, quantity, unit_price}. Return invoices
    carry a negative total_price.
    """

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now, doc="Invoice date")
    total_price = Column(Numeric(14, 4), nullable=False, default=0, doc="Invoice total (negative for returns)")
    vat_amount = Column(Numeric(14, 4), nullable=False, default=0, doc="VAT included in total")
    remaining_amount = Column(Numeric(14, 4), nullable=False, default=0, doc="Amount still unpaid")
    type = Column(String(10), nullable=False, default=InvoiceType.REGULAR.value, doc="regular or return")
    currency = Column(String(8), nullable=False, default=Currency.USD.value, doc="Invoice currency")
    products = Column(JSON, nullable=False, default=list, doc="Ordered line items")
    shipping_status = Column(
        String(20), nullable=False, default=ShippingStatus.UNSHIPPED.value,
        doc="Derived fulfilment status, recomputed after every shipment change"
    )
    order_number = Column(String(40), doc="Customer facing order number")
    note = Column(Text, doc="Free text note")

    @property
    def is_return(self) -> bool:
        return self.type == InvoiceType.RETURN.value

    @property
    def line_items(self) -> list:
        return list(self.products or [])

    @declared_attr
    def __table_args__(cls):
        return (
            CheckConstraint(f"type IN ({sql_in(InvoiceType)})", name="valid_type"),
            CheckConstraint(f"shipping_status IN ({sql_in(ShippingStatus)})", name="valid_shipping_status"),
        )


class ClientInvoice(InvoiceMixin, Base):
    """Sales invoice raised against a client"""
    __tablename__ = "client_invoices"

    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)

    client = relationship("Client", back_populates="invoices")

    @property
    def party_id(self) -> int:
        return self.client_id

    def __repr__(self):
        return f"<ClientInvoice(id={self.id}, client_id={self.client_id}, total={self.total_price}, type='{self.type}')>"


class SupplierInvoice(InvoiceMixin, Base):
    """Purchase invoice received from a supplier"""
    __tablename__ = "supplier_invoices"

    supplier_id = Column(Integer, ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False, index=True)

    supplier = relationship("Supplier", back_populates="invoices")

    @property
    def party_id(self) -> int:
        return self.supplier_id

    def __repr__(self):
        return f"<SupplierInvoice(id={self.id}, supplier_id={self.supplier_id}, total={self.total_price}, type='{self.type}')>"


class ReceiptMixin:
    """Columns shared by client and supplier receipts"""

    id = Column(Integer, primary_key=True, autoincrement=True)
    amount = Column(Numeric(14, 4), nullable=False, doc="Amount paid")
    paid_at = Column(DateTime, nullable=False, default=datetime.now, doc="Payment date")
    note = Column(Text, doc="Free text note")


class ClientReceipt(ReceiptMixin, Base):
    """Payment received from a client"""
    __tablename__ = "client_receipts"

    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice_id = Column(Integer, ForeignKey("client_invoices.id", ondelete="SET NULL"), index=True)

    client = relationship("Client", back_populates="receipts")
    invoice = relationship("ClientInvoice")

    @property
    def party_id(self) -> int:
        return self.client_id


class SupplierReceipt(ReceiptMixin, Base):
    """Payment made to a supplier"""
    __tablename__ = "supplier_receipts"

    supplier_id = Column(Integer, ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice_id = Column(Integer, ForeignKey("supplier_invoices.id", ondelete="SET NULL"), index=True)

    supplier = relationship("Supplier", back_populates="receipts")
    invoice = relationship("SupplierInvoice")

    @property
    def party_id(self) -> int:
        return self.supplier_id


Index("ix_client_invoices_created", ClientInvoice.created_at)
Index("ix_supplier_invoices_created", SupplierInvoice.created_at)
