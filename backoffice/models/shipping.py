"""
Shipping Invoice Models
Partial and full shipments raised against an invoice
"""
from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, Text, JSON,
    ForeignKey, CheckConstraint
)
from sqlalchemy.orm import relationship, declared_attr

from backoffice.core.database import Base
from backoffice.models.enums import ShipmentStatus, sql_in


class ShippingInvoiceMixin:
    """
    Columns shared by client and supplier shipping invoices

    `products` is a JSON list of {product_id, product_variant_id, quantity, note}.
    Cancelled shipments stay on file but no longer count as shipped.
    """

    id = Column(Integer, primary_key=True, autoincrement=True)
    shipping_number = Column(String(20), nullable=False, unique=True, doc="e.g. CSH-2410-0001")
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    shipped_at = Column(DateTime, nullable=False, default=datetime.now)
    delivered_at = Column(DateTime, doc="Set when the shipment is delivered")
    products = Column(JSON, nullable=False, default=list, doc="Shipped line items")
    tracking_number = Column(String(80))
    carrier = Column(String(80))
    shipping_method = Column(String(80))
    shipping_address = Column(Text)
    shipping_cost = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text)
    status = Column(String(12), nullable=False, default=ShipmentStatus.SHIPPED.value)

    @property
    def counts_as_shipped(self) -> bool:
        return self.status != ShipmentStatus.CANCELLED.value

    @property
    def total_quantity(self) -> int:
        return sum(int(item.get("quantity") or 0) for item in (self.products or []))

    @declared_attr
    def __table_args__(cls):
        return (
            CheckConstraint(f"status IN ({sql_in(ShipmentStatus)})", name="valid_status"),
        )


class ClientShippingInvoice(ShippingInvoiceMixin, Base):
    __tablename__ = "client_shipping_invoices"

    invoice_id = Column(Integer, ForeignKey("client_invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), index=True)

    invoice = relationship("ClientInvoice")

    @property
    def party_id(self):
        return self.client_id


class SupplierShippingInvoice(ShippingInvoiceMixin, Base):
    __tablename__ = "supplier_shipping_invoices"

    invoice_id = Column(Integer, ForeignKey("supplier_invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id", ondelete="CASCADE"), index=True)

    invoice = relationship("SupplierInvoice")

    @property
    def party_id(self):
        return self.supplier_id
