"""
Client and Supplier Models
Trading parties whose cached balance the reconciler keeps honest
"""
from sqlalchemy import Column, String, Integer, Numeric, DateTime, Text, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from backoffice.core.database import Base


class PartyMixin:
    """Columns shared by clients and suppliers"""

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False, doc="Display name")
    email = Column(String(120), doc="Primary e-mail address")
    phone = Column(String(40), doc="Phone number")
    address = Column(Text, doc="Postal address")

    # Cached running balance; recomputed from transactions by the reconciler
    balance = Column(Numeric(14, 4), nullable=False, default=0, doc="Outstanding balance")

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())

    @property
    def has_outstanding_balance(self) -> bool:
        return (self.balance or 0) > 0


class Client(PartyMixin, Base):
    """
    Client - sales side trading party

    The balance goes up with regular invoices and down with returns and receipts.
    """
    __tablename__ = "clients"

    invoices = relationship("ClientInvoice", back_populates="client", passive_deletes=True)
    receipts = relationship("ClientReceipt", back_populates="client", passive_deletes=True)

    __table_args__ = (
        Index("ix_clients_name", "name"),
    )

    def __repr__(self):
        return f"<Client(id={self.id}, name='{self.name}', balance={self.balance})>"


class Supplier(PartyMixin, Base):
    """Supplier - purchase side trading party"""
    __tablename__ = "suppliers"

    invoices = relationship("SupplierInvoice", back_populates="supplier", passive_deletes=True)
    receipts = relationship("SupplierReceipt", back_populates="supplier", passive_deletes=True)

    __table_args__ = (
        Index("ix_suppliers_name", "name"),
    )

    def __repr__(self):
        return f"<Supplier(id={self.id}, name='{self.name}', balance={self.balance})>"
