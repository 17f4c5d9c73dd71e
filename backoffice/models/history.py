"""
Product History Model
Append-only ledger of stock quantity changes
"""
from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, DateTime, Text,
    ForeignKey, CheckConstraint, Index
)
from sqlalchemy.orm import relationship

from backoffice.core.database import Base
from backoffice.models.enums import SourceType, sql_in


class ProductHistory(Base):
    """
    Product History Record - one inventory quantity change

    Rows are written once and never updated. previous_quantity and
    new_quantity are a snapshot of the variant counter at insert time, so
    new_quantity == previous_quantity + quantity_change holds per row only.
    """
    __tablename__ = "product_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id", ondelete="SET NULL"))

    quantity_change = Column(Integer, nullable=False, doc="Signed change, positive is stock in")
    previous_quantity = Column(Integer, nullable=False, default=0, doc="Counter before the change")
    new_quantity = Column(Integer, nullable=False, default=0, doc="Counter after the change")

    source_type = Column(String(20), nullable=False, doc="What caused the change")
    source_id = Column(String(50), doc="Id of the causing document")
    source_reference = Column(String(120), doc="Display reference, e.g. 'Invoice #123'")
    notes = Column(Text)

    created_at = Column(DateTime, nullable=False, default=datetime.now)

    product = relationship("Product")
    variant = relationship("ProductVariant")

    __table_args__ = (
        CheckConstraint(f"source_type IN ({sql_in(SourceType)})", name="valid_source_type"),
        CheckConstraint("new_quantity = previous_quantity + quantity_change", name="snapshot_consistent"),
        Index("ix_product_history_product_created", "product_id", "created_at"),
        Index("ix_product_history_variant_created", "variant_id", "created_at"),
    )

    @property
    def is_stock_in(self) -> bool:
        return self.quantity_change > 0

    def __repr__(self):
        return (
            f"<ProductHistory(id={self.id}, variant_id={self.variant_id}, "
            f"change={self.quantity_change}, source='{self.source_type}')>"
        )
