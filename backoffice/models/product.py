"""
Product Models
Products and their size/colour variants with the live stock counter
"""
from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, Text,
    ForeignKey, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from backoffice.core.database import Base


class Product(Base):
    """Product master record"""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False, doc="Product name")
    description = Column(Text, doc="Product description")
    photo = Column(String(255), doc="Photo URL")
    price = Column(Numeric(12, 2), nullable=False, default=0, doc="Selling price")
    cost = Column(Numeric(12, 2), nullable=False, default=0, doc="Unit cost")
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())

    variants = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductVariant.id",
    )

    @property
    def total_stock(self) -> int:
        return sum(variant.quantity or 0 for variant in self.variants)

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}')>"


class ProductVariant(Base):
    """
    Product Variant - one size/colour combination

    `quantity` is the authoritative stock counter. The ledger in
    product_history records every change made through the recorder but is
    never replayed to derive this value.
    """
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    size = Column(String(20), nullable=False, default="", doc="Size label")
    color = Column(String(40), nullable=False, default="", doc="Colour label")
    quantity = Column(Integer, nullable=False, default=0, doc="Units in stock")

    product = relationship("Product", back_populates="variants")

    __table_args__ = (
        Index("ix_product_variants_product", "product_id"),
    )

    def __repr__(self):
        return f"<ProductVariant(id={self.id}, size='{self.size}', color='{self.color}', quantity={self.quantity})>"
