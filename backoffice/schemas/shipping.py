"""Shipping invoice and fulfilment schemas"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal

from backoffice.models.enums import ShipmentStatus


class ShippingProduct(BaseModel):
    product_id: int
    product_variant_id: int
    quantity: int
    note: Optional[str] = None


class ShippingData(BaseModel):
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    shipping_method: Optional[str] = None
    shipping_address: Optional[str] = None
    shipping_cost: Decimal = Field(default=Decimal("0"), ge=0)
    notes: Optional[str] = None
    shipped_at: Optional[datetime] = None


class ShippingInvoiceCreate(ShippingData):
    products: List[ShippingProduct] = Field(..., min_length=1)


class ShippingInvoice(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_id: int
    party_id: Optional[int] = None
    shipping_number: str
    created_at: datetime
    shipped_at: datetime
    delivered_at: Optional[datetime] = None
    products: List[ShippingProduct]
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    shipping_method: Optional[str] = None
    shipping_address: Optional[str] = None
    shipping_cost: Decimal
    notes: Optional[str] = None
    status: ShipmentStatus


class VariantQuantities(BaseModel):
    ordered: int = 0
    shipped: int = 0
    remaining: int = 0


# variant_id -> quantities
ShippedQuantities = Dict[int, VariantQuantities]


class ShippingValidation(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)


class ShippingStatusUpdate(BaseModel):
    status: ShipmentStatus
    delivered_at: Optional[datetime] = None
