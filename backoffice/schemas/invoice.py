"""Invoice and receipt schemas"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from backoffice.models.enums import InvoiceType, Currency, ShippingStatus


class InvoiceLine(BaseModel):
    product_id: int
    product_variant_id: int
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)


class InvoiceCreate(BaseModel):
    party_id: int
    type: InvoiceType = InvoiceType.REGULAR
    currency: Currency = Currency.USD
    products: List[InvoiceLine] = Field(..., min_length=1)
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    include_vat: bool = False
    order_number: Optional[str] = None
    note: Optional[str] = None
    created_at: Optional[datetime] = None


class Invoice(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    party_id: int
    created_at: datetime
    total_price: Decimal
    vat_amount: Decimal
    remaining_amount: Decimal
    type: InvoiceType
    currency: Currency
    products: List[InvoiceLine]
    shipping_status: ShippingStatus
    order_number: Optional[str] = None
    note: Optional[str] = None


class ReceiptCreate(BaseModel):
    party_id: int
    invoice_id: Optional[int] = None
    amount: Decimal = Field(..., gt=0)
    paid_at: Optional[datetime] = None
    note: Optional[str] = None


class Receipt(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    party_id: int
    invoice_id: Optional[int] = None
    amount: Decimal
    paid_at: datetime
    note: Optional[str] = None
